"""Shared helpers for TubeLens CLI commands."""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from typing import Any

import click
from rich.console import Console
from rich.table import Table

from tubelens.app.services import video_records as records
from tubelens.app.services.analytics import format_compact_number, video_engagement_rate
from tubelens.app.services.auth_api import AuthError
from tubelens.app.services.http_client import ApiClientError, SessionExpiredError
from tubelens.app.services.search_service import SearchValidationError
from tubelens.app.services.selection_store import SelectionStore

console = Console()


@contextmanager
def cli_errors() -> Iterator[None]:
    """Report service failures in red and exit non-zero."""
    try:
        yield
    except SearchValidationError as exc:
        raise click.ClickException(str(exc)) from exc
    except SessionExpiredError as exc:
        console.print(f"[red]{exc}[/red]")
        raise click.ClickException("Run `tubelens login` to start a new guest session.") from exc
    except ApiClientError as exc:
        console.print(f"[red]Backend error:[/red] {exc.error_message()}")
        raise click.ClickException(exc.error_message()) from exc
    except AuthError as exc:
        raise click.ClickException(str(exc)) from exc


def parse_positions(arguments: Sequence[str]) -> list[tuple[int, int]]:
    """Turn 1-based `3` / `3-7` arguments into 0-based inclusive ranges."""
    ranges: list[tuple[int, int]] = []
    for argument in arguments:
        start_text, _, end_text = argument.partition("-")
        try:
            start = int(start_text)
            end = int(end_text) if end_text else start
        except ValueError as exc:
            raise click.BadParameter(f"expected a position or range like 3-7, got {argument!r}") from exc
        if start < 1 or end < 1:
            raise click.BadParameter(f"positions start at 1, got {argument!r}")
        ranges.append((start - 1, end - 1))
    return ranges


def video_table(
    videos: Sequence[Mapping[str, Any]],
    *,
    title: str,
    selection: SelectionStore | None = None,
) -> Table:
    table = Table(title=title, show_lines=False)
    table.add_column("#", justify="right", style="dim")
    if selection is not None:
        table.add_column("Sel", justify="center")
    table.add_column("Title", overflow="fold")
    table.add_column("Channel")
    table.add_column("Views", justify="right")
    table.add_column("Likes", justify="right")
    table.add_column("Eng %", justify="right")
    table.add_column("Duration", justify="right")

    for index, video in enumerate(videos, start=1):
        row = [str(index)]
        if selection is not None:
            row.append("[green]x[/green]" if selection.is_video_selected(video) else "")
        row.extend(
            [
                records.video_title(video) or "N/A",
                records.channel_title(video) or "N/A",
                format_compact_number(records.view_count(video)),
                format_compact_number(records.like_count(video)),
                f"{video_engagement_rate(video):.2f}",
                records.duration_formatted(video),
            ]
        )
        table.add_row(*row)
    return table
