"""Selection commands for the TubeLens CLI."""

from __future__ import annotations

import click

from tubelens.app.dependencies import get_search_service, get_selection_store
from tubelens.app.services.result_grid import ResultGrid

from ..config import CliConfig
from .common import console, parse_positions, video_table


def _grid() -> ResultGrid:
    return ResultGrid(
        get_selection_store(),
        get_search_service().last_results(),
        sort_by=CliConfig.load().default_sort,
    )


@click.command()
@click.argument("positions", nargs=-1)
@click.option("--all", "select_all", is_flag=True, help="Select every result of the last search.")
def select(positions: tuple[str, ...], select_all: bool) -> None:
    """Toggle results by position; a range like 3-7 adds every unselected video in it."""
    grid = _grid()
    if not grid.view:
        raise click.ClickException("No results to select from; run a search first.")

    if select_all:
        added = grid.select_all()
        console.print(f"[green]Selected {added} more video(s)[/green]")
    else:
        if not positions:
            raise click.UsageError("Give at least one position or --all.")
        for start, end in parse_positions(positions):
            try:
                if start == end:
                    grid.select(start)
                else:
                    grid.select_range(start, end)
            except IndexError as exc:
                raise click.ClickException(str(exc)) from exc

    console.print(f"{get_selection_store().get_selected_count()} video(s) selected")


@click.command()
@click.argument("video_ids", nargs=-1)
@click.option("--all", "deselect_all", is_flag=True, help="Deselect every result of the last search.")
def deselect(video_ids: tuple[str, ...], deselect_all: bool) -> None:
    """Remove videos from the selection by id."""
    selection = get_selection_store()
    if deselect_all:
        removed = _grid().deselect_all()
    else:
        removed = sum(1 for video_id in video_ids if selection.remove_video(video_id))
    console.print(f"Removed {removed} video(s); {selection.get_selected_count()} selected")


@click.command(name="selection")
def show_selection() -> None:
    """List the selected videos."""
    selection = get_selection_store()
    videos = selection.get_selected_videos()
    if not videos:
        console.print("[yellow]Nothing selected[/yellow]")
        return
    metadata = selection.metadata
    title = f"Selected videos ({metadata.type}: {metadata.query})" if metadata.query else "Selected videos"
    console.print(video_table(videos, title=title))
    hours = selection.time_remaining_ms() // 3_600_000
    console.print(f"[dim]Selection is kept for another {hours}h[/dim]")


@click.command()
def clear() -> None:
    """Clear the selection."""
    get_selection_store().clear_selection()
    console.print("[green]Selection cleared[/green]")
