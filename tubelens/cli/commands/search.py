"""Search, history, result and filter commands for the TubeLens CLI."""

from __future__ import annotations

from typing import Any

import click
from pydantic import ValidationError

from tubelens.app.dependencies import get_filter_store, get_search_service, get_selection_store
from tubelens.app.services.filters import DURATION_OPTIONS
from tubelens.app.services.result_grid import SORT_KEYS, ResultGrid
from tubelens.app.services.search_service import SearchOutcome

from ..config import CliConfig
from .common import cli_errors, console, video_table


def _print_outcome(outcome: SearchOutcome, config: CliConfig) -> None:
    grid = ResultGrid(get_selection_store(), outcome.results, sort_by=config.default_sort)
    metadata = outcome.metadata
    console.print(
        f"[bold]{metadata.query}[/bold] ({metadata.type}): "
        f"{len(outcome.results)} shown of {outcome.raw_count} found in {outcome.duration_ms} ms"
    )
    if outcome.active_filters:
        console.print(f"[dim]{outcome.active_filters} advanced filter(s) active[/dim]")
    if grid.view:
        console.print(video_table(grid.view, title="Results", selection=get_selection_store()))
    else:
        console.print("[yellow]No videos matched[/yellow]")


@click.command()
@click.argument("query")
@click.option(
    "--type",
    "-t",
    "search_type",
    type=click.Choice(["keyword", "video", "channel"]),
    default="keyword",
    show_default=True,
    help="Search by keyword, video id or channel id.",
)
def search(query: str, search_type: str) -> None:
    """Search YouTube and show the results."""
    config = CliConfig.load()
    with cli_errors():
        outcome = get_search_service().search(search_type, query)
    _print_outcome(outcome, config)


@click.command()
@click.option("--count", "-n", type=click.IntRange(1, 50), default=None, help="Number of videos.")
@click.option("--region", default=None, help="Region code, e.g. US or GB.")
def trending(count: int | None, region: str | None) -> None:
    """Show trending videos."""
    config = CliConfig.load()
    with cli_errors():
        outcome = get_search_service().search(
            "trending",
            trending_count=count or config.trending_count,
            region_code=(region or config.trending_region or "").upper() or None,
        )
    _print_outcome(outcome, config)


@click.command()
@click.option("--clear", "clear_all", is_flag=True, help="Forget every recent search.")
@click.option("--remove", "remove_query", default=None, help="Forget one recent search.")
@click.option("--rerun", type=int, default=None, help="Run the Nth recent search again.")
def history(clear_all: bool, remove_query: str | None, rerun: int | None) -> None:
    """List recent searches."""
    search_service = get_search_service()
    if clear_all:
        search_service.clear_history()
        console.print("[green]Search history cleared[/green]")
        return
    if remove_query is not None:
        search_service.remove_history_entry(remove_query)
        console.print(f"[green]Removed:[/green] {remove_query}")
    if rerun is not None:
        with cli_errors():
            outcome = search_service.search_from_history(rerun - 1)
        _print_outcome(outcome, CliConfig.load())
        return

    entries = search_service.get_history()
    if not entries:
        console.print("  (no recent searches)")
        return
    for index, entry in enumerate(entries, start=1):
        console.print(
            f"  {index}. [cyan]{entry.query}[/cyan] ({entry.type}, {entry.result_count} results)"
        )
    console.print(
        f"\nSearches used: {search_service.get_quota_used()}/{search_service.daily_search_limit}"
    )


@click.command()
@click.option("--sort", "sort_by", type=click.Choice(SORT_KEYS), default=None)
def results(sort_by: str | None) -> None:
    """Show the results of the last search."""
    config = CliConfig.load()
    selection = get_selection_store()
    grid = ResultGrid(
        selection,
        get_search_service().last_results(),
        sort_by=sort_by or config.default_sort,
    )
    if not grid.view:
        console.print("[yellow]No results yet; run a search first[/yellow]")
        return
    console.print(video_table(grid.view, title=f"Results ({grid.sort_by})", selection=selection))
    console.print(f"{grid.selected_in_view()} of {len(grid.view)} selected")


@click.command()
@click.option("--min-views", type=int, default=None)
@click.option("--min-likes", type=int, default=None)
@click.option("--min-comments", type=int, default=None)
@click.option("--published-after", default=None, help="YYYY-MM-DD")
@click.option("--category", default=None, help="YouTube category id")
@click.option("--duration", type=click.Choice([value for value, _ in DURATION_OPTIONS]), default=None)
@click.option("--max-results", type=click.IntRange(1, 50), default=None)
@click.option("--reset", is_flag=True, help="Restore the default filters.")
def filters(
    min_views: int | None,
    min_likes: int | None,
    min_comments: int | None,
    published_after: str | None,
    category: str | None,
    duration: str | None,
    max_results: int | None,
    reset: bool,
) -> None:
    """Show or change the advanced search filters."""
    store = get_filter_store()
    if reset:
        current = store.reset()
    else:
        changes: dict[str, Any] = {
            key: value
            for key, value in {
                "minViews": min_views,
                "minLikes": min_likes,
                "minComments": min_comments,
                "publishedAfter": published_after,
                "category": category,
                "duration": duration,
                "maxResults": max_results,
            }.items()
            if value is not None
        }
        try:
            current = store.update(changes) if changes else store.load()
        except ValidationError as exc:
            raise click.ClickException(f"Invalid filter: {exc.errors()[0]['msg']}") from exc

    console.print(f"[bold]Advanced filters[/bold] ({current.active_count()} active)")
    for key, value in current.model_dump(by_alias=True).items():
        console.print(f"  {key}: {value!r}")
