"""Dashboard, export and diagnostics commands for the TubeLens CLI."""

from __future__ import annotations

import time
from pathlib import Path

import click
from rich.table import Table

from tubelens.app.dependencies import get_performance_metrics, get_selection_store
from tubelens.app.services import analytics
from tubelens.app.services import video_records as records
from tubelens.app.services.export_service import csv_filename, render_csv, render_report

from ..config import CliConfig
from .common import console


@click.command()
def summary() -> None:
    """Summary cards for the selected videos."""
    videos = get_selection_store().get_selected_videos()
    if not videos:
        console.print("[yellow]Nothing selected[/yellow]")
        return
    stats = analytics.summary_stats(videos)
    console.print(f"[bold]Videos:[/bold] {stats.video_count}")
    console.print(f"[bold]Total views:[/bold] {analytics.format_compact_number(stats.total_views)}")
    console.print(f"[bold]Avg engagement:[/bold] {stats.average_engagement:.2f}%")
    if stats.most_viewed is not None:
        console.print(f"[bold]Most viewed:[/bold] {records.video_title(stats.most_viewed) or 'N/A'}")
    console.print(f"[bold]Best day:[/bold] {stats.best_day or 'N/A'} ({stats.best_day_count} videos)")


@click.command()
@click.argument(
    "chart",
    type=click.Choice(["performance", "engagement", "breakdown", "likes-comments", "custom"]),
    default="performance",
)
@click.option("--type", "chart_type", type=click.Choice(analytics.CHART_TYPES), default="scatter")
@click.option("--x", "x_axis", type=click.Choice(list(analytics.AXIS_OPTIONS)), default="durationMinutes")
@click.option("--y", "y_axis", type=click.Choice(list(analytics.AXIS_OPTIONS)), default="viewCount")
def charts(chart: str, chart_type: str, x_axis: str, y_axis: str) -> None:
    """Print a chart's data set as a table."""
    videos = get_selection_store().get_selected_videos()
    if not videos:
        console.print("[yellow]Nothing selected[/yellow]")
        return

    if chart == "performance":
        table = Table(title="Performance overview (top 20 by views)")
        for column in ("Video", "Views", "Eng %", "Band"):
            table.add_column(column)
        for bar in analytics.performance_overview(videos):
            table.add_row(bar.name, f"{bar.views:,}", f"{bar.engagement:.2f}", bar.band)
        console.print(table)
    elif chart == "engagement":
        rate_chart = analytics.engagement_rate_chart(videos)
        table = Table(title="Engagement rate (top 20)")
        table.add_column("Video")
        table.add_column("Eng %", justify="right")
        for rate_bar in rate_chart.bars:
            table.add_row(rate_bar.name, f"{rate_bar.engagement:.2f}")
        console.print(table)
        console.print(
            f"Average {rate_chart.average_engagement:.2f}%; "
            f"{rate_chart.high_engagement_count} video(s) above 5%"
        )
    elif chart == "breakdown":
        breakdown = analytics.engagement_breakdown(videos)
        console.print(
            f"Average views {analytics.format_compact_number(breakdown.average_views)}, "
            f"average engagement {breakdown.average_engagement:.2f}%"
        )
        for tier, count in breakdown.tier_counts.items():
            console.print(f"  {tier}: {count}")
    elif chart == "likes-comments":
        likes = analytics.likes_vs_comments(videos)
        console.print(f"Correlation r = {likes.correlation:.2f} ({likes.strength})")
        console.print(f"Total likes {likes.total_likes:,}, total comments {likes.total_comments:,}")
        console.print(f"Like:comment ratio {likes.like_to_comment_ratio:.2f}:1")
    else:
        try:
            custom = analytics.build_custom_chart(
                videos,
                chart_type=chart_type,
                x_axis=x_axis,
                y_axis=y_axis,
            )
        except ValueError as exc:
            raise click.ClickException(str(exc)) from exc
        console.print(f"[bold]Insight:[/bold] {custom.insight}")
        console.print(f"{len(custom.series)} point(s)")


@click.command()
@click.option("--format", "export_format", type=click.Choice(["csv", "report"]), default="csv")
@click.option(
    "--output-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Defaults to export_dir from the CLI config.",
)
def export(export_format: str, output_dir: Path | None) -> None:
    """Export the selected videos as CSV or a printable HTML report."""
    selection = get_selection_store()
    videos = selection.get_selected_videos()
    if not videos:
        raise click.ClickException("Please select at least one video to export")

    directory = output_dir or CliConfig.load().export_dir
    directory.mkdir(parents=True, exist_ok=True)
    if export_format == "csv":
        path = directory / csv_filename(time.time())
        path.write_text(render_csv(videos), encoding="utf-8")
    else:
        path = directory / f"youtube_analytics_report_{int(time.time() * 1000)}.html"
        path.write_text(render_report(videos, selection.metadata), encoding="utf-8")
    console.print(f"[green]Exported {len(videos)} video(s) to[/green] {path}")


@click.command()
def metrics() -> None:
    """Backend request timings recorded in this process."""
    summary_data = get_performance_metrics().summary()
    console.print(f"Requests: {summary_data.total_requests}")
    console.print(f"Average: {summary_data.average_response_ms} ms")
    console.print(f"Failed: {summary_data.failed_requests}")
    if summary_data.slowest_request is not None:
        slowest = summary_data.slowest_request
        console.print(f"Slowest: {slowest.method} {slowest.url} ({slowest.duration_ms} ms)")
