from __future__ import annotations

import csv
import io
import time
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from html import escape
from typing import Any

from tubelens.app.services import video_records as records
from tubelens.app.services.analytics import summary_stats, video_engagement_rate
from tubelens.app.services.selection_store import SearchMetadata

CSV_HEADERS: tuple[str, ...] = (
    "Video ID",
    "Title",
    "Channel",
    "Views",
    "Likes",
    "Comments",
    "Engagement Rate",
    "Duration",
    "Published Date",
    "Category",
    "Tags",
)
CSV_MEDIA_TYPE = "text/csv; charset=utf-8"
REPORT_MEDIA_TYPE = "text/html; charset=utf-8"

_REPORT_STYLE = """
    body { font-family: Arial, sans-serif; padding: 40px; color: #1f2937; }
    h1 { color: #2563eb; border-bottom: 3px solid #2563eb; padding-bottom: 10px; }
    .metadata, .summary { background: #eff6ff; padding: 20px; border-radius: 8px; margin-bottom: 20px; }
    table { width: 100%; border-collapse: collapse; margin-top: 20px; }
    th, td { border: 1px solid #ddd; padding: 8px; text-align: left; }
    th { background-color: #2563eb; color: white; }
    tr:nth-child(even) { background-color: #f9fafb; }
    .footer { margin-top: 30px; text-align: center; color: #6b7280; font-size: 12px; }
    @media print { body { padding: 20px; } }
"""


def csv_filename(now: float | None = None) -> str:
    moment = time.time() if now is None else now
    return f"youtube_analytics_{int(moment * 1000)}.csv"


def csv_row(video: Mapping[str, Any]) -> list[str | int | float]:
    return [
        records.normalize_video_id(video) or "",
        records.video_title(video),
        records.channel_title(video),
        records.view_count(video),
        records.like_count(video),
        records.comment_count(video),
        round(video_engagement_rate(video), 2),
        records.duration_formatted(video),
        records.published_at(video) or "",
        records.category_name(video),
        ", ".join(records.tags(video)),
    ]


def render_csv(videos: Sequence[Mapping[str, Any]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for video in videos:
        writer.writerow(csv_row(video))
    return buffer.getvalue()


def render_report(
    videos: Sequence[Mapping[str, Any]],
    metadata: SearchMetadata,
    *,
    generated_at: datetime | None = None,
) -> str:
    """Self-contained printable HTML; every interpolated value is escaped."""
    generated = (generated_at or datetime.now(UTC)).strftime("%Y-%m-%d %H:%M:%S %Z")
    stats = summary_stats(videos)
    rows = "\n".join(_report_row(index, video) for index, video in enumerate(videos, start=1))
    best_day = stats.best_day or "N/A"

    return f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>YouTube Analytics Report</title>
  <style>{_REPORT_STYLE}</style>
</head>
<body>
  <h1>YouTube Analytics Report</h1>
  <div class="metadata">
    <p><strong>Search Query:</strong> {escape(metadata.query or "N/A")}</p>
    <p><strong>Search Type:</strong> {escape(metadata.type or "N/A")}</p>
    <p><strong>Total Results:</strong> {metadata.total_results}</p>
    <p><strong>Selected Videos:</strong> {len(videos)}</p>
    <p><strong>Generated:</strong> {escape(generated)}</p>
  </div>
  <div class="summary">
    <h2>Summary Statistics</h2>
    <p><strong>Total Views:</strong> {stats.total_views:,}</p>
    <p><strong>Total Likes:</strong> {stats.total_likes:,}</p>
    <p><strong>Avg Engagement:</strong> {stats.average_engagement:.2f}%</p>
    <p><strong>Best Day:</strong> {escape(best_day)}</p>
  </div>
  <table>
    <thead>
      <tr>
        <th>#</th>
        <th>Title</th>
        <th>Channel</th>
        <th>Views</th>
        <th>Likes</th>
        <th>Comments</th>
        <th>Engagement</th>
        <th>Duration</th>
      </tr>
    </thead>
    <tbody>
{rows}
    </tbody>
  </table>
  <div class="footer"><p>Generated by TubeLens</p></div>
  <script>
    window.onload = function () {{ window.print(); }};
  </script>
</body>
</html>
"""


def _report_row(index: int, video: Mapping[str, Any]) -> str:
    cells = (
        str(index),
        escape(records.video_title(video) or "N/A"),
        escape(records.channel_title(video) or "N/A"),
        f"{records.view_count(video):,}",
        f"{records.like_count(video):,}",
        f"{records.comment_count(video):,}",
        f"{video_engagement_rate(video):.2f}%",
        escape(records.duration_formatted(video)),
    )
    return "      <tr>" + "".join(f"<td>{cell}</td>" for cell in cells) + "</tr>"
