from __future__ import annotations

import csv
import io
from datetime import UTC, datetime

from conftest import sample_video

from tubelens.app.services.export_service import CSV_HEADERS, csv_filename, render_csv, render_report
from tubelens.app.services.selection_store import SearchMetadata


def test_csv_filename_uses_epoch_milliseconds() -> None:
    assert csv_filename(1_700_000_000.5) == "youtube_analytics_1700000000500.csv"


def test_csv_has_header_and_one_row_per_video() -> None:
    videos = [
        sample_video("a", title='He said "hi", then left', tags=["one", "two"]),
        sample_video("b", durationSeconds=3_723, engagementRate=12.3456),
    ]

    rows = list(csv.reader(io.StringIO(render_csv(videos))))

    assert tuple(rows[0]) == CSV_HEADERS
    assert len(rows) == 3
    first = dict(zip(CSV_HEADERS, rows[1], strict=True))
    assert first["Video ID"] == "a"
    assert first["Title"] == 'He said "hi", then left'
    assert first["Views"] == "1000"
    assert first["Engagement Rate"] == "5.0"
    assert first["Duration"] == "5:00"
    assert first["Published Date"] == "2024-03-04T15:30:00Z"
    assert first["Tags"] == "one, two"
    second = dict(zip(CSV_HEADERS, rows[2], strict=True))
    assert second["Engagement Rate"] == "12.35"
    assert second["Duration"] == "1:02:03"


def test_csv_quotes_only_when_needed() -> None:
    text = render_csv([sample_video("plain", title="Plain title", tags=[])])
    assert text.splitlines()[1].startswith("plain,Plain title,Test Channel,1000,")


def test_report_escapes_values_and_prints_on_load() -> None:
    videos = [sample_video("a", title="<script>alert(1)</script>", viewCount=1_234_567)]
    metadata = SearchMetadata(query="cats & dogs", type="keyword", total_results=50)

    html = render_report(videos, metadata, generated_at=datetime(2024, 3, 14, 12, 0, tzinfo=UTC))

    assert "<script>alert(1)</script>" not in html
    assert "&lt;script&gt;alert(1)&lt;/script&gt;" in html
    assert "cats &amp; dogs" in html
    assert "<strong>Total Results:</strong> 50" in html
    assert "<strong>Selected Videos:</strong> 1" in html
    assert "1,234,567" in html
    assert "2024-03-14 12:00:00 UTC" in html
    assert "window.print()" in html


def test_report_without_metadata_uses_placeholders() -> None:
    html = render_report([sample_video("a")], SearchMetadata())
    assert "<strong>Search Query:</strong> N/A" in html
