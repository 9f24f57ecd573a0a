"""Derived metrics and chart-ready data sets for the selected videos.

Every figure that involves engagement goes through `video_engagement_rate`,
so the summary cards, the charts and the exports agree with each other.
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

from tubelens.app.services import video_records as records

HIGH_ENGAGEMENT_PERCENT = 5.0
MEDIUM_ENGAGEMENT_PERCENT = 3.0
TOP_CHART_SIZE = 20
LABEL_LENGTH = 30
UNKNOWN_LABEL = "Unknown"

ChartType = Literal["scatter", "bar", "line", "area"]
EngagementBand = Literal["high", "medium", "low"]
EngagementTier = Literal["high", "above_average", "below_average", "low"]

CHART_TYPES: tuple[str, ...] = ("scatter", "bar", "line", "area")
COLOR_PALETTE: tuple[str, ...] = (
    "#ef4444",
    "#f59e0b",
    "#10b981",
    "#3b82f6",
    "#8b5cf6",
    "#ec4899",
    "#14b8a6",
)
DEFAULT_COLOR = "#3b82f6"


@dataclass(frozen=True)
class AxisOption:
    label: str
    kind: Literal["numeric", "category"]


AXIS_OPTIONS: dict[str, AxisOption] = {
    "viewCount": AxisOption("View Count", "numeric"),
    "likeCount": AxisOption("Like Count", "numeric"),
    "commentCount": AxisOption("Comment Count", "numeric"),
    "engagementRate": AxisOption("Engagement Rate (%)", "numeric"),
    "durationMinutes": AxisOption("Duration (minutes)", "numeric"),
    "ageInDays": AxisOption("Age (days)", "numeric"),
    "publishedHour": AxisOption("Published Hour", "numeric"),
    "dayOfWeekName": AxisOption("Day of Week", "category"),
    "categoryName": AxisOption("Category", "category"),
    "channelTitle": AxisOption("Channel", "category"),
}
COLOR_OPTIONS: tuple[str, ...] = ("categoryName", "channelTitle", "engagementRate", "none")
SIZE_OPTIONS: tuple[str, ...] = ("engagementRate", "viewCount", "likeCount", "none")
NUMERIC_AXES: tuple[str, ...] = tuple(key for key, option in AXIS_OPTIONS.items() if option.kind == "numeric")


@dataclass(frozen=True)
class SummaryStats:
    video_count: int
    total_views: int
    total_likes: int
    total_comments: int
    average_engagement: float
    most_viewed: dict[str, Any] | None
    best_day: str | None
    best_day_count: int


@dataclass(frozen=True)
class PerformanceBar:
    name: str
    full_title: str
    video_id: str | None
    views: int
    engagement: float
    band: EngagementBand


@dataclass(frozen=True)
class EngagementRateBar:
    name: str
    full_title: str
    engagement: float
    views: int


@dataclass(frozen=True)
class EngagementRateChart:
    bars: list[EngagementRateBar]
    average_engagement: float
    high_engagement_count: int


@dataclass(frozen=True)
class ScatterPoint:
    x: int
    y: float
    title: str
    video_id: str | None
    thumbnail: str | None
    likes: int
    comments: int
    tier: EngagementTier


@dataclass(frozen=True)
class EngagementBreakdown:
    points: list[ScatterPoint]
    average_views: float
    average_engagement: float
    tier_counts: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class LikesCommentsPoint:
    index: int
    name: str
    full_title: str
    video_id: str | None
    likes: int
    comments: int


@dataclass(frozen=True)
class LikesVsComments:
    points: list[LikesCommentsPoint]
    correlation: float
    strength: str
    total_likes: int
    total_comments: int
    average_likes: float
    average_comments: float
    like_to_comment_ratio: float


@dataclass(frozen=True)
class CustomChart:
    chart_type: str
    x_axis: str
    y_axis: str
    color_by: str
    size_by: str
    series: list[dict[str, Any]]
    colors: dict[str, str]
    insight: str


def engagement_rate(views: int, likes: int, comments: int) -> float:
    if views <= 0:
        return 0.0
    return (likes + comments) / views * 100


def video_engagement_rate(video: Mapping[str, Any]) -> float:
    """Precomputed `engagementRate` when it parses, otherwise recomputed from counts."""
    precomputed = records.precomputed_engagement_rate(video)
    if precomputed is not None:
        return precomputed
    return engagement_rate(
        records.view_count(video),
        records.like_count(video),
        records.comment_count(video),
    )


def pearson_correlation(xs: Sequence[float], ys: Sequence[float]) -> float:
    if len(xs) != len(ys) or not xs:
        return 0.0
    n = len(xs)
    sum_x = sum(xs)
    sum_y = sum(ys)
    sum_xy = sum(x * y for x, y in zip(xs, ys, strict=True))
    sum_x2 = sum(x * x for x in xs)
    sum_y2 = sum(y * y for y in ys)

    numerator = n * sum_xy - sum_x * sum_y
    radicand = (n * sum_x2 - sum_x * sum_x) * (n * sum_y2 - sum_y * sum_y)
    if radicand <= 0:
        return 0.0
    denominator = math.sqrt(radicand)
    if denominator == 0:
        return 0.0
    return numerator / denominator


def correlation_strength(r: float) -> str:
    magnitude = abs(r)
    if magnitude >= 0.7:
        return "Strong"
    if magnitude >= 0.4:
        return "Moderate"
    if magnitude >= 0.2:
        return "Weak"
    return "Very Weak"


def engagement_band(rate: float) -> EngagementBand:
    if rate >= HIGH_ENGAGEMENT_PERCENT:
        return "high"
    if rate >= MEDIUM_ENGAGEMENT_PERCENT:
        return "medium"
    return "low"


def truncate_label(title: str, index: int) -> str:
    if not title:
        return f"Video {index + 1}"
    return f"{title[:LABEL_LENGTH]}..."


def summary_stats(videos: Sequence[Mapping[str, Any]]) -> SummaryStats:
    if not videos:
        return SummaryStats(
            video_count=0,
            total_views=0,
            total_likes=0,
            total_comments=0,
            average_engagement=0.0,
            most_viewed=None,
            best_day=None,
            best_day_count=0,
        )

    most_viewed = videos[0]
    day_counts: dict[str, int] = {}
    for video in videos:
        if records.view_count(video) > records.view_count(most_viewed):
            most_viewed = video
        day = records.day_of_week_name(video)
        if day is not None:
            day_counts[day] = day_counts.get(day, 0) + 1

    best_day: str | None = None
    best_day_count = 0
    for day, count in day_counts.items():
        if count > best_day_count:
            best_day, best_day_count = day, count

    return SummaryStats(
        video_count=len(videos),
        total_views=sum(records.view_count(video) for video in videos),
        total_likes=sum(records.like_count(video) for video in videos),
        total_comments=sum(records.comment_count(video) for video in videos),
        average_engagement=_mean([video_engagement_rate(video) for video in videos]),
        most_viewed=dict(most_viewed),
        best_day=best_day,
        best_day_count=best_day_count,
    )


def performance_overview(videos: Sequence[Mapping[str, Any]]) -> list[PerformanceBar]:
    ranked = sorted(videos, key=records.view_count, reverse=True)[:TOP_CHART_SIZE]
    bars: list[PerformanceBar] = []
    for index, video in enumerate(ranked):
        engagement = round(video_engagement_rate(video), 2)
        title = records.video_title(video)
        bars.append(
            PerformanceBar(
                name=truncate_label(title, index),
                full_title=title,
                video_id=records.normalize_video_id(video),
                views=records.view_count(video),
                engagement=engagement,
                band=engagement_band(engagement),
            )
        )
    return bars


def engagement_rate_chart(videos: Sequence[Mapping[str, Any]]) -> EngagementRateChart:
    rates = [video_engagement_rate(video) for video in videos]
    ranked = sorted(zip(videos, rates, strict=True), key=lambda pair: pair[1], reverse=True)
    bars = [
        EngagementRateBar(
            name=truncate_label(records.video_title(video), index),
            full_title=records.video_title(video),
            engagement=round(rate, 2),
            views=records.view_count(video),
        )
        for index, (video, rate) in enumerate(ranked[:TOP_CHART_SIZE])
    ]
    return EngagementRateChart(
        bars=bars,
        average_engagement=round(_mean(rates), 2),
        high_engagement_count=sum(1 for rate in rates if rate > HIGH_ENGAGEMENT_PERCENT),
    )


def engagement_breakdown(videos: Sequence[Mapping[str, Any]]) -> EngagementBreakdown:
    raw_points: list[tuple[Mapping[str, Any], int, float]] = []
    for video in videos:
        views = records.view_count(video)
        rate = video_engagement_rate(video)
        if views > 0 or rate > 0:
            raw_points.append((video, views, rate))

    average_views = _mean([float(views) for _, views, _ in raw_points])
    average_engagement = _mean([rate for _, _, rate in raw_points])
    tier_counts: dict[str, int] = {"high": 0, "above_average": 0, "below_average": 0, "low": 0}
    points: list[ScatterPoint] = []
    for video, views, rate in raw_points:
        tier = engagement_tier(rate, average_engagement)
        tier_counts[tier] += 1
        points.append(
            ScatterPoint(
                x=views,
                y=round(rate, 2),
                title=records.video_title(video) or "Untitled",
                video_id=records.normalize_video_id(video),
                thumbnail=records.thumbnail_url(video),
                likes=records.like_count(video),
                comments=records.comment_count(video),
                tier=tier,
            )
        )
    return EngagementBreakdown(
        points=points,
        average_views=round(average_views, 2),
        average_engagement=round(average_engagement, 2),
        tier_counts=tier_counts,
    )


def engagement_tier(rate: float, average: float) -> EngagementTier:
    if rate >= average * 1.5:
        return "high"
    if rate >= average:
        return "above_average"
    if rate >= average * 0.5:
        return "below_average"
    return "low"


def likes_vs_comments(videos: Sequence[Mapping[str, Any]]) -> LikesVsComments:
    candidates: list[LikesCommentsPoint] = []
    for index, video in enumerate(videos):
        likes = records.like_count(video)
        comments = records.comment_count(video)
        if likes <= 0 and comments <= 0:
            continue
        title = records.video_title(video)
        candidates.append(
            LikesCommentsPoint(
                index=index + 1,
                name=truncate_label(title, index),
                full_title=title or "Untitled",
                video_id=records.normalize_video_id(video),
                likes=likes,
                comments=comments,
            )
        )
    points = sorted(candidates, key=lambda point: point.likes, reverse=True)[:TOP_CHART_SIZE]

    likes = [float(point.likes) for point in points]
    comments = [float(point.comments) for point in points]
    correlation = pearson_correlation(likes, comments)
    total_likes = sum(point.likes for point in points)
    total_comments = sum(point.comments for point in points)
    return LikesVsComments(
        points=points,
        correlation=round(correlation, 4),
        strength=correlation_strength(correlation),
        total_likes=total_likes,
        total_comments=total_comments,
        average_likes=round(_mean(likes), 2),
        average_comments=round(_mean(comments), 2),
        like_to_comment_ratio=round(total_likes / total_comments, 2) if total_comments else 0.0,
    )


def build_custom_chart(
    videos: Sequence[Mapping[str, Any]],
    *,
    chart_type: str = "scatter",
    x_axis: str = "durationMinutes",
    y_axis: str = "viewCount",
    color_by: str = "categoryName",
    size_by: str = "engagementRate",
    now: datetime | None = None,
) -> CustomChart:
    if chart_type not in CHART_TYPES:
        raise ValueError(f"Unsupported chart type: {chart_type}")
    for axis in (x_axis, y_axis):
        if axis not in AXIS_OPTIONS:
            raise ValueError(f"Unsupported chart axis: {axis}")
    if color_by not in COLOR_OPTIONS:
        raise ValueError(f"Unsupported colour encoding: {color_by}")
    if size_by not in SIZE_OPTIONS:
        raise ValueError(f"Unsupported size encoding: {size_by}")
    if chart_type != "scatter" and AXIS_OPTIONS[y_axis].kind != "numeric":
        raise ValueError(
            f"{chart_type.capitalize()} charts need a numeric Y axis; "
            f"{AXIS_OPTIONS[y_axis].label} is categorical"
        )

    rows = [chart_row(video, now=now) for video in videos]
    if chart_type == "scatter":
        series = [
            {
                "x": row[x_axis],
                "y": row[y_axis],
                "color": row[color_by] if color_by != "none" else "default",
                "size": row[size_by] if size_by != "none" else 100,
                "title": row["title"],
                "channelTitle": row["channelTitle"],
            }
            for row in rows
        ]
    elif AXIS_OPTIONS[x_axis].kind == "category":
        series = _grouped_by_mean(rows, x_axis, y_axis)
    else:
        ordered = sorted(rows, key=lambda row: row[x_axis])
        series = [
            {"name": row[x_axis], "value": row[y_axis], "title": row["title"], "index": index}
            for index, row in enumerate(ordered)
        ]

    return CustomChart(
        chart_type=chart_type,
        x_axis=x_axis,
        y_axis=y_axis,
        color_by=color_by,
        size_by=size_by,
        series=series,
        colors=_color_map(rows, color_by),
        insight=_custom_chart_insight(rows, series, chart_type, x_axis, y_axis),
    )


def chart_row(video: Mapping[str, Any], *, now: datetime | None = None) -> dict[str, Any]:
    duration = records.duration_seconds(video)
    return {
        "title": records.video_title(video),
        "viewCount": records.view_count(video),
        "likeCount": records.like_count(video),
        "commentCount": records.comment_count(video),
        "engagementRate": round(video_engagement_rate(video), 2),
        "durationMinutes": round(duration / 60, 1) if duration else 0.0,
        "ageInDays": records.age_in_days(video, now=now) or 0,
        "publishedHour": records.published_hour(video) or 0,
        "dayOfWeekName": records.day_of_week_name(video) or UNKNOWN_LABEL,
        "categoryName": records.category_name(video) or UNKNOWN_LABEL,
        "channelTitle": records.channel_title(video) or UNKNOWN_LABEL,
    }


def format_compact_number(value: float | int | None) -> str:
    if not value:
        return "0"
    magnitude = abs(value)
    for threshold, suffix in ((1_000_000_000, "B"), (1_000_000, "M"), (1_000, "K")):
        if magnitude >= threshold:
            return f"{value / threshold:.1f}{suffix}"
    return f"{value:.0f}"


def _grouped_by_mean(
    rows: Sequence[Mapping[str, Any]],
    x_axis: str,
    y_axis: str,
) -> list[dict[str, Any]]:
    groups: dict[str, list[float]] = {}
    for row in rows:
        groups.setdefault(str(row[x_axis]), []).append(float(row[y_axis]))
    return [
        {"name": name, "value": round(_mean(values), 2), "count": len(values)}
        for name, values in sorted(groups.items())
    ]


def _color_map(rows: Sequence[Mapping[str, Any]], color_by: str) -> dict[str, str]:
    if color_by == "none":
        return {"default": DEFAULT_COLOR}
    colors: dict[str, str] = {}
    for row in rows:
        key = str(row[color_by])
        if key not in colors:
            colors[key] = COLOR_PALETTE[len(colors) % len(COLOR_PALETTE)]
    return colors


def _custom_chart_insight(
    rows: Sequence[Mapping[str, Any]],
    series: Sequence[Mapping[str, Any]],
    chart_type: str,
    x_axis: str,
    y_axis: str,
) -> str:
    if not rows:
        return "No data available"

    x_label = AXIS_OPTIONS[x_axis].label
    y_label = AXIS_OPTIONS[y_axis].label
    if chart_type == "scatter":
        if AXIS_OPTIONS[x_axis].kind == "category" or AXIS_OPTIONS[y_axis].kind == "category":
            return f"Distribution of {y_label} across {x_label}"
        r = pearson_correlation(
            [float(row[x_axis]) for row in rows],
            [float(row[y_axis]) for row in rows],
        )
        if abs(r) > 0.7:
            text = "Strong positive correlation" if r > 0 else "Strong negative correlation"
        elif abs(r) > 0.4:
            text = "Moderate positive correlation" if r > 0 else "Moderate negative correlation"
        else:
            text = "Weak or no correlation"
        return f"{text} (r = {r:.2f}) between {x_label} and {y_label}"

    if not series:
        return "Select different metrics to see insights"
    top = max(series, key=lambda entry: float(entry["value"]))
    return f"Highest average {y_label}: {top['name']} ({format_compact_number(float(top['value']))})"


def _mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)
