"""Accessors over video records.

Records arrive either flat (``videoId``, ``viewCount``, ...) as produced by the
backend's normaliser, or in the legacy nested YouTube shape (``id.videoId``,
``snippet``, ``statistics``, ``contentDetails``). Everything downstream reads
records through these helpers so both shapes behave the same.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any, cast

WEEKDAY_NAMES: tuple[str, ...] = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)
_ISO_DURATION_PATTERN = re.compile(
    r"^P(?:(?P<days>\d+)D)?(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+)S)?)?$"
)

VideoRecord = Mapping[str, Any]


def normalize_video_id(video: object) -> str | None:
    """Single identity rule: ``videoId``, then ``id.videoId``, then a scalar ``id``."""
    if not isinstance(video, Mapping):
        return None
    record = cast(Mapping[str, Any], video)

    direct = _text(record.get("videoId"))
    if direct is not None:
        return direct

    raw_id = record.get("id")
    if isinstance(raw_id, Mapping):
        return _text(cast(Mapping[str, Any], raw_id).get("videoId"))
    if isinstance(raw_id, int) and not isinstance(raw_id, bool):
        return str(raw_id)
    return _text(raw_id)


def video_title(video: VideoRecord) -> str:
    return _first_text(video, ("title",), ("snippet", "title")) or ""


def channel_title(video: VideoRecord) -> str:
    return _first_text(video, ("channelTitle",), ("snippet", "channelTitle")) or ""


def channel_id(video: VideoRecord) -> str | None:
    return _first_text(video, ("channelId",), ("snippet", "channelId"))


def view_count(video: VideoRecord) -> int:
    return _first_int(video, ("viewCount",), ("statistics", "viewCount"))


def like_count(video: VideoRecord) -> int:
    return _first_int(video, ("likeCount",), ("statistics", "likeCount"))


def comment_count(video: VideoRecord) -> int:
    return _first_int(video, ("commentCount",), ("statistics", "commentCount"))


def published_at(video: VideoRecord) -> str | None:
    return _first_text(video, ("publishedAt",), ("snippet", "publishedAt"))


def published_datetime(video: VideoRecord) -> datetime | None:
    return parse_timestamp(published_at(video))


def category_name(video: VideoRecord) -> str:
    return _first_text(video, ("categoryName",)) or ""


def category_id(video: VideoRecord) -> str | None:
    return _first_text(video, ("categoryId",), ("snippet", "categoryId"))


def tags(video: VideoRecord) -> list[str]:
    raw = _dig(video, ("tags",))
    if raw is None:
        raw = _dig(video, ("snippet", "tags"))
    if not isinstance(raw, list):
        return []
    return [str(tag) for tag in cast(list[Any], raw) if tag is not None and str(tag).strip()]


def thumbnail_url(video: VideoRecord) -> str | None:
    thumbnails = _dig(video, ("thumbnails",))
    if thumbnails is None:
        thumbnails = _dig(video, ("snippet", "thumbnails"))
    if isinstance(thumbnails, str):
        return _text(thumbnails)
    if not isinstance(thumbnails, Mapping):
        return None
    thumbnail_map = cast(Mapping[str, Any], thumbnails)
    for size in ("high", "medium", "default"):
        entry = thumbnail_map.get(size)
        if isinstance(entry, Mapping):
            url = _text(cast(Mapping[str, Any], entry).get("url"))
            if url is not None:
                return url
        url = _text(entry)
        if url is not None:
            return url
    return None


def duration_seconds(video: VideoRecord) -> int | None:
    for path in (("durationSeconds",), ("duration",)):
        parsed = _to_number(_dig(video, path))
        if parsed is not None:
            return int(parsed)
    iso_duration = _first_text(video, ("duration",), ("contentDetails", "duration"))
    if iso_duration is None:
        return None
    return parse_iso_duration(iso_duration)


def duration_formatted(video: VideoRecord) -> str:
    formatted = _first_text(video, ("durationFormatted",))
    if formatted is not None:
        return formatted
    seconds = duration_seconds(video)
    if seconds is None:
        return ""
    return format_duration(seconds)


def precomputed_engagement_rate(video: VideoRecord) -> float | None:
    return _to_number(_dig(video, ("engagementRate",)))


def day_of_week_name(video: VideoRecord) -> str | None:
    features_day = _first_text(video, ("publishedFeatures", "dayOfWeekName"))
    if features_day is not None:
        return features_day
    published = published_datetime(video)
    if published is None:
        return None
    return WEEKDAY_NAMES[published.weekday()]


def published_hour(video: VideoRecord) -> int | None:
    hour = _to_number(_dig(video, ("publishedFeatures", "publishedHour")))
    if hour is not None:
        return int(hour)
    published = published_datetime(video)
    if published is None:
        return None
    return published.hour


def age_in_days(video: VideoRecord, *, now: datetime | None = None) -> int | None:
    published = published_datetime(video)
    if published is None:
        return None
    reference = now or datetime.now(UTC)
    return max(0, (reference - published).days)


def parse_timestamp(raw: str | None) -> datetime | None:
    if not raw:
        return None
    normalized = raw.strip()
    if normalized.endswith("Z"):
        normalized = f"{normalized[:-1]}+00:00"
    try:
        parsed = datetime.fromisoformat(normalized)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def parse_iso_duration(raw: str) -> int | None:
    match = _ISO_DURATION_PATTERN.match(raw.strip().upper())
    if match is None:
        return None
    parts = {name: int(value) for name, value in match.groupdict().items() if value is not None}
    return (
        parts.get("days", 0) * 86_400
        + parts.get("hours", 0) * 3_600
        + parts.get("minutes", 0) * 60
        + parts.get("seconds", 0)
    )


def format_duration(seconds: int) -> str:
    hours, remainder = divmod(max(0, seconds), 3_600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def to_int(value: Any) -> int:
    parsed = _to_number(value)
    if parsed is None:
        return 0
    return int(parsed)


def _to_number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _dig(video: VideoRecord, path: tuple[str, ...]) -> Any:
    current: Any = video
    for key in path:
        if not isinstance(current, Mapping):
            return None
        current = cast(Mapping[str, Any], current).get(key)
    return current


def _first_text(video: VideoRecord, *paths: tuple[str, ...]) -> str | None:
    for path in paths:
        value = _text(_dig(video, path))
        if value is not None:
            return value
    return None


def _first_int(video: VideoRecord, *paths: tuple[str, ...]) -> int:
    for path in paths:
        parsed = _to_number(_dig(video, path))
        if parsed is not None:
            return int(parsed)
    return 0


def _text(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None
