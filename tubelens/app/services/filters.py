from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from datetime import UTC, date, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from tubelens.app.repositories.client_storage_repository import (
    ClientStorageRepository,
    StorageQuotaExceededError,
)
from tubelens.app.services import video_records as records

FILTERS_STORAGE_KEY = "advancedFilters"
SHORT_MAX_SECONDS = 240
LONG_MIN_SECONDS = 1200

DurationBucket = Literal["any", "short", "medium", "long"]

VIDEO_CATEGORIES: tuple[tuple[str, str], ...] = (
    ("", "All Categories"),
    ("1", "Film & Animation"),
    ("2", "Autos & Vehicles"),
    ("10", "Music"),
    ("15", "Pets & Animals"),
    ("17", "Sports"),
    ("19", "Travel & Events"),
    ("20", "Gaming"),
    ("22", "People & Blogs"),
    ("23", "Comedy"),
    ("24", "Entertainment"),
    ("25", "News & Politics"),
    ("26", "Howto & Style"),
    ("27", "Education"),
    ("28", "Science & Technology"),
    ("29", "Nonprofits & Activism"),
)
DURATION_OPTIONS: tuple[tuple[str, str], ...] = (
    ("any", "Any Duration"),
    ("short", "Short (< 4 minutes)"),
    ("medium", "Medium (4-20 minutes)"),
    ("long", "Long (> 20 minutes)"),
)
_CATEGORY_IDS = frozenset(category_id for category_id, _ in VIDEO_CATEGORIES)

LOGGER = logging.getLogger("tubelens.filters")


class AdvancedFilters(BaseModel):
    """Client-side narrowing of a result set; `category` is sent to the backend instead."""

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    min_views: int = Field(default=0, ge=0, alias="minViews")
    min_likes: int = Field(default=0, ge=0, alias="minLikes")
    min_comments: int = Field(default=0, ge=0, alias="minComments")
    published_after: str = Field(default="", alias="publishedAfter")
    category: str = ""
    duration: DurationBucket = "any"
    max_results: int = Field(default=50, ge=1, le=50, alias="maxResults")

    @field_validator("published_after", mode="before")
    @classmethod
    def _validate_published_after(cls, value: Any) -> str:
        if value is None:
            return ""
        if not isinstance(value, str):
            raise ValueError("publishedAfter must be a YYYY-MM-DD date string")
        normalized = value.strip()
        if not normalized:
            return ""
        date.fromisoformat(normalized[:10])
        return normalized[:10]

    @field_validator("category", mode="before")
    @classmethod
    def _validate_category(cls, value: Any) -> str:
        if value is None:
            return ""
        normalized = str(value).strip()
        if normalized not in _CATEGORY_IDS:
            raise ValueError(f"unknown video category id: {normalized}")
        return normalized

    def active_count(self) -> int:
        defaults = AdvancedFilters()
        count = 0
        for name in type(self).model_fields:
            if name == "max_results":
                continue
            value = getattr(self, name)
            if value != getattr(defaults, name) and value not in ("", 0):
                count += 1
        return count

    def matches(self, video: Mapping[str, Any]) -> bool:
        if self.min_views > 0 and records.view_count(video) < self.min_views:
            return False
        if self.min_likes > 0 and records.like_count(video) < self.min_likes:
            return False
        if self.min_comments > 0 and records.comment_count(video) < self.min_comments:
            return False
        if self.published_after:
            published = records.published_datetime(video)
            threshold = datetime.fromisoformat(self.published_after).replace(tzinfo=UTC)
            if published is not None and published < threshold:
                return False
        if self.duration != "any":
            seconds = records.duration_seconds(video)
            if seconds and not _in_duration_bucket(seconds, self.duration):
                return False
        return True

    def apply(self, videos: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
        return [dict(video) for video in videos if self.matches(video)]

    def keyword_search_params(self) -> dict[str, Any]:
        params: dict[str, Any] = {"maxResults": self.max_results}
        if self.category:
            params["videoCategoryId"] = self.category
        if self.published_after:
            params["publishedAfter"] = f"{self.published_after}T00:00:00Z"
        return params


def _in_duration_bucket(seconds: int, bucket: DurationBucket) -> bool:
    if bucket == "short":
        return seconds < SHORT_MAX_SECONDS
    if bucket == "medium":
        return SHORT_MAX_SECONDS <= seconds <= LONG_MIN_SECONDS
    if bucket == "long":
        return seconds > LONG_MIN_SECONDS
    return True


class FilterStore:
    def __init__(self, storage: ClientStorageRepository) -> None:
        self._storage = storage

    def load(self) -> AdvancedFilters:
        raw = self._storage.get_item(FILTERS_STORAGE_KEY)
        if raw is None:
            return AdvancedFilters()
        try:
            return AdvancedFilters.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError):
            LOGGER.warning("discarding invalid persisted advanced filters")
            self._storage.remove_item(FILTERS_STORAGE_KEY)
            return AdvancedFilters()

    def save(self, filters: AdvancedFilters) -> AdvancedFilters:
        try:
            self._storage.set_item(
                FILTERS_STORAGE_KEY,
                json.dumps(filters.model_dump(by_alias=True)),
            )
        except StorageQuotaExceededError:
            LOGGER.error("client storage quota exceeded saving advanced filters")
        return filters

    def update(self, changes: Mapping[str, Any]) -> AdvancedFilters:
        merged = {**self.load().model_dump(by_alias=True), **dict(changes)}
        return self.save(AdvancedFilters.model_validate(merged))

    def reset(self) -> AdvancedFilters:
        self._storage.remove_item(FILTERS_STORAGE_KEY)
        return AdvancedFilters()
