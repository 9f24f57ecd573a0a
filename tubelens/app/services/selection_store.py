from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from threading import RLock
from typing import Any, cast

from tubelens.app.repositories.client_storage_repository import (
    ClientStorageRepository,
    StorageQuotaExceededError,
)
from tubelens.app.repositories.common import epoch_ms
from tubelens.app.services.video_records import normalize_video_id

SELECTION_STORAGE_KEY = "youtube_selected_videos"
DEFAULT_SELECTION_TTL_SECONDS = 24 * 60 * 60

LOGGER = logging.getLogger("tubelens.selection")


@dataclass(frozen=True)
class SearchMetadata:
    query: str = ""
    type: str = ""
    total_results: int = 0


@dataclass(frozen=True)
class StoredSelection:
    selected_videos: list[dict[str, Any]]
    metadata: SearchMetadata
    timestamp: int | None
    expires_at: int | None


class SelectionStore:
    """Selected videos plus the metadata of the search they came from.

    At most one entry exists per normalized video id. Every mutation is
    written through to client storage with a fresh expiry; an empty selection
    is stored as "no entry".
    """

    def __init__(
        self,
        storage: ClientStorageRepository,
        *,
        ttl_seconds: int = DEFAULT_SELECTION_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._storage = storage
        self._ttl_ms = ttl_seconds * 1000
        self._clock = clock
        self._lock = RLock()
        self._videos: list[dict[str, Any]] = []
        self._metadata = SearchMetadata()
        self.reload()

    @property
    def metadata(self) -> SearchMetadata:
        return self._metadata

    def reload(self) -> None:
        with self._lock:
            stored = self.load()
            if stored is None:
                self._videos = []
                self._metadata = SearchMetadata()
                return
            self._videos = []
            seen: set[str] = set()
            for video in stored.selected_videos:
                video_id = normalize_video_id(video)
                if video_id is None or video_id in seen:
                    continue
                seen.add(video_id)
                self._videos.append(video)
            self._metadata = stored.metadata

    def load(self) -> StoredSelection | None:
        raw = self._storage.get_item(SELECTION_STORAGE_KEY)
        if raw is None:
            return None
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            LOGGER.warning("discarding unparsable persisted selection")
            self._storage.remove_item(SELECTION_STORAGE_KEY)
            return None
        if not isinstance(data, dict):
            self._storage.remove_item(SELECTION_STORAGE_KEY)
            return None
        payload = cast(dict[str, Any], data)

        expires_at = _optional_int(payload.get("expiresAt"))
        if expires_at is not None and epoch_ms(self._clock()) > expires_at:
            LOGGER.info("persisted selection expired; removing it")
            self._storage.remove_item(SELECTION_STORAGE_KEY)
            return None

        selected = payload.get("selectedVideos")
        if not isinstance(selected, list):
            LOGGER.warning("discarding persisted selection without a video list")
            self._storage.remove_item(SELECTION_STORAGE_KEY)
            return None

        return StoredSelection(
            selected_videos=[
                cast(dict[str, Any], video)
                for video in cast(list[Any], selected)
                if isinstance(video, dict)
            ],
            metadata=SearchMetadata(
                query=str(payload.get("searchQuery") or ""),
                type=str(payload.get("searchType") or ""),
                total_results=_optional_int(payload.get("totalResults")) or 0,
            ),
            timestamp=_optional_int(payload.get("timestamp")),
            expires_at=expires_at,
        )

    def time_remaining_ms(self) -> int:
        stored = self.load()
        if stored is None or stored.expires_at is None:
            return 0
        return max(0, stored.expires_at - epoch_ms(self._clock()))

    def add_video(self, video: Mapping[str, Any]) -> bool:
        video_id = normalize_video_id(video)
        if video_id is None:
            LOGGER.debug("ignoring video record without an id")
            return False
        with self._lock:
            if video_id in self._selected_id_set():
                return False
            self._videos.append(dict(video))
            self._save()
        return True

    def remove_video(self, video_id: str) -> bool:
        with self._lock:
            remaining = [video for video in self._videos if normalize_video_id(video) != video_id]
            if len(remaining) == len(self._videos):
                return False
            self._videos = remaining
            self._save()
        return True

    def toggle_video(self, video: Mapping[str, Any]) -> bool:
        """Flip membership; returns whether the video is selected afterwards."""
        video_id = normalize_video_id(video)
        if video_id is None:
            return False
        with self._lock:
            if video_id in self._selected_id_set():
                self.remove_video(video_id)
                return False
            self.add_video(video)
            return True

    def select_all(self, videos: Iterable[Mapping[str, Any]]) -> int:
        added = 0
        with self._lock:
            seen = self._selected_id_set()
            for video in videos:
                video_id = normalize_video_id(video)
                if video_id is None or video_id in seen:
                    continue
                seen.add(video_id)
                self._videos.append(dict(video))
                added += 1
            if added:
                self._save()
        return added

    def clear_selection(self) -> None:
        with self._lock:
            self._videos = []
            self._metadata = SearchMetadata()
            self._storage.remove_item(SELECTION_STORAGE_KEY)

    def set_search_metadata(self, query: str, search_type: str, total_results: int) -> None:
        with self._lock:
            self._metadata = SearchMetadata(
                query=query,
                type=search_type,
                total_results=total_results,
            )
            self._save()

    def is_video_selected(self, video_or_id: Mapping[str, Any] | str) -> bool:
        if isinstance(video_or_id, str):
            video_id: str | None = video_or_id
        else:
            video_id = normalize_video_id(video_or_id)
        if video_id is None:
            return False
        with self._lock:
            return video_id in self._selected_id_set()

    def get_selected_videos(self) -> list[dict[str, Any]]:
        with self._lock:
            return [dict(video) for video in self._videos]

    def get_selected_count(self) -> int:
        with self._lock:
            return len(self._videos)

    def has_selection(self) -> bool:
        return self.get_selected_count() > 0

    def get_selected_ids(self) -> list[str]:
        with self._lock:
            return [
                video_id
                for video_id in (normalize_video_id(video) for video in self._videos)
                if video_id is not None
            ]

    def are_all_selected(self, videos: Iterable[Mapping[str, Any]]) -> bool:
        candidates = list(videos)
        if not candidates:
            return False
        with self._lock:
            selected = self._selected_id_set()
        return all(normalize_video_id(video) in selected for video in candidates)

    def _selected_id_set(self) -> set[str]:
        return set(self.get_selected_ids())

    def _save(self) -> None:
        if not self._videos:
            self._storage.remove_item(SELECTION_STORAGE_KEY)
            return
        now_ms = epoch_ms(self._clock())
        document = {
            "selectedVideos": self._videos,
            "searchQuery": self._metadata.query,
            "searchType": self._metadata.type,
            "totalResults": self._metadata.total_results,
            "timestamp": now_ms,
            "expiresAt": now_ms + self._ttl_ms,
        }
        try:
            self._storage.set_item(SELECTION_STORAGE_KEY, json.dumps(document))
        except StorageQuotaExceededError:
            LOGGER.error("client storage quota exceeded saving selection; dropping persisted copy")
            self._storage.remove_item(SELECTION_STORAGE_KEY)


def _optional_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    return None
