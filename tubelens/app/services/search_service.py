from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Literal, cast

from tubelens.app.repositories.client_storage_repository import (
    ClientStorageRepository,
    StorageQuotaExceededError,
)
from tubelens.app.services.filters import AdvancedFilters, FilterStore
from tubelens.app.services.response_extraction import (
    extract_channel_title,
    extract_channel_videos,
    extract_query,
    extract_results,
    extract_video,
)
from tubelens.app.services.selection_store import SearchMetadata, SelectionStore
from tubelens.app.services.youtube_api import YouTubeApi

SearchType = Literal["keyword", "video", "channel", "trending"]
SEARCH_TYPES: tuple[str, ...] = ("keyword", "video", "channel", "trending")

HISTORY_STORAGE_KEY = "searchHistory"
QUOTA_STORAGE_KEY = "quotaUsed"
LAST_RESULTS_STORAGE_KEY = "lastSearchResults"
TRENDING_QUERY_LABEL = "Trending Videos"
EMPTY_QUERY_MESSAGE = "Please enter a search query"

LOGGER = logging.getLogger("tubelens.search")


class SearchValidationError(ValueError):
    pass


@dataclass(frozen=True)
class SearchHistoryEntry:
    query: str
    type: str
    timestamp: str
    result_count: int

    def to_document(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "type": self.type,
            "timestamp": self.timestamp,
            "resultCount": self.result_count,
        }


@dataclass(frozen=True)
class SearchOutcome:
    results: list[dict[str, Any]]
    metadata: SearchMetadata
    raw_count: int
    active_filters: int
    duration_ms: int


class SearchService:
    """Runs a search end to end: validate, dispatch, unwrap, filter, remember."""

    def __init__(
        self,
        youtube_api: YouTubeApi,
        *,
        storage: ClientStorageRepository,
        filter_store: FilterStore,
        selection_store: SelectionStore,
        daily_search_limit: int = 100,
        history_limit: int = 10,
        trending_region_code: str = "US",
    ) -> None:
        self._youtube_api = youtube_api
        self._storage = storage
        self._filter_store = filter_store
        self._selection_store = selection_store
        self._daily_search_limit = daily_search_limit
        self._history_limit = history_limit
        self._trending_region_code = trending_region_code

    @property
    def daily_search_limit(self) -> int:
        return self._daily_search_limit

    def search(
        self,
        search_type: str,
        query: str = "",
        *,
        trending_count: int = 20,
        region_code: str | None = None,
    ) -> SearchOutcome:
        normalized_query = query.strip()
        self.validate(search_type, normalized_query)

        started_at = time.perf_counter()
        filters = self._filter_store.load()
        raw_results, metadata_query = self._dispatch(
            cast(SearchType, search_type),
            normalized_query,
            filters=filters,
            trending_count=trending_count,
            region_code=region_code or self._trending_region_code,
        )
        self._selection_store.set_search_metadata(metadata_query, search_type, len(raw_results))
        results = filters.apply(raw_results)
        self._store_last_results(results)

        if normalized_query and search_type != "trending":
            self._remember(normalized_query, search_type, len(results))
        self._increment_quota()

        duration_ms = int((time.perf_counter() - started_at) * 1000)
        LOGGER.info(
            "search completed type=%s raw=%s filtered=%s duration_ms=%s",
            search_type,
            len(raw_results),
            len(results),
            duration_ms,
        )
        return SearchOutcome(
            results=results,
            metadata=self._selection_store.metadata,
            raw_count=len(raw_results),
            active_filters=filters.active_count(),
            duration_ms=duration_ms,
        )

    def search_from_history(self, index: int) -> SearchOutcome:
        history = self.get_history()
        if index < 0 or index >= len(history):
            raise SearchValidationError(f"No recent search at position {index + 1}")
        entry = history[index]
        return self.search(entry.type, entry.query)

    def validate(self, search_type: str, query: str) -> None:
        if search_type not in SEARCH_TYPES:
            raise SearchValidationError(f"Unsupported search type: {search_type}")
        if search_type != "trending" and not query:
            raise SearchValidationError(EMPTY_QUERY_MESSAGE)
        if self.get_quota_used() >= self._daily_search_limit:
            raise SearchValidationError(
                f"Daily quota limit reached ({self._daily_search_limit} searches). "
                "Please try again tomorrow."
            )

    def get_history(self) -> list[SearchHistoryEntry]:
        raw = self._storage.get_item(HISTORY_STORAGE_KEY)
        if raw is None:
            return []
        try:
            documents = json.loads(raw)
        except json.JSONDecodeError:
            LOGGER.warning("discarding unparsable search history")
            self._storage.remove_item(HISTORY_STORAGE_KEY)
            return []
        if not isinstance(documents, list):
            return []

        entries: list[SearchHistoryEntry] = []
        for document in cast(list[Any], documents):
            if not isinstance(document, dict):
                continue
            item = cast(dict[str, Any], document)
            entry_query = item.get("query")
            if not isinstance(entry_query, str) or not entry_query.strip():
                continue
            result_count = item.get("resultCount")
            entries.append(
                SearchHistoryEntry(
                    query=entry_query,
                    type=str(item.get("type") or "keyword"),
                    timestamp=str(item.get("timestamp") or ""),
                    result_count=result_count if isinstance(result_count, int) else 0,
                )
            )
        return entries

    def remove_history_entry(self, query: str) -> list[SearchHistoryEntry]:
        remaining = [entry for entry in self.get_history() if entry.query != query]
        self._write_history(remaining)
        return remaining

    def clear_history(self) -> None:
        self._storage.remove_item(HISTORY_STORAGE_KEY)

    def get_quota_used(self) -> int:
        raw = self._storage.get_item(QUOTA_STORAGE_KEY)
        if raw is None:
            return 0
        try:
            return max(0, int(raw))
        except ValueError:
            return 0

    def get_quota_remaining(self) -> int:
        return max(0, self._daily_search_limit - self.get_quota_used())

    def reset_quota(self) -> None:
        self._storage.remove_item(QUOTA_STORAGE_KEY)

    def last_results(self) -> list[dict[str, Any]]:
        raw = self._storage.get_item(LAST_RESULTS_STORAGE_KEY)
        if raw is None:
            return []
        try:
            documents = json.loads(raw)
        except json.JSONDecodeError:
            self._storage.remove_item(LAST_RESULTS_STORAGE_KEY)
            return []
        if not isinstance(documents, list):
            return []
        return [cast(dict[str, Any], item) for item in cast(list[Any], documents) if isinstance(item, dict)]

    def _dispatch(
        self,
        search_type: SearchType,
        query: str,
        *,
        filters: AdvancedFilters,
        trending_count: int,
        region_code: str,
    ) -> tuple[list[dict[str, Any]], str]:
        if search_type == "keyword":
            response = self._youtube_api.search({"q": query, **filters.keyword_search_params()})
            return extract_results(response.data), extract_query(response.data) or query
        if search_type == "video":
            response = self._youtube_api.get_video(query)
            video = extract_video(response.data)
            return ([video] if video is not None else []), query
        if search_type == "channel":
            response = self._youtube_api.get_channel(query)
            return extract_channel_videos(response.data), extract_channel_title(response.data) or query

        response = self._youtube_api.get_trending(
            max_results=trending_count,
            region_code=region_code,
        )
        return extract_results(response.data), TRENDING_QUERY_LABEL

    def _remember(self, query: str, search_type: str, result_count: int) -> None:
        entry = SearchHistoryEntry(
            query=query,
            type=search_type,
            timestamp=datetime.now(UTC).isoformat(),
            result_count=result_count,
        )
        history = [entry, *(item for item in self.get_history() if item.query != query)]
        self._write_history(history[: self._history_limit])

    def _write_history(self, history: list[SearchHistoryEntry]) -> None:
        if not history:
            self._storage.remove_item(HISTORY_STORAGE_KEY)
            return
        self._set_quietly(
            HISTORY_STORAGE_KEY,
            json.dumps([entry.to_document() for entry in history]),
        )

    def _increment_quota(self) -> None:
        self._set_quietly(QUOTA_STORAGE_KEY, str(self.get_quota_used() + 1))

    def _store_last_results(self, results: list[dict[str, Any]]) -> None:
        self._set_quietly(LAST_RESULTS_STORAGE_KEY, json.dumps(results))

    def _set_quietly(self, key: str, value: str) -> None:
        try:
            self._storage.set_item(key, value)
        except StorageQuotaExceededError:
            LOGGER.error("client storage quota exceeded writing key=%s", key)
