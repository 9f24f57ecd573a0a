from __future__ import annotations

import json

import pytest
from conftest import API_URL, FakeBackend, sample_video

from tubelens.app.repositories.client_storage_repository import ClientStorageRepository
from tubelens.app.services.filters import FilterStore
from tubelens.app.services.http_client import ApiClient, ApiClientError
from tubelens.app.services.notifications import NotificationBus
from tubelens.app.services.performance_metrics import PerformanceMetricsBuffer
from tubelens.app.services.search_service import (
    HISTORY_STORAGE_KEY,
    QUOTA_STORAGE_KEY,
    SearchService,
    SearchValidationError,
)
from tubelens.app.services.selection_store import SELECTION_STORAGE_KEY, SelectionStore
from tubelens.app.services.token_store import TokenStore
from tubelens.app.services.youtube_api import YouTubeApi


def _service(
    storage: ClientStorageRepository,
    *,
    daily_search_limit: int = 100,
    history_limit: int = 10,
) -> tuple[SearchService, SelectionStore, FilterStore]:
    client = ApiClient(
        API_URL,
        token_store=TokenStore(storage),
        notifications=NotificationBus(),
        metrics=PerformanceMetricsBuffer(),
    )
    selection = SelectionStore(storage)
    filters = FilterStore(storage)
    service = SearchService(
        YouTubeApi(client),
        storage=storage,
        filter_store=filters,
        selection_store=selection,
        daily_search_limit=daily_search_limit,
        history_limit=history_limit,
    )
    return service, selection, filters


def test_keyword_search_unwraps_and_records_history(
    storage: ClientStorageRepository,
    fake_backend: FakeBackend,
) -> None:
    service, selection, _ = _service(storage)
    fake_backend.reply(
        "GET",
        "/youtube/search",
        {"success": True, "data": {"results": [sample_video("a"), sample_video("b")], "query": "python tips"}},
    )

    outcome = service.search("keyword", "  python tips  ")

    (call,) = fake_backend.calls
    assert call.query == {"q": "python tips", "maxResults": "50"}
    assert [video["videoId"] for video in outcome.results] == ["a", "b"]
    assert outcome.raw_count == 2
    assert outcome.metadata.query == "python tips"
    assert selection.metadata.type == "keyword"
    assert selection.metadata.total_results == 2
    (entry,) = service.get_history()
    assert (entry.query, entry.type, entry.result_count) == ("python tips", "keyword", 2)
    assert service.get_quota_used() == 1
    assert service.last_results() == outcome.results


def test_double_wrapped_and_bare_list_replies_are_unwrapped(
    storage: ClientStorageRepository,
    fake_backend: FakeBackend,
) -> None:
    service, _, _ = _service(storage)
    fake_backend.reply("GET", "/youtube/search", {"data": {"data": {"results": [sample_video("x")]}}})
    fake_backend.reply("GET", "/youtube/search", [sample_video("y")])

    first = service.search("keyword", "one")
    second = service.search("keyword", "two")

    assert [video["videoId"] for video in first.results] == ["x"]
    assert [video["videoId"] for video in second.results] == ["y"]


def test_video_search_wraps_single_record(
    storage: ClientStorageRepository,
    fake_backend: FakeBackend,
) -> None:
    service, _, _ = _service(storage)
    fake_backend.reply("GET", "/youtube/video/dQw4w9WgXcQ", {"success": True, "data": {"video": sample_video("dQw4w9WgXcQ")}})

    outcome = service.search("video", "dQw4w9WgXcQ")

    assert [video["videoId"] for video in outcome.results] == ["dQw4w9WgXcQ"]
    assert outcome.metadata.query == "dQw4w9WgXcQ"


def test_channel_search_labels_with_channel_title(
    storage: ClientStorageRepository,
    fake_backend: FakeBackend,
) -> None:
    service, _, _ = _service(storage)
    fake_backend.reply(
        "GET",
        "/youtube/channel/UC123",
        {"data": {"channel": {"title": "Tech Talks"}, "videos": [sample_video("c1"), sample_video("c2")]}},
    )

    outcome = service.search("channel", "UC123")

    assert outcome.metadata.query == "Tech Talks"
    assert outcome.metadata.type == "channel"
    assert len(outcome.results) == 2


def test_trending_needs_no_query_and_skips_history(
    storage: ClientStorageRepository,
    fake_backend: FakeBackend,
) -> None:
    service, _, _ = _service(storage)
    fake_backend.reply("GET", "/youtube/trending", {"data": {"results": [sample_video("t")]}})

    outcome = service.search("trending", trending_count=5, region_code="GB")

    assert fake_backend.calls[0].query == {"maxResults": "5", "regionCode": "GB"}
    assert outcome.metadata.query == "Trending Videos"
    assert service.get_history() == []
    assert service.get_quota_used() == 1


def test_empty_query_is_rejected_before_any_request(
    storage: ClientStorageRepository,
    fake_backend: FakeBackend,
) -> None:
    service, _, _ = _service(storage)

    with pytest.raises(SearchValidationError, match="Please enter a search query"):
        service.search("keyword", "   ")

    assert fake_backend.calls == []
    assert service.get_quota_used() == 0


def test_daily_limit_blocks_further_searches(
    storage: ClientStorageRepository,
    fake_backend: FakeBackend,
) -> None:
    service, _, _ = _service(storage, daily_search_limit=2)
    fake_backend.reply("GET", "/youtube/search", {"data": {"results": []}})
    service.search("keyword", "one")
    service.search("keyword", "two")

    with pytest.raises(SearchValidationError, match="Daily quota limit reached"):
        service.search("keyword", "three")

    assert len(fake_backend.calls) == 2
    assert service.get_quota_remaining() == 0
    service.reset_quota()
    assert storage.get_item(QUOTA_STORAGE_KEY) is None
    assert service.get_quota_remaining() == 2


def test_history_is_deduplicated_most_recent_first_and_capped(
    storage: ClientStorageRepository,
    fake_backend: FakeBackend,
) -> None:
    service, _, _ = _service(storage, history_limit=3)
    fake_backend.reply("GET", "/youtube/search", {"data": {"results": []}})
    for query in ("a", "b", "c", "a", "d"):
        service.search("keyword", query)

    assert [entry.query for entry in service.get_history()] == ["d", "a", "c"]

    service.remove_history_entry("a")
    assert [entry.query for entry in service.get_history()] == ["d", "c"]

    service.clear_history()
    assert storage.get_item(HISTORY_STORAGE_KEY) is None


def test_history_documents_use_camel_case(
    storage: ClientStorageRepository,
    fake_backend: FakeBackend,
) -> None:
    service, _, _ = _service(storage)
    fake_backend.reply("GET", "/youtube/search", {"data": {"results": [sample_video("a")]}})
    service.search("keyword", "python")

    (document,) = json.loads(storage.get_item(HISTORY_STORAGE_KEY) or "[]")
    assert set(document) == {"query", "type", "timestamp", "resultCount"}


def test_search_from_history_reruns_entry(
    storage: ClientStorageRepository,
    fake_backend: FakeBackend,
) -> None:
    service, _, _ = _service(storage)
    fake_backend.reply("GET", "/youtube/channel/UC9", {"data": {"channel": {"channelTitle": "Nine"}, "videos": []}})
    service.search("channel", "UC9")

    outcome = service.search_from_history(0)

    assert outcome.metadata.type == "channel"
    assert len(fake_backend.calls_to("GET", "/youtube/channel/UC9")) == 2
    with pytest.raises(SearchValidationError):
        service.search_from_history(5)


def test_advanced_filters_narrow_results_and_shape_request(
    storage: ClientStorageRepository,
    fake_backend: FakeBackend,
) -> None:
    service, selection, filters = _service(storage)
    filters.update({"minViews": 500, "category": "27", "publishedAfter": "2024-01-01", "maxResults": 10})
    fake_backend.reply(
        "GET",
        "/youtube/search",
        {"data": {"results": [sample_video("big", viewCount=900), sample_video("small", viewCount=100)]}},
    )

    outcome = service.search("keyword", "lectures")

    assert fake_backend.calls[0].query == {
        "q": "lectures",
        "maxResults": "10",
        "videoCategoryId": "27",
        "publishedAfter": "2024-01-01T00:00:00Z",
    }
    assert [video["videoId"] for video in outcome.results] == ["big"]
    assert outcome.raw_count == 2
    assert outcome.active_filters == 3
    assert selection.metadata.total_results == 2


def test_backend_failure_does_not_consume_quota(
    storage: ClientStorageRepository,
    fake_backend: FakeBackend,
) -> None:
    service, _, _ = _service(storage)
    fake_backend.reply("GET", "/youtube/search", {"error": "YouTube API error"}, status=400)

    with pytest.raises(ApiClientError):
        service.search("keyword", "python")

    assert service.get_quota_used() == 0
    assert service.get_history() == []


def test_select_all_then_clear_removes_persisted_selection(
    storage: ClientStorageRepository,
    fake_backend: FakeBackend,
) -> None:
    service, selection, _ = _service(storage)
    fake_backend.reply("GET", "/youtube/search", {"data": {"results": [sample_video("a"), sample_video("b")]}})
    outcome = service.search("keyword", "python")

    assert selection.select_all(outcome.results) == 2
    assert storage.get_item(SELECTION_STORAGE_KEY) is not None

    selection.clear_selection()
    assert storage.get_item(SELECTION_STORAGE_KEY) is None
    assert selection.get_selected_count() == 0
