from __future__ import annotations

import json

from conftest import sample_video

from tubelens.app.repositories.client_storage_repository import ClientStorageRepository
from tubelens.app.services.selection_store import SELECTION_STORAGE_KEY, SelectionStore

HOUR = 60 * 60


class _Clock:
    def __init__(self, now: float) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_add_video_is_idempotent_per_id(storage: ClientStorageRepository) -> None:
    store = SelectionStore(storage)

    assert store.add_video(sample_video("a")) is True
    assert store.add_video(sample_video("a", title="Same id, new title")) is False
    assert store.get_selected_ids() == ["a"]


def test_identity_covers_every_id_shape(storage: ClientStorageRepository) -> None:
    store = SelectionStore(storage)
    store.add_video({"id": {"videoId": "nested"}, "snippet": {"title": "Legacy"}})

    assert store.is_video_selected({"videoId": "nested"}) is True
    assert store.is_video_selected({"id": "nested"}) is True
    assert store.is_video_selected("nested") is True
    assert store.add_video({"id": "nested"}) is False


def test_record_without_id_is_ignored(storage: ClientStorageRepository) -> None:
    store = SelectionStore(storage)
    assert store.add_video({"title": "No id"}) is False
    assert store.toggle_video({"title": "No id"}) is False
    assert store.get_selected_count() == 0


def test_toggle_twice_restores_state(storage: ClientStorageRepository) -> None:
    store = SelectionStore(storage)
    store.add_video(sample_video("keep"))

    assert store.toggle_video(sample_video("x")) is True
    assert store.get_selected_ids() == ["keep", "x"]
    assert store.toggle_video(sample_video("x")) is False
    assert store.get_selected_ids() == ["keep"]


def test_remove_video_reports_whether_anything_changed(storage: ClientStorageRepository) -> None:
    store = SelectionStore(storage)
    store.add_video(sample_video("a"))

    assert store.remove_video("missing") is False
    assert store.remove_video("a") is True
    assert store.has_selection() is False


def test_select_all_skips_selected_and_duplicate_ids(storage: ClientStorageRepository) -> None:
    store = SelectionStore(storage)
    store.add_video(sample_video("a"))

    added = store.select_all([sample_video("a"), sample_video("b"), sample_video("b"), {"title": "x"}])

    assert added == 1
    assert store.get_selected_ids() == ["a", "b"]


def test_are_all_selected(storage: ClientStorageRepository) -> None:
    store = SelectionStore(storage)
    assert store.are_all_selected([]) is False

    store.select_all([sample_video("a"), sample_video("b")])
    assert store.are_all_selected([sample_video("a"), sample_video("b")]) is True
    assert store.are_all_selected([sample_video("a"), sample_video("c")]) is False


def test_mutations_persist_with_expiry(storage: ClientStorageRepository) -> None:
    clock = _Clock(1_700_000_000.0)
    store = SelectionStore(storage, clock=clock)
    store.set_search_metadata("python", "keyword", 42)
    store.add_video(sample_video("a"))

    document = json.loads(storage.get_item(SELECTION_STORAGE_KEY) or "{}")
    assert [video["videoId"] for video in document["selectedVideos"]] == ["a"]
    assert document["searchQuery"] == "python"
    assert document["searchType"] == "keyword"
    assert document["totalResults"] == 42
    assert document["timestamp"] == 1_700_000_000_000
    assert document["expiresAt"] == document["timestamp"] + 24 * HOUR * 1000


def test_selection_survives_reload_before_expiry(storage: ClientStorageRepository) -> None:
    clock = _Clock(1_700_000_000.0)
    SelectionStore(storage, clock=clock).select_all([sample_video("a"), sample_video("b")])

    clock.now += 23 * HOUR
    reloaded = SelectionStore(storage, clock=clock)

    assert reloaded.get_selected_ids() == ["a", "b"]
    assert 0 < reloaded.time_remaining_ms() <= HOUR * 1000


def test_selection_is_discarded_after_expiry(storage: ClientStorageRepository) -> None:
    clock = _Clock(1_700_000_000.0)
    SelectionStore(storage, clock=clock).add_video(sample_video("a"))

    clock.now += 25 * HOUR
    reloaded = SelectionStore(storage, clock=clock)

    assert reloaded.get_selected_count() == 0
    assert storage.get_item(SELECTION_STORAGE_KEY) is None


def test_unparsable_persisted_selection_is_dropped(storage: ClientStorageRepository) -> None:
    storage.set_item(SELECTION_STORAGE_KEY, "{not json")
    store = SelectionStore(storage)

    assert store.get_selected_count() == 0
    assert storage.get_item(SELECTION_STORAGE_KEY) is None


def test_persisted_duplicates_collapse_on_load(storage: ClientStorageRepository) -> None:
    storage.set_item(
        SELECTION_STORAGE_KEY,
        json.dumps({"selectedVideos": [sample_video("a"), {"id": {"videoId": "a"}}, sample_video("b")]}),
    )

    assert SelectionStore(storage).get_selected_ids() == ["a", "b"]


def test_emptying_the_selection_removes_the_storage_entry(storage: ClientStorageRepository) -> None:
    store = SelectionStore(storage)
    store.add_video(sample_video("a"))
    store.remove_video("a")
    assert storage.get_item(SELECTION_STORAGE_KEY) is None

    store.select_all([sample_video("a"), sample_video("b")])
    store.clear_selection()
    assert storage.get_item(SELECTION_STORAGE_KEY) is None
    assert store.metadata.query == ""


def test_get_selected_videos_returns_copies(storage: ClientStorageRepository) -> None:
    store = SelectionStore(storage)
    store.add_video(sample_video("a"))

    store.get_selected_videos()[0]["title"] = "mutated"

    assert store.get_selected_videos()[0]["title"] == "Video a"
