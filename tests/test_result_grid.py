from __future__ import annotations

import pytest
from conftest import sample_video

from tubelens.app.repositories.client_storage_repository import ClientStorageRepository
from tubelens.app.services.result_grid import ResultGrid, sort_videos
from tubelens.app.services.selection_store import SelectionStore

VIDEOS = [
    sample_video("a", viewCount=10, likeCount=9, commentCount=0, publishedAt="2024-01-02T00:00:00Z"),
    sample_video("b", viewCount=30, likeCount=1, commentCount=0, publishedAt="2024-01-03T00:00:00Z"),
    sample_video("c", viewCount=20, likeCount=5, commentCount=0, publishedAt=None),
    sample_video("d", viewCount=20, likeCount=2, commentCount=0, publishedAt="2024-01-01T00:00:00Z"),
]


def _ids(videos: list[dict[str, object]]) -> list[str]:
    return [str(video["videoId"]) for video in videos]


@pytest.mark.parametrize(
    ("sort_by", "expected"),
    [
        ("relevance", ["a", "b", "c", "d"]),
        ("views", ["b", "c", "d", "a"]),
        ("likes", ["a", "c", "d", "b"]),
        ("engagement", ["a", "c", "d", "b"]),
        ("newest", ["b", "a", "d", "c"]),
        ("oldest", ["d", "a", "b", "c"]),
    ],
)
def test_sort_orders(sort_by: str, expected: list[str]) -> None:
    assert _ids(sort_videos(VIDEOS, sort_by)) == expected


def test_unknown_sort_is_rejected() -> None:
    with pytest.raises(ValueError):
        sort_videos(VIDEOS, "random")


def test_plain_select_toggles(storage: ClientStorageRepository) -> None:
    selection = SelectionStore(storage)
    grid = ResultGrid(selection, VIDEOS)

    assert grid.select(1) == ["b"]
    assert selection.get_selected_ids() == ["b"]
    assert grid.select(1) == ["b"]
    assert selection.get_selected_ids() == []


def test_shift_select_adds_range_from_anchor(storage: ClientStorageRepository) -> None:
    selection = SelectionStore(storage)
    grid = ResultGrid(selection, VIDEOS)
    grid.select(0)
    selection.add_video(VIDEOS[2])

    changed = grid.select(3, shift=True)

    assert changed == ["b", "d"]
    assert sorted(selection.get_selected_ids()) == ["a", "b", "c", "d"]
    assert grid.all_selected() is True


def test_shift_select_without_anchor_toggles(storage: ClientStorageRepository) -> None:
    selection = SelectionStore(storage)
    grid = ResultGrid(selection, VIDEOS)

    assert grid.select(2, shift=True) == ["c"]
    assert selection.get_selected_ids() == ["c"]


def test_range_follows_the_sorted_view(storage: ClientStorageRepository) -> None:
    selection = SelectionStore(storage)
    grid = ResultGrid(selection, VIDEOS, sort_by="views")

    grid.select_range(0, 1)

    assert selection.get_selected_ids() == ["b", "c"]
    assert grid.selected_in_view() == 2


def test_select_out_of_range(storage: ClientStorageRepository) -> None:
    grid = ResultGrid(SelectionStore(storage), VIDEOS)
    with pytest.raises(IndexError):
        grid.select(4)


def test_select_all_and_deselect_all_only_touch_view(storage: ClientStorageRepository) -> None:
    selection = SelectionStore(storage)
    selection.add_video(sample_video("elsewhere"))
    grid = ResultGrid(selection, VIDEOS)

    assert grid.select_all() == 4
    assert grid.select_all() == 0
    assert grid.deselect_all() == 4
    assert selection.get_selected_ids() == ["elsewhere"]


def test_replace_results_resets_view(storage: ClientStorageRepository) -> None:
    grid = ResultGrid(SelectionStore(storage), VIDEOS, sort_by="views")
    grid.replace_results([sample_video("z", viewCount=1), sample_video("y", viewCount=2)])
    assert _ids(grid.view) == ["y", "z"]

    grid.set_sort("relevance")
    assert grid.sort_by == "relevance"
    assert _ids(grid.view) == ["z", "y"]
    assert grid.all_selected() is False
