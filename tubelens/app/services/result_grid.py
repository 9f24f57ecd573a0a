from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Literal

from tubelens.app.services import video_records as records
from tubelens.app.services.analytics import video_engagement_rate
from tubelens.app.services.selection_store import SelectionStore

SortKey = Literal["relevance", "views", "likes", "engagement", "newest", "oldest"]
SORT_KEYS: tuple[str, ...] = ("relevance", "views", "likes", "engagement", "newest", "oldest")


def sort_videos(videos: Sequence[Mapping[str, Any]], sort_by: str = "relevance") -> list[dict[str, Any]]:
    """Stable sort; `relevance` keeps backend order and undated records sink to the end."""
    items = [dict(video) for video in videos]
    if sort_by == "views":
        return sorted(items, key=records.view_count, reverse=True)
    if sort_by == "likes":
        return sorted(items, key=records.like_count, reverse=True)
    if sort_by == "engagement":
        return sorted(items, key=video_engagement_rate, reverse=True)
    if sort_by in {"newest", "oldest"}:
        dated: list[tuple[float, dict[str, Any]]] = []
        undated: list[dict[str, Any]] = []
        for item in items:
            published = records.published_datetime(item)
            if published is None:
                undated.append(item)
            else:
                dated.append((published.timestamp(), item))
        dated.sort(key=lambda pair: pair[0], reverse=sort_by == "newest")
        return [*(item for _, item in dated), *undated]
    if sort_by != "relevance":
        raise ValueError(f"Unsupported sort order: {sort_by}")
    return items


class ResultGrid:
    """Current result view with multi-select semantics on top of the selection store."""

    def __init__(
        self,
        selection_store: SelectionStore,
        videos: Sequence[Mapping[str, Any]] = (),
        *,
        sort_by: str = "relevance",
    ) -> None:
        self._selection_store = selection_store
        self._videos = [dict(video) for video in videos]
        self._sort_by = sort_by
        self._view = sort_videos(self._videos, sort_by)
        self._anchor_index: int | None = None

    @property
    def sort_by(self) -> str:
        return self._sort_by

    @property
    def view(self) -> list[dict[str, Any]]:
        return list(self._view)

    def replace_results(self, videos: Sequence[Mapping[str, Any]]) -> None:
        self._videos = [dict(video) for video in videos]
        self._view = sort_videos(self._videos, self._sort_by)
        self._anchor_index = None

    def set_sort(self, sort_by: str) -> None:
        self._view = sort_videos(self._videos, sort_by)
        self._sort_by = sort_by
        self._anchor_index = None

    def select(self, index: int, *, shift: bool = False) -> list[str]:
        """Toggle the video at `index`, or with `shift` add the range from the anchor.

        Returns the ids whose membership changed.
        """
        if index < 0 or index >= len(self._view):
            raise IndexError(f"No result at position {index + 1}")

        changed: list[str] = []
        if shift and self._anchor_index is not None and self._anchor_index != index:
            start, end = sorted((self._anchor_index, index))
            for video in self._view[start : end + 1]:
                if not self._selection_store.is_video_selected(video):
                    self._selection_store.add_video(video)
                    changed.extend(_ids(video))
        else:
            video = self._view[index]
            self._selection_store.toggle_video(video)
            changed.extend(_ids(video))

        self._anchor_index = index
        return changed

    def select_range(self, start: int, end: int) -> list[str]:
        self._anchor_index = start
        return self.select(end, shift=True) if start != end else self.select(end)

    def select_all(self) -> int:
        return self._selection_store.select_all(self._view)

    def deselect_all(self) -> int:
        removed = 0
        for video in self._view:
            video_id = records.normalize_video_id(video)
            if video_id is not None and self._selection_store.remove_video(video_id):
                removed += 1
        return removed

    def selected_in_view(self) -> int:
        return sum(1 for video in self._view if self._selection_store.is_video_selected(video))

    def all_selected(self) -> bool:
        return bool(self._view) and self.selected_in_view() == len(self._view)


def _ids(video: Mapping[str, Any]) -> list[str]:
    video_id = records.normalize_video_id(video)
    return [video_id] if video_id is not None else []
