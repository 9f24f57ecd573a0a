"""Tolerant unwrapping of backend response envelopes.

The backend nominally replies with ``{"success": ..., "data": {...}}`` but the
same logical payload also shows up double-wrapped or completely flat. Each
lookup is an ordered tuple of strategies; a strategy returns ``None`` to pass
and the first non-``None`` result wins.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from typing import Any, cast

ExtractionStrategy = Callable[[Any], Any | None]


def path_strategy(*keys: str, expect: type | tuple[type, ...] = object) -> ExtractionStrategy:
    def _extract(payload: Any) -> Any | None:
        current = payload
        for key in keys:
            if not isinstance(current, Mapping):
                return None
            current = cast(Mapping[str, Any], current).get(key)
            if current is None:
                return None
        if not isinstance(current, expect):
            return None
        return current

    _extract.__name__ = "path:" + ".".join(keys)
    return _extract


def _bare_list(payload: Any) -> list[Any] | None:
    if isinstance(payload, list):
        return cast(list[Any], payload)
    return None


def _non_empty_text(payload: Any) -> str | None:
    if isinstance(payload, str) and payload.strip():
        return payload.strip()
    return None


def _enveloped(key: str, *, expect: type | tuple[type, ...]) -> tuple[ExtractionStrategy, ...]:
    return (
        path_strategy("data", "data", key, expect=expect),
        path_strategy("data", key, expect=expect),
        path_strategy(key, expect=expect),
    )


RESULTS_STRATEGIES: tuple[ExtractionStrategy, ...] = (*_enveloped("results", expect=list), _bare_list)
VIDEO_STRATEGIES: tuple[ExtractionStrategy, ...] = _enveloped("video", expect=dict)
CHANNEL_VIDEOS_STRATEGIES: tuple[ExtractionStrategy, ...] = _enveloped("videos", expect=list)
CHANNEL_STRATEGIES: tuple[ExtractionStrategy, ...] = _enveloped("channel", expect=dict)
QUERY_STRATEGIES: tuple[ExtractionStrategy, ...] = _enveloped("query", expect=str)
TOKEN_STRATEGIES: tuple[ExtractionStrategy, ...] = _enveloped("token", expect=str)
USER_STRATEGIES: tuple[ExtractionStrategy, ...] = _enveloped("user", expect=dict)


def extract_first(payload: Any, strategies: Iterable[ExtractionStrategy]) -> Any | None:
    for strategy in strategies:
        result = strategy(payload)
        if result is not None:
            return result
    return None


def extract_results(payload: Any) -> list[dict[str, Any]]:
    return _records(extract_first(payload, RESULTS_STRATEGIES))


def extract_video(payload: Any) -> dict[str, Any] | None:
    return cast(dict[str, Any] | None, extract_first(payload, VIDEO_STRATEGIES))


def extract_channel_videos(payload: Any) -> list[dict[str, Any]]:
    return _records(extract_first(payload, CHANNEL_VIDEOS_STRATEGIES))


def extract_channel_title(payload: Any) -> str | None:
    channel = extract_first(payload, CHANNEL_STRATEGIES)
    if not isinstance(channel, dict):
        return None
    for key in ("channelTitle", "title"):
        title = _non_empty_text(cast(dict[str, Any], channel).get(key))
        if title is not None:
            return title
    return None


def extract_query(payload: Any) -> str | None:
    return _non_empty_text(extract_first(payload, QUERY_STRATEGIES))


def extract_token(payload: Any) -> str | None:
    return _non_empty_text(extract_first(payload, TOKEN_STRATEGIES))


def extract_user(payload: Any) -> dict[str, Any] | None:
    return cast(dict[str, Any] | None, extract_first(payload, USER_STRATEGIES))


def _records(raw: Any) -> list[dict[str, Any]]:
    if not isinstance(raw, list):
        return []
    return [cast(dict[str, Any], item) for item in cast(list[Any], raw) if isinstance(item, dict)]
