from __future__ import annotations

from collections.abc import Mapping
from typing import Any
from urllib.parse import quote

from tubelens.app.services.http_client import ApiClient, ApiResponse

SEARCH_PATH = "/youtube/search"
VIDEO_PATH = "/youtube/video/{video_id}"
CHANNEL_PATH = "/youtube/channel/{channel_id}"
TRENDING_PATH = "/youtube/trending"
DEFAULT_TRENDING_RESULTS = 20
DEFAULT_REGION_CODE = "US"


class YouTubeApi:
    """Thin wrappers over the backend's YouTube proxy; bodies are returned as received."""

    def __init__(self, client: ApiClient) -> None:
        self._client = client

    def search(self, params: Mapping[str, Any]) -> ApiResponse:
        return self._client.get(SEARCH_PATH, params=params)

    def get_video(self, video_id: str) -> ApiResponse:
        return self._client.get(VIDEO_PATH.format(video_id=quote(video_id.strip(), safe="")))

    def get_channel(self, channel_id: str) -> ApiResponse:
        return self._client.get(CHANNEL_PATH.format(channel_id=quote(channel_id.strip(), safe="")))

    def get_trending(
        self,
        max_results: int = DEFAULT_TRENDING_RESULTS,
        region_code: str = DEFAULT_REGION_CODE,
    ) -> ApiResponse:
        return self._client.get(
            TRENDING_PATH,
            params={"maxResults": max_results, "regionCode": region_code},
        )
