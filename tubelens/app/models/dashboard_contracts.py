from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tubelens.app.services.filters import AdvancedFilters

SearchTypeName = Literal["keyword", "video", "channel", "trending"]
SortName = Literal["relevance", "views", "likes", "engagement", "newest", "oldest"]


def _default_records() -> list[dict[str, Any]]:
    return []


class SessionResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    authenticated: bool
    user: dict[str, Any] = Field(default_factory=dict)
    quota_remaining: int = 100
    token_expires_at: datetime | None = None
    time_remaining_ms: int = 0
    should_refresh: bool = False


class SearchRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: SearchTypeName = "keyword"
    query: str = Field(default="", max_length=500)
    trending_count: int = Field(default=20, ge=1, le=50)

    @field_validator("query", mode="before")
    @classmethod
    def _normalize_query(cls, value: object) -> str:
        if value is None:
            return ""
        if not isinstance(value, str):
            raise ValueError("query must be a string")
        return value.strip()


class SearchMetadataModel(BaseModel):
    query: str
    type: str
    total_results: int


class SearchResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    results: list[dict[str, Any]] = Field(default_factory=_default_records)
    metadata: SearchMetadataModel
    raw_count: int
    active_filters: int
    quota_used: int
    quota_remaining: int
    duration_ms: int


class HistoryEntryModel(BaseModel):
    query: str
    type: str
    timestamp: str
    result_count: int


class QuotaResponse(BaseModel):
    used: int
    remaining: int
    limit: int


class OptionModel(BaseModel):
    value: str
    label: str


class FiltersResponse(BaseModel):
    filters: AdvancedFilters
    active_count: int
    categories: list[OptionModel]
    durations: list[OptionModel]


class ResultItem(BaseModel):
    index: int
    video_id: str | None
    title: str
    channel_title: str
    views: int
    likes: int
    comments: int
    engagement_rate: float
    published_at: str | None
    duration: str
    selected: bool


class ResultsResponse(BaseModel):
    sort_by: str
    results: list[ResultItem]
    selected_in_view: int
    all_selected: bool


class ResultSelectRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    index: int = Field(ge=0)
    shift: bool = False


class ResultSortRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    sort_by: SortName = "relevance"


class SelectionResponse(BaseModel):
    count: int
    video_ids: list[str]
    metadata: SearchMetadataModel
    time_remaining_ms: int


class SelectionVideoRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    video: dict[str, Any]


class SelectionBulkRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    videos: list[dict[str, Any]] = Field(default_factory=_default_records)


class SelectionChangeResponse(BaseModel):
    selected: bool | None = None
    changed: int = 0
    selection: SelectionResponse


class CustomChartRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    chart_type: Literal["scatter", "bar", "line", "area"] = "scatter"
    x_axis: str = "durationMinutes"
    y_axis: str = "viewCount"
    color_by: str = "categoryName"
    size_by: str = "engagementRate"


class RequestMetricModel(BaseModel):
    url: str
    method: str
    status: int
    duration_ms: int
    timestamp: datetime
    error: bool


class MetricsResponse(BaseModel):
    total_requests: int
    average_response_ms: int
    failed_requests: int
    successful_requests: int
    slowest_request: RequestMetricModel | None
    recent: list[RequestMetricModel]


class NotificationModel(BaseModel):
    name: str
    detail: dict[str, Any]
    created_at: datetime
