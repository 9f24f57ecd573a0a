from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from fastapi.responses import HTMLResponse
from structlog.contextvars import bind_contextvars, reset_contextvars

from tubelens.app.dependencies import (
    get_auth_api,
    get_filter_store,
    get_notification_bus,
    get_performance_metrics,
    get_result_grid,
    get_search_service,
    get_selection_store,
    get_token_store,
)
from tubelens.app.models.dashboard_contracts import (
    CustomChartRequest,
    FiltersResponse,
    HistoryEntryModel,
    MetricsResponse,
    NotificationModel,
    OptionModel,
    QuotaResponse,
    RequestMetricModel,
    ResultItem,
    ResultSelectRequest,
    ResultSortRequest,
    ResultsResponse,
    SearchMetadataModel,
    SearchRequest,
    SearchResponse,
    SelectionBulkRequest,
    SelectionChangeResponse,
    SelectionResponse,
    SelectionVideoRequest,
    SessionResponse,
)
from tubelens.app.services import analytics
from tubelens.app.services import video_records as records
from tubelens.app.services.auth_api import AuthApi, AuthError, GuestSession
from tubelens.app.services.export_service import (
    CSV_MEDIA_TYPE,
    csv_filename,
    render_csv,
    render_report,
)
from tubelens.app.services.filters import (
    DURATION_OPTIONS,
    VIDEO_CATEGORIES,
    AdvancedFilters,
    FilterStore,
)
from tubelens.app.services.http_client import ApiClientError, SessionExpiredError
from tubelens.app.services.notifications import NotificationBus
from tubelens.app.services.performance_metrics import PerformanceMetric, PerformanceMetricsBuffer
from tubelens.app.services.result_grid import ResultGrid
from tubelens.app.services.search_service import SearchService, SearchValidationError
from tubelens.app.services.selection_store import SearchMetadata, SelectionStore
from tubelens.app.services.token_store import TokenStore

router = APIRouter()

NO_SELECTION_MESSAGE = "Please select at least one video to export"


@contextmanager
def _service_errors() -> Iterator[None]:
    try:
        yield
    except SearchValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except SessionExpiredError as exc:
        raise HTTPException(
            status_code=401,
            detail={"message": str(exc), "redirect": exc.redirect_to},
        ) from exc
    except ApiClientError as exc:
        raise HTTPException(status_code=502, detail=exc.error_message()) from exc
    except AuthError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc


def _session_response(session: GuestSession | None, token_store: TokenStore) -> SessionResponse:
    if session is None:
        return SessionResponse(authenticated=False)
    info = token_store.get_token_info()
    return SessionResponse(
        authenticated=True,
        user=session.user,
        quota_remaining=session.quota_remaining,
        token_expires_at=info.expiry,
        time_remaining_ms=info.time_remaining_ms,
        should_refresh=info.should_refresh,
    )


def _metadata_model(metadata: SearchMetadata) -> SearchMetadataModel:
    return SearchMetadataModel(
        query=metadata.query,
        type=metadata.type,
        total_results=metadata.total_results,
    )


def _selection_response(selection: SelectionStore) -> SelectionResponse:
    return SelectionResponse(
        count=selection.get_selected_count(),
        video_ids=selection.get_selected_ids(),
        metadata=_metadata_model(selection.metadata),
        time_remaining_ms=selection.time_remaining_ms(),
    )


def _results_response(grid: ResultGrid, selection: SelectionStore) -> ResultsResponse:
    items = [
        ResultItem(
            index=index,
            video_id=records.normalize_video_id(video),
            title=records.video_title(video),
            channel_title=records.channel_title(video),
            views=records.view_count(video),
            likes=records.like_count(video),
            comments=records.comment_count(video),
            engagement_rate=round(analytics.video_engagement_rate(video), 2),
            published_at=records.published_at(video),
            duration=records.duration_formatted(video),
            selected=selection.is_video_selected(video),
        )
        for index, video in enumerate(grid.view)
    ]
    return ResultsResponse(
        sort_by=grid.sort_by,
        results=items,
        selected_in_view=grid.selected_in_view(),
        all_selected=grid.all_selected(),
    )


def _filters_response(filters: AdvancedFilters) -> FiltersResponse:
    return FiltersResponse(
        filters=filters,
        active_count=filters.active_count(),
        categories=[OptionModel(value=value, label=label) for value, label in VIDEO_CATEGORIES],
        durations=[OptionModel(value=value, label=label) for value, label in DURATION_OPTIONS],
    )


def _metric_model(metric: PerformanceMetric) -> RequestMetricModel:
    return RequestMetricModel(
        url=metric.url,
        method=metric.method,
        status=metric.status,
        duration_ms=metric.duration_ms,
        timestamp=metric.timestamp,
        error=metric.error,
    )


@router.post("/session/guest", response_model=SessionResponse, tags=["session"])
def login_as_guest(
    auth_api: Annotated[AuthApi, Depends(get_auth_api)],
    token_store: Annotated[TokenStore, Depends(get_token_store)],
) -> SessionResponse:
    with _service_errors():
        session = auth_api.login_as_guest()
    return _session_response(session, token_store)


@router.post("/session/refresh", response_model=SessionResponse, tags=["session"])
def refresh_session(
    auth_api: Annotated[AuthApi, Depends(get_auth_api)],
    token_store: Annotated[TokenStore, Depends(get_token_store)],
) -> SessionResponse:
    with _service_errors():
        session = auth_api.refresh_session()
    return _session_response(session, token_store)


@router.get("/session", response_model=SessionResponse, tags=["session"])
def session_status(
    auth_api: Annotated[AuthApi, Depends(get_auth_api)],
    token_store: Annotated[TokenStore, Depends(get_token_store)],
) -> SessionResponse:
    return _session_response(auth_api.check_auth_status(), token_store)


@router.delete("/session", response_model=SessionResponse, tags=["session"])
def logout(auth_api: Annotated[AuthApi, Depends(get_auth_api)]) -> SessionResponse:
    auth_api.logout()
    return SessionResponse(authenticated=False)


@router.post("/search", response_model=SearchResponse, tags=["search"])
def run_search(
    request: SearchRequest,
    search_service: Annotated[SearchService, Depends(get_search_service)],
    grid: Annotated[ResultGrid, Depends(get_result_grid)],
) -> SearchResponse:
    context_tokens = bind_contextvars(search_type=request.type)
    try:
        with _service_errors():
            outcome = search_service.search(
                request.type,
                request.query,
                trending_count=request.trending_count,
            )
    finally:
        reset_contextvars(**context_tokens)
    grid.replace_results(outcome.results)
    return SearchResponse(
        results=outcome.results,
        metadata=_metadata_model(outcome.metadata),
        raw_count=outcome.raw_count,
        active_filters=outcome.active_filters,
        quota_used=search_service.get_quota_used(),
        quota_remaining=search_service.get_quota_remaining(),
        duration_ms=outcome.duration_ms,
    )


@router.get("/search/history", response_model=list[HistoryEntryModel], tags=["search"])
def search_history(
    search_service: Annotated[SearchService, Depends(get_search_service)],
) -> list[HistoryEntryModel]:
    return [HistoryEntryModel(**asdict(entry)) for entry in search_service.get_history()]


@router.delete("/search/history", response_model=list[HistoryEntryModel], tags=["search"])
def clear_search_history(
    search_service: Annotated[SearchService, Depends(get_search_service)],
) -> list[HistoryEntryModel]:
    search_service.clear_history()
    return []


@router.delete(
    "/search/history/{query}",
    response_model=list[HistoryEntryModel],
    tags=["search"],
)
def remove_search_history_entry(
    query: str,
    search_service: Annotated[SearchService, Depends(get_search_service)],
) -> list[HistoryEntryModel]:
    remaining = search_service.remove_history_entry(query)
    return [HistoryEntryModel(**asdict(entry)) for entry in remaining]


@router.get("/quota", response_model=QuotaResponse, tags=["search"])
def quota_status(
    search_service: Annotated[SearchService, Depends(get_search_service)],
) -> QuotaResponse:
    return QuotaResponse(
        used=search_service.get_quota_used(),
        remaining=search_service.get_quota_remaining(),
        limit=search_service.daily_search_limit,
    )


@router.delete("/quota", response_model=QuotaResponse, tags=["search"])
def reset_quota(
    search_service: Annotated[SearchService, Depends(get_search_service)],
) -> QuotaResponse:
    search_service.reset_quota()
    return quota_status(search_service)


@router.get("/filters", response_model=FiltersResponse, tags=["filters"])
def get_filters(filter_store: Annotated[FilterStore, Depends(get_filter_store)]) -> FiltersResponse:
    return _filters_response(filter_store.load())


@router.put("/filters", response_model=FiltersResponse, tags=["filters"])
def save_filters(
    filters: AdvancedFilters,
    filter_store: Annotated[FilterStore, Depends(get_filter_store)],
) -> FiltersResponse:
    return _filters_response(filter_store.save(filters))


@router.delete("/filters", response_model=FiltersResponse, tags=["filters"])
def reset_filters(
    filter_store: Annotated[FilterStore, Depends(get_filter_store)],
) -> FiltersResponse:
    return _filters_response(filter_store.reset())


@router.get("/results", response_model=ResultsResponse, tags=["results"])
def list_results(
    grid: Annotated[ResultGrid, Depends(get_result_grid)],
    selection: Annotated[SelectionStore, Depends(get_selection_store)],
) -> ResultsResponse:
    return _results_response(grid, selection)


@router.post("/results/sort", response_model=ResultsResponse, tags=["results"])
def sort_results(
    request: ResultSortRequest,
    grid: Annotated[ResultGrid, Depends(get_result_grid)],
    selection: Annotated[SelectionStore, Depends(get_selection_store)],
) -> ResultsResponse:
    grid.set_sort(request.sort_by)
    return _results_response(grid, selection)


@router.post("/results/select", response_model=ResultsResponse, tags=["results"])
def select_result(
    request: ResultSelectRequest,
    grid: Annotated[ResultGrid, Depends(get_result_grid)],
    selection: Annotated[SelectionStore, Depends(get_selection_store)],
) -> ResultsResponse:
    try:
        grid.select(request.index, shift=request.shift)
    except IndexError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return _results_response(grid, selection)


@router.post("/results/select-all", response_model=ResultsResponse, tags=["results"])
def select_all_results(
    grid: Annotated[ResultGrid, Depends(get_result_grid)],
    selection: Annotated[SelectionStore, Depends(get_selection_store)],
) -> ResultsResponse:
    grid.select_all()
    return _results_response(grid, selection)


@router.post("/results/deselect-all", response_model=ResultsResponse, tags=["results"])
def deselect_all_results(
    grid: Annotated[ResultGrid, Depends(get_result_grid)],
    selection: Annotated[SelectionStore, Depends(get_selection_store)],
) -> ResultsResponse:
    grid.deselect_all()
    return _results_response(grid, selection)


@router.get("/selection", response_model=SelectionResponse, tags=["selection"])
def get_selection(
    selection: Annotated[SelectionStore, Depends(get_selection_store)],
) -> SelectionResponse:
    return _selection_response(selection)


@router.post("/selection/videos", response_model=SelectionChangeResponse, tags=["selection"])
def add_selected_video(
    request: SelectionVideoRequest,
    selection: Annotated[SelectionStore, Depends(get_selection_store)],
) -> SelectionChangeResponse:
    added = selection.add_video(request.video)
    return SelectionChangeResponse(
        selected=selection.is_video_selected(request.video),
        changed=int(added),
        selection=_selection_response(selection),
    )


@router.post("/selection/toggle", response_model=SelectionChangeResponse, tags=["selection"])
def toggle_selected_video(
    request: SelectionVideoRequest,
    selection: Annotated[SelectionStore, Depends(get_selection_store)],
) -> SelectionChangeResponse:
    if records.normalize_video_id(request.video) is None:
        raise HTTPException(status_code=400, detail="Video record has no id")
    selected = selection.toggle_video(request.video)
    return SelectionChangeResponse(
        selected=selected,
        changed=1,
        selection=_selection_response(selection),
    )


@router.post("/selection/select-all", response_model=SelectionChangeResponse, tags=["selection"])
def select_all_videos(
    request: SelectionBulkRequest,
    selection: Annotated[SelectionStore, Depends(get_selection_store)],
) -> SelectionChangeResponse:
    added = selection.select_all(request.videos)
    return SelectionChangeResponse(changed=added, selection=_selection_response(selection))


@router.delete(
    "/selection/videos/{video_id}",
    response_model=SelectionChangeResponse,
    tags=["selection"],
)
def remove_selected_video(
    video_id: str,
    selection: Annotated[SelectionStore, Depends(get_selection_store)],
) -> SelectionChangeResponse:
    removed = selection.remove_video(video_id)
    return SelectionChangeResponse(
        selected=False,
        changed=int(removed),
        selection=_selection_response(selection),
    )


@router.delete("/selection", response_model=SelectionResponse, tags=["selection"])
def clear_selection(
    selection: Annotated[SelectionStore, Depends(get_selection_store)],
) -> SelectionResponse:
    selection.clear_selection()
    return _selection_response(selection)


@router.get("/dashboard/summary", response_model=dict[str, Any], tags=["dashboard"])
def dashboard_summary(
    selection: Annotated[SelectionStore, Depends(get_selection_store)],
) -> dict[str, Any]:
    return asdict(analytics.summary_stats(selection.get_selected_videos()))


@router.get("/dashboard/performance", response_model=list[dict[str, Any]], tags=["dashboard"])
def dashboard_performance(
    selection: Annotated[SelectionStore, Depends(get_selection_store)],
) -> list[dict[str, Any]]:
    return [asdict(bar) for bar in analytics.performance_overview(selection.get_selected_videos())]


@router.get("/dashboard/engagement", response_model=dict[str, Any], tags=["dashboard"])
def dashboard_engagement(
    selection: Annotated[SelectionStore, Depends(get_selection_store)],
) -> dict[str, Any]:
    return asdict(analytics.engagement_rate_chart(selection.get_selected_videos()))


@router.get(
    "/dashboard/engagement-breakdown",
    response_model=dict[str, Any],
    tags=["dashboard"],
)
def dashboard_engagement_breakdown(
    selection: Annotated[SelectionStore, Depends(get_selection_store)],
) -> dict[str, Any]:
    return asdict(analytics.engagement_breakdown(selection.get_selected_videos()))


@router.get("/dashboard/likes-vs-comments", response_model=dict[str, Any], tags=["dashboard"])
def dashboard_likes_vs_comments(
    selection: Annotated[SelectionStore, Depends(get_selection_store)],
) -> dict[str, Any]:
    return asdict(analytics.likes_vs_comments(selection.get_selected_videos()))


@router.get("/dashboard/chart-options", response_model=dict[str, Any], tags=["dashboard"])
def dashboard_chart_options() -> dict[str, Any]:
    return {
        "chart_types": list(analytics.CHART_TYPES),
        "axes": [
            {"value": key, "label": option.label, "type": option.kind}
            for key, option in analytics.AXIS_OPTIONS.items()
        ],
        "color_by": list(analytics.COLOR_OPTIONS),
        "size_by": list(analytics.SIZE_OPTIONS),
        "aggregate_y_axes": list(analytics.NUMERIC_AXES),
    }


@router.post("/dashboard/custom-chart", response_model=dict[str, Any], tags=["dashboard"])
def dashboard_custom_chart(
    request: CustomChartRequest,
    selection: Annotated[SelectionStore, Depends(get_selection_store)],
) -> dict[str, Any]:
    try:
        chart = analytics.build_custom_chart(
            selection.get_selected_videos(),
            chart_type=request.chart_type,
            x_axis=request.x_axis,
            y_axis=request.y_axis,
            color_by=request.color_by,
            size_by=request.size_by,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return asdict(chart)


@router.get("/export/csv", tags=["export"])
def export_csv(selection: Annotated[SelectionStore, Depends(get_selection_store)]) -> Response:
    videos = selection.get_selected_videos()
    if not videos:
        raise HTTPException(status_code=400, detail=NO_SELECTION_MESSAGE)
    filename = csv_filename(time.time())
    return Response(
        content=render_csv(videos),
        media_type=CSV_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/export/report", response_class=HTMLResponse, tags=["export"])
def export_report(
    selection: Annotated[SelectionStore, Depends(get_selection_store)],
) -> HTMLResponse:
    videos = selection.get_selected_videos()
    if not videos:
        raise HTTPException(status_code=400, detail=NO_SELECTION_MESSAGE)
    return HTMLResponse(content=render_report(videos, selection.metadata))


@router.get("/metrics/requests", response_model=MetricsResponse, tags=["system"])
def request_metrics(
    metrics: Annotated[PerformanceMetricsBuffer, Depends(get_performance_metrics)],
) -> MetricsResponse:
    summary = metrics.summary()
    return MetricsResponse(
        total_requests=summary.total_requests,
        average_response_ms=summary.average_response_ms,
        failed_requests=summary.failed_requests,
        successful_requests=summary.successful_requests,
        slowest_request=(
            _metric_model(summary.slowest_request) if summary.slowest_request is not None else None
        ),
        recent=[_metric_model(metric) for metric in metrics.get_all()],
    )


@router.delete("/metrics/requests", response_model=MetricsResponse, tags=["system"])
def clear_request_metrics(
    metrics: Annotated[PerformanceMetricsBuffer, Depends(get_performance_metrics)],
) -> MetricsResponse:
    metrics.clear()
    return request_metrics(metrics)


@router.get("/notifications", response_model=list[NotificationModel], tags=["system"])
def notifications(
    bus: Annotated[NotificationBus, Depends(get_notification_bus)],
    drain: Annotated[bool, Query()] = True,
) -> list[NotificationModel]:
    pending = bus.drain() if drain else bus.recent()
    return [
        NotificationModel(name=item.name, detail=item.detail, created_at=item.created_at)
        for item in pending
    ]
