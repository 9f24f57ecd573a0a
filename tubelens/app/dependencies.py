from __future__ import annotations

from functools import lru_cache

from tubelens.app.config import AppSettings, load_settings
from tubelens.app.repositories.client_storage_repository import ClientStorageRepository
from tubelens.app.repositories.database import Database
from tubelens.app.services.auth_api import AuthApi
from tubelens.app.services.filters import FilterStore
from tubelens.app.services.http_client import ApiClient
from tubelens.app.services.notifications import NotificationBus
from tubelens.app.services.performance_metrics import PerformanceMetricsBuffer
from tubelens.app.services.result_grid import ResultGrid
from tubelens.app.services.search_service import SearchService
from tubelens.app.services.selection_store import SelectionStore
from tubelens.app.services.token_store import TokenStore
from tubelens.app.services.youtube_api import YouTubeApi
from tubelens.app.telemetry import TelemetryClient, build_telemetry_client


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    return load_settings()


@lru_cache(maxsize=1)
def get_client_storage() -> ClientStorageRepository:
    settings = get_settings()
    database = Database(settings.db_path)
    database.initialize()
    return ClientStorageRepository(database, quota_bytes=settings.storage_quota_bytes)


@lru_cache(maxsize=1)
def get_token_store() -> TokenStore:
    settings = get_settings()
    return TokenStore(
        get_client_storage(),
        default_ttl_seconds=settings.token_ttl_seconds,
        refresh_window_ms=settings.token_refresh_window_ms,
    )


@lru_cache(maxsize=1)
def get_notification_bus() -> NotificationBus:
    return NotificationBus()


@lru_cache(maxsize=1)
def get_performance_metrics() -> PerformanceMetricsBuffer:
    return PerformanceMetricsBuffer(get_settings().http_metrics_capacity)


@lru_cache(maxsize=1)
def get_api_client() -> ApiClient:
    settings = get_settings()
    return ApiClient(
        settings.api_url,
        token_store=get_token_store(),
        notifications=get_notification_bus(),
        metrics=get_performance_metrics(),
        telemetry=get_telemetry(),
        timeout_seconds=settings.http_timeout_seconds,
        max_retries=settings.http_max_retries,
        retry_base_delay_ms=settings.http_retry_base_delay_ms,
        slow_request_ms=settings.http_slow_request_ms,
    )


@lru_cache(maxsize=1)
def get_auth_api() -> AuthApi:
    return AuthApi(get_api_client(), get_token_store())


@lru_cache(maxsize=1)
def get_youtube_api() -> YouTubeApi:
    return YouTubeApi(get_api_client())


@lru_cache(maxsize=1)
def get_selection_store() -> SelectionStore:
    return SelectionStore(
        get_client_storage(),
        ttl_seconds=get_settings().selection_ttl_seconds,
    )


@lru_cache(maxsize=1)
def get_filter_store() -> FilterStore:
    return FilterStore(get_client_storage())


@lru_cache(maxsize=1)
def get_search_service() -> SearchService:
    settings = get_settings()
    return SearchService(
        get_youtube_api(),
        storage=get_client_storage(),
        filter_store=get_filter_store(),
        selection_store=get_selection_store(),
        daily_search_limit=settings.daily_search_limit,
        history_limit=settings.search_history_limit,
        trending_region_code=settings.trending_region_code,
    )


@lru_cache(maxsize=1)
def get_result_grid() -> ResultGrid:
    return ResultGrid(get_selection_store(), get_search_service().last_results())


@lru_cache(maxsize=1)
def get_telemetry() -> TelemetryClient:
    settings = get_settings()
    return build_telemetry_client(
        enabled=settings.telemetry_enabled,
        sink=settings.telemetry_sink,
    )


def reset_cached_dependencies() -> None:
    get_result_grid.cache_clear()
    get_search_service.cache_clear()
    get_filter_store.cache_clear()
    get_selection_store.cache_clear()
    get_youtube_api.cache_clear()
    get_auth_api.cache_clear()
    get_api_client.cache_clear()
    get_performance_metrics.cache_clear()
    get_notification_bus.cache_clear()
    get_token_store.cache_clear()
    get_client_storage.cache_clear()
    get_telemetry.cache_clear()
    get_settings.cache_clear()
