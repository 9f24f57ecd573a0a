from __future__ import annotations

import json
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, cast
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from tubelens.app.services.notifications import (
    LOGIN_REDIRECT_PATH,
    NETWORK_ERROR_EVENT,
    QUOTA_EXCEEDED_EVENT,
    SESSION_EXPIRED_EVENT,
    NotificationBus,
)
from tubelens.app.services.performance_metrics import PerformanceMetric, PerformanceMetricsBuffer
from tubelens.app.services.response_extraction import extract_token
from tubelens.app.services.token_store import TokenStore
from tubelens.app.telemetry import TelemetryClient

RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({408, 429, 500, 502, 503, 504})
REFRESH_PATH = "/auth/guest/refresh"
NETWORK_ERROR_MESSAGE = "Network connection failed"
RATE_LIMIT_MESSAGE = "Rate limit exceeded"
DEFAULT_HEADERS: dict[str, str] = {
    "Content-Type": "application/json",
    "Accept": "application/json",
    "User-Agent": "tubelens/1.0",
}
_BODY_METHODS: frozenset[str] = frozenset({"POST", "PUT", "PATCH"})

LOGGER = logging.getLogger("tubelens.http")


@dataclass(frozen=True)
class ApiResponse:
    status: int
    data: Any
    headers: dict[str, str]
    url: str
    method: str


@dataclass
class ApiRequest:
    """One logical request; the counters travel with it across retries and the replay."""

    method: str
    path: str
    params: dict[str, Any] = field(default_factory=dict)
    json_body: Any = None
    headers: dict[str, str] = field(default_factory=dict)
    retry_count: int = 0
    token_refresh_attempted: bool = False


class ApiClientError(Exception):
    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        payload: Any = None,
        headers: Mapping[str, str] | None = None,
        url: str = "",
        method: str = "",
        retry_count: int = 0,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.payload = payload
        self.headers: dict[str, str] = dict(headers or {})
        self.url = url
        self.method = method
        self.retry_count = retry_count

    @property
    def is_network_error(self) -> bool:
        return self.status is None

    @property
    def is_auth_error(self) -> bool:
        return self.status == 401

    @property
    def is_rate_limit_error(self) -> bool:
        return self.status == 429

    def error_message(self) -> str:
        if self.status is None:
            return NETWORK_ERROR_MESSAGE
        if isinstance(self.payload, dict):
            payload = cast(dict[str, Any], self.payload)
            for key in ("error", "message"):
                value = payload.get(key)
                if isinstance(value, str) and value.strip():
                    return value.strip()
        return str(self)


class SessionExpiredError(ApiClientError):
    redirect_to = LOGIN_REDIRECT_PATH


class ApiClient:
    """Backend HTTP client with the attach / record / retry / refresh / notify pipeline.

    Every attempt is dispatched through `_send_request` and recorded in the
    metrics buffer. Transient failures (no response, 408, 429, 5xx gateway
    codes) are retried with exponential backoff; a 401 triggers one token
    refresh and one replay; what is left is published on the notification bus
    and raised to the caller.
    """

    def __init__(
        self,
        base_url: str,
        *,
        token_store: TokenStore,
        notifications: NotificationBus,
        metrics: PerformanceMetricsBuffer,
        telemetry: TelemetryClient | None = None,
        timeout_seconds: float = 30.0,
        max_retries: int = 3,
        retry_base_delay_ms: int = 1_000,
        slow_request_ms: int = 3_000,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token_store = token_store
        self._notifications = notifications
        self._metrics = metrics
        self._telemetry = telemetry or TelemetryClient.disabled()
        self._timeout_seconds = timeout_seconds
        self._max_retries = max_retries
        self._retry_base_delay_ms = retry_base_delay_ms
        self._slow_request_ms = slow_request_ms

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def token_store(self) -> TokenStore:
        return self._token_store

    def get(self, path: str, *, params: Mapping[str, Any] | None = None) -> ApiResponse:
        return self.request("GET", path, params=params)

    def post(self, path: str, json_body: Any = None) -> ApiResponse:
        return self.request("POST", path, json_body=json_body)

    def put(self, path: str, json_body: Any = None) -> ApiResponse:
        return self.request("PUT", path, json_body=json_body)

    def patch(self, path: str, json_body: Any = None) -> ApiResponse:
        return self.request("PATCH", path, json_body=json_body)

    def delete(self, path: str) -> ApiResponse:
        return self.request("DELETE", path)

    def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json_body: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> ApiResponse:
        api_request = ApiRequest(
            method=method.upper(),
            path=path,
            params={key: value for key, value in (params or {}).items() if value is not None},
            json_body=json_body,
            headers=dict(headers or {}),
        )
        with self._telemetry.span(
            "backend.request",
            method=api_request.method,
            path=api_request.path,
        ) as span:
            try:
                response = self._execute(api_request)
            finally:
                span.set(
                    retry_count=api_request.retry_count,
                    session_refreshed=api_request.token_refresh_attempted,
                )
            span.set(status=response.status)
        return response

    def retry_delay_ms(self, attempt: int) -> int:
        return self._retry_base_delay_ms * (2**attempt)

    def _execute(self, request: ApiRequest) -> ApiResponse:
        url = self._url(request.path, request.params)
        while True:
            started_at = time.perf_counter()
            try:
                response = _send_request(
                    method=request.method,
                    url=url,
                    headers=self._attach_headers(request),
                    body=_encode_body(request.method, request.json_body),
                    timeout_seconds=self._timeout_seconds,
                )
            except ApiClientError as exc:
                self._record(request, url, status=exc.status or 0, started_at=started_at, error=True)
                exc.retry_count = request.retry_count
                if self._should_retry(request, exc):
                    self._wait_before_retry(request, url)
                    continue
                if (
                    exc.status == 401
                    and not request.token_refresh_attempted
                    and request.path != REFRESH_PATH
                ):
                    request.token_refresh_attempted = True
                    new_token = self._refresh_session(exc)
                    request.headers["Authorization"] = f"Bearer {new_token}"
                    LOGGER.info("replaying request after token refresh url=%s", url)
                    continue
                self._notify_failure(exc)
                raise

            duration_ms = self._record(
                request,
                url,
                status=response.status,
                started_at=started_at,
                error=False,
            )
            if duration_ms > self._slow_request_ms:
                LOGGER.warning(
                    "slow backend request method=%s url=%s duration_ms=%s",
                    request.method,
                    url,
                    duration_ms,
                )
            return response

    def _attach_headers(self, request: ApiRequest) -> dict[str, str]:
        headers = dict(DEFAULT_HEADERS)
        token = self._token_store.get_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        headers.update(request.headers)
        return headers

    def _should_retry(self, request: ApiRequest, error: ApiClientError) -> bool:
        transient = error.status is None or error.status in RETRYABLE_STATUS_CODES
        if not transient:
            return False
        if request.retry_count >= self._max_retries:
            LOGGER.error(
                "max retries exceeded method=%s url=%s retries=%s",
                request.method,
                error.url,
                request.retry_count,
            )
            return False
        return True

    def _wait_before_retry(self, request: ApiRequest, url: str) -> None:
        delay_ms = self.retry_delay_ms(request.retry_count)
        request.retry_count += 1
        LOGGER.info(
            "retrying backend request attempt=%s/%s url=%s delay_ms=%s",
            request.retry_count,
            self._max_retries,
            url,
            delay_ms,
        )
        time.sleep(delay_ms / 1000)

    def _refresh_session(self, original_error: ApiClientError) -> str:
        headers = dict(DEFAULT_HEADERS)
        current_token = self._token_store.get_token()
        if current_token:
            headers["Authorization"] = f"Bearer {current_token}"

        try:
            response = _send_request(
                method="POST",
                url=self._url(REFRESH_PATH, None),
                headers=headers,
                body=b"{}",
                timeout_seconds=self._timeout_seconds,
            )
        except ApiClientError as refresh_error:
            self._expire_session()
            raise SessionExpiredError(
                "Session expired. Please sign in again.",
                status=refresh_error.status or original_error.status,
                payload=refresh_error.payload,
                headers=refresh_error.headers,
                url=original_error.url,
                method=original_error.method,
                retry_count=original_error.retry_count,
            ) from refresh_error

        new_token = extract_token(response.data)
        if new_token is None or not self._token_store.set_token(new_token):
            self._expire_session()
            raise SessionExpiredError(
                "Session expired. Please sign in again.",
                status=original_error.status,
                payload=original_error.payload,
                headers=original_error.headers,
                url=original_error.url,
                method=original_error.method,
                retry_count=original_error.retry_count,
            ) from original_error
        LOGGER.info("guest token refreshed after 401")
        return new_token

    def _expire_session(self) -> None:
        LOGGER.error("token refresh failed; clearing session")
        self._token_store.remove_token()
        self._notifications.publish(SESSION_EXPIRED_EVENT, {"redirect": LOGIN_REDIRECT_PATH})

    def _notify_failure(self, error: ApiClientError) -> None:
        if error.is_rate_limit_error:
            message = RATE_LIMIT_MESSAGE
            if isinstance(error.payload, dict):
                body_error = cast(dict[str, Any], error.payload).get("error")
                if isinstance(body_error, str) and body_error.strip():
                    message = body_error.strip()
            self._notifications.publish(
                QUOTA_EXCEEDED_EVENT,
                {"message": message, "retry_after": error.headers.get("retry-after")},
            )
        elif error.is_network_error:
            self._notifications.publish(NETWORK_ERROR_EVENT, {"message": NETWORK_ERROR_MESSAGE})

        LOGGER.error(
            "backend request failed method=%s url=%s status=%s retries=%s message=%s",
            error.method,
            error.url,
            error.status,
            error.retry_count,
            error.error_message(),
        )

    def _record(
        self,
        request: ApiRequest,
        url: str,
        *,
        status: int,
        started_at: float,
        error: bool,
    ) -> int:
        duration_ms = int((time.perf_counter() - started_at) * 1000)
        self._metrics.add(
            PerformanceMetric(
                url=url,
                method=request.method,
                status=status,
                duration_ms=duration_ms,
                timestamp=datetime.now(UTC),
                error=error,
            )
        )
        return duration_ms

    def _url(self, path: str, params: Mapping[str, Any] | None) -> str:
        normalized_path = path if path.startswith("/") else f"/{path}"
        query = urlencode({key: _query_value(value) for key, value in (params or {}).items()})
        url = f"{self._base_url}{normalized_path}"
        return f"{url}?{query}" if query else url


def _send_request(
    *,
    method: str,
    url: str,
    headers: Mapping[str, str],
    body: bytes | None,
    timeout_seconds: float,
) -> ApiResponse:
    request = Request(url, data=body, headers=dict(headers), method=method)
    try:
        with urlopen(request, timeout=timeout_seconds) as response:
            status_code = int(response.getcode() or 0)
            raw_body = response.read().decode("utf-8", errors="replace")
            response_headers = _normalize_headers(response.headers)
    except HTTPError as exc:
        error_body = exc.read().decode("utf-8", errors="replace")
        payload = _parse_json_body(error_body)
        raise ApiClientError(
            f"Request failed with status code {exc.code}",
            status=int(exc.code),
            payload=payload,
            headers=_normalize_headers(exc.headers),
            url=url,
            method=method,
        ) from exc
    except (URLError, TimeoutError, OSError) as exc:
        raise ApiClientError(
            f"Backend request failed: {exc}",
            url=url,
            method=method,
        ) from exc

    return ApiResponse(
        status=status_code,
        data=_parse_json_body(raw_body),
        headers=response_headers,
        url=url,
        method=method,
    )


def _encode_body(method: str, json_body: Any) -> bytes | None:
    if json_body is None:
        if method in _BODY_METHODS:
            return b"{}"
        return None
    return json.dumps(json_body).encode("utf-8")


def _parse_json_body(raw_body: str) -> Any:
    if not raw_body.strip():
        return None
    try:
        return json.loads(raw_body)
    except json.JSONDecodeError:
        return raw_body


def _normalize_headers(headers: Any) -> dict[str, str]:
    if headers is None or not hasattr(headers, "items"):
        return {}
    return {str(key).lower(): str(value) for key, value in headers.items()}


def _query_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
