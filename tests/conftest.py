from __future__ import annotations

import base64
import json
import time
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import parse_qs, urlsplit

import pytest
from fastapi.testclient import TestClient

from tubelens.app.dependencies import reset_cached_dependencies
from tubelens.app.main import create_app
from tubelens.app.repositories.client_storage_repository import ClientStorageRepository
from tubelens.app.repositories.database import Database
from tubelens.app.services import http_client
from tubelens.app.services.http_client import ApiClientError, ApiResponse

API_URL = "http://backend.test/api/v1"


def make_jwt(exp: float | None = None, **claims: Any) -> str:
    payload: dict[str, Any] = {"sub": "guest_1", "role": "guest", **claims}
    if exp is not None:
        payload["exp"] = int(exp)

    def _segment(data: Mapping[str, Any]) -> str:
        raw = json.dumps(dict(data)).encode("utf-8")
        return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")

    return f"{_segment({'alg': 'HS256', 'typ': 'JWT'})}.{_segment(payload)}.signature"


def fresh_jwt(**claims: Any) -> str:
    return make_jwt(time.time() + 86_400, **claims)


def sample_video(video_id: str, **overrides: Any) -> dict[str, Any]:
    video: dict[str, Any] = {
        "videoId": video_id,
        "title": f"Video {video_id}",
        "channelTitle": "Test Channel",
        "viewCount": 1_000,
        "likeCount": 40,
        "commentCount": 10,
        "publishedAt": "2024-03-04T15:30:00Z",
        "durationSeconds": 300,
        "categoryName": "Education",
        "tags": ["python", "testing"],
    }
    video.update(overrides)
    return video


@dataclass
class RecordedCall:
    method: str
    url: str
    headers: dict[str, str]
    body: Any

    @property
    def path(self) -> str:
        return urlsplit(self.url).path.removeprefix("/api/v1")

    @property
    def query(self) -> dict[str, str]:
        return {key: values[0] for key, values in parse_qs(urlsplit(self.url).query).items()}


Reply = Callable[[RecordedCall], ApiResponse]


@dataclass
class FakeBackend:
    """Stands in for the network: queued replies per (method, path), every call recorded."""

    replies: dict[tuple[str, str], list[Reply]] = field(default_factory=dict)
    calls: list[RecordedCall] = field(default_factory=list)
    sleeps: list[float] = field(default_factory=list)

    def reply(
        self,
        method: str,
        path: str,
        data: Any = None,
        *,
        status: int = 200,
        headers: Mapping[str, str] | None = None,
        times: int = 1,
    ) -> None:
        def _reply(call: RecordedCall) -> ApiResponse:
            if status >= 400:
                raise ApiClientError(
                    f"Request failed with status code {status}",
                    status=status,
                    payload=data,
                    headers={key.lower(): value for key, value in (headers or {}).items()},
                    url=call.url,
                    method=call.method,
                )
            return ApiResponse(
                status=status,
                data=data,
                headers=dict(headers or {}),
                url=call.url,
                method=call.method,
            )

        self.replies.setdefault((method.upper(), path), []).extend([_reply] * times)

    def fail_network(self, method: str, path: str, *, times: int = 1) -> None:
        def _reply(call: RecordedCall) -> ApiResponse:
            raise ApiClientError(
                "Backend request failed: connection refused",
                url=call.url,
                method=call.method,
            )

        self.replies.setdefault((method.upper(), path), []).extend([_reply] * times)

    def calls_to(self, method: str, path: str) -> list[RecordedCall]:
        return [call for call in self.calls if call.method == method and call.path == path]

    def send(
        self,
        *,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: bytes | None,
        timeout_seconds: float,
    ) -> ApiResponse:
        _ = timeout_seconds
        call = RecordedCall(
            method=method,
            url=url,
            headers=dict(headers),
            body=json.loads(body) if body else None,
        )
        self.calls.append(call)
        queue = self.replies.get((method, call.path))
        if not queue:
            raise AssertionError(f"unexpected backend call {method} {call.path}")
        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        return reply(call)


@pytest.fixture
def fake_backend(monkeypatch: pytest.MonkeyPatch) -> FakeBackend:
    backend = FakeBackend()
    monkeypatch.setattr(http_client, "_send_request", backend.send)
    monkeypatch.setattr(http_client.time, "sleep", backend.sleeps.append)
    return backend


@pytest.fixture
def storage(tmp_path: Path) -> ClientStorageRepository:
    db = Database(tmp_path / "storage.db")
    db.initialize()
    return ClientStorageRepository(db)


@pytest.fixture
def app_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    data_dir = tmp_path / "runtime-data"
    data_dir.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("TUBELENS_DATA_DIR", str(data_dir))
    monkeypatch.setenv("TUBELENS_API_BASE_URL", "http://backend.test")
    monkeypatch.setenv("TUBELENS_API_PREFIX", "/api/v1")
    monkeypatch.setenv("TUBELENS_TELEMETRY_ENABLED", "0")
    reset_cached_dependencies()
    yield data_dir
    reset_cached_dependencies()


@pytest.fixture
def client(app_env: Path, fake_backend: FakeBackend) -> Iterator[TestClient]:
    _ = (app_env, fake_backend)
    app = create_app()
    with TestClient(app) as test_client:
        yield test_client
