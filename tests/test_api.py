from __future__ import annotations

from typing import Any

from conftest import FakeBackend, fresh_jwt, sample_video
from fastapi.testclient import TestClient


def _login(client: TestClient, fake_backend: FakeBackend) -> str:
    token = fresh_jwt()
    fake_backend.reply(
        "POST",
        "/auth/guest",
        {"success": True, "data": {"token": token, "user": {"id": "guest_1", "quotaRemaining": 100}}},
    )
    response = client.post("/session/guest")
    assert response.status_code == 200
    return token


def _search(client: TestClient, fake_backend: FakeBackend, videos: list[dict[str, Any]]) -> dict[str, Any]:
    fake_backend.reply("GET", "/youtube/search", {"success": True, "data": {"results": videos, "query": "python"}})
    response = client.post("/search", json={"type": "keyword", "query": "python"})
    assert response.status_code == 200
    return response.json()


def test_health_sets_request_id(client: TestClient) -> None:
    response = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert response.headers["X-Request-ID"] == "req-123"


def test_guest_session_lifecycle(client: TestClient, fake_backend: FakeBackend) -> None:
    assert client.get("/session").json()["authenticated"] is False

    token = _login(client, fake_backend)
    fake_backend.reply("GET", "/auth/verify", {"data": {"user": {"id": "guest_1", "quotaRemaining": 99}}})

    status = client.get("/session").json()
    assert status["authenticated"] is True
    assert status["user"]["id"] == "guest_1"
    assert status["quota_remaining"] == 99
    assert status["time_remaining_ms"] > 0
    assert fake_backend.calls_to("GET", "/auth/verify")[0].headers["Authorization"] == f"Bearer {token}"

    fake_backend.reply("POST", "/auth/logout", {"success": True})
    assert client.delete("/session").json()["authenticated"] is False
    assert client.get("/session").json()["authenticated"] is False


def test_search_then_select_then_dashboard(client: TestClient, fake_backend: FakeBackend) -> None:
    _login(client, fake_backend)
    body = _search(
        client,
        fake_backend,
        [sample_video("a", viewCount=100), sample_video("b", viewCount=300)],
    )
    assert body["metadata"] == {"query": "python", "type": "keyword", "total_results": 2}
    assert body["quota_used"] == 1
    assert body["quota_remaining"] == 99

    results = client.post("/results/sort", json={"sort_by": "views"}).json()
    assert [item["video_id"] for item in results["results"]] == ["b", "a"]

    results = client.post("/results/select-all").json()
    assert results["all_selected"] is True

    selection = client.get("/selection").json()
    assert selection["count"] == 2
    assert selection["metadata"]["query"] == "python"

    summary = client.get("/dashboard/summary").json()
    assert summary["total_views"] == 400
    assert summary["video_count"] == 2

    performance = client.get("/dashboard/performance").json()
    assert [bar["video_id"] for bar in performance] == ["b", "a"]

    likes = client.get("/dashboard/likes-vs-comments").json()
    assert likes["total_likes"] == 80

    chart = client.post("/dashboard/custom-chart", json={"chart_type": "bar", "x_axis": "channelTitle"}).json()
    assert chart["series"][0]["name"] == "Test Channel"


def test_result_selection_with_shift(client: TestClient, fake_backend: FakeBackend) -> None:
    _search(client, fake_backend, [sample_video("a"), sample_video("b"), sample_video("c")])

    client.post("/results/select", json={"index": 0})
    results = client.post("/results/select", json={"index": 2, "shift": True}).json()

    assert results["selected_in_view"] == 3
    assert client.post("/results/select", json={"index": 7}).status_code == 404

    results = client.post("/results/deselect-all").json()
    assert results["selected_in_view"] == 0


def test_selection_endpoints(client: TestClient) -> None:
    added = client.post("/selection/videos", json={"video": sample_video("a")}).json()
    assert added["changed"] == 1
    assert added["selected"] is True

    again = client.post("/selection/videos", json={"video": sample_video("a")}).json()
    assert again["changed"] == 0

    toggled = client.post("/selection/toggle", json={"video": sample_video("b")}).json()
    assert toggled["selected"] is True
    assert toggled["selection"]["video_ids"] == ["a", "b"]

    assert client.post("/selection/toggle", json={"video": {"title": "x"}}).status_code == 400

    bulk = client.post("/selection/select-all", json={"videos": [sample_video("b"), sample_video("c")]}).json()
    assert bulk["changed"] == 1

    removed = client.delete("/selection/videos/a").json()
    assert removed["selection"]["video_ids"] == ["b", "c"]

    cleared = client.delete("/selection").json()
    assert cleared["count"] == 0


def test_empty_query_is_a_bad_request(client: TestClient, fake_backend: FakeBackend) -> None:
    response = client.post("/search", json={"type": "keyword", "query": "  "})
    assert response.status_code == 400
    assert response.json()["detail"] == "Please enter a search query"
    assert fake_backend.calls == []


def test_backend_error_maps_to_bad_gateway(client: TestClient, fake_backend: FakeBackend) -> None:
    fake_backend.reply("GET", "/youtube/video/zzz", {"error": "Video not found"}, status=404)

    response = client.post("/search", json={"type": "video", "query": "zzz"})

    assert response.status_code == 502
    assert response.json()["detail"] == "Video not found"


def test_expired_session_returns_login_redirect(client: TestClient, fake_backend: FakeBackend) -> None:
    _login(client, fake_backend)
    fake_backend.reply("GET", "/youtube/trending", {"error": "Token expired"}, status=401)
    fake_backend.reply("POST", "/auth/guest/refresh", {"error": "Invalid token"}, status=401)

    response = client.post("/search", json={"type": "trending"})

    assert response.status_code == 401
    assert response.json()["detail"]["redirect"] == "/login"
    assert client.get("/session").json()["authenticated"] is False
    notifications = client.get("/notifications").json()
    assert [item["name"] for item in notifications] == ["session-expired"]
    assert client.get("/notifications").json() == []


def test_history_and_quota_endpoints(client: TestClient, fake_backend: FakeBackend) -> None:
    _search(client, fake_backend, [sample_video("a")])

    history = client.get("/search/history").json()
    assert [entry["query"] for entry in history] == ["python"]
    assert history[0]["result_count"] == 1

    assert client.get("/quota").json() == {"used": 1, "remaining": 99, "limit": 100}
    assert client.delete("/quota").json()["used"] == 0

    assert client.delete("/search/history/python").json() == []
    assert client.delete("/search/history").json() == []


def test_filters_round_trip(client: TestClient) -> None:
    initial = client.get("/filters").json()
    assert initial["active_count"] == 0
    assert initial["filters"]["maxResults"] == 50
    assert {"value": "27", "label": "Education"} in initial["categories"]

    saved = client.put("/filters", json={"minViews": 1000, "duration": "long"}).json()
    assert saved["filters"]["minViews"] == 1000
    assert saved["active_count"] == 2
    assert client.get("/filters").json()["filters"]["duration"] == "long"

    assert client.put("/filters", json={"maxResults": 99}).status_code == 422
    assert client.delete("/filters").json()["active_count"] == 0


def test_exports_require_a_selection(client: TestClient) -> None:
    response = client.get("/export/csv")
    assert response.status_code == 400
    assert response.json()["detail"] == "Please select at least one video to export"
    assert client.get("/export/report").status_code == 400


def test_exports(client: TestClient) -> None:
    client.post("/selection/videos", json={"video": sample_video("a", title="Exported")})

    csv_response = client.get("/export/csv")
    assert csv_response.status_code == 200
    assert csv_response.headers["content-type"].startswith("text/csv")
    disposition = csv_response.headers["content-disposition"]
    assert disposition.startswith('attachment; filename="youtube_analytics_')
    assert csv_response.text.splitlines()[0].startswith("Video ID,Title,Channel")

    report = client.get("/export/report")
    assert report.status_code == 200
    assert report.headers["content-type"].startswith("text/html")
    assert "Exported" in report.text


def test_request_metrics_endpoint(client: TestClient, fake_backend: FakeBackend) -> None:
    _search(client, fake_backend, [])

    metrics = client.get("/metrics/requests").json()
    assert metrics["total_requests"] == 1
    assert metrics["recent"][0]["url"].startswith("http://backend.test/api/v1/youtube/search")

    assert client.delete("/metrics/requests").json()["total_requests"] == 0


def test_chart_options(client: TestClient) -> None:
    options = client.get("/dashboard/chart-options").json()
    assert options["chart_types"] == ["scatter", "bar", "line", "area"]
    assert {"value": "viewCount", "label": "View Count", "type": "numeric"} in options["axes"]
    assert client.post("/dashboard/custom-chart", json={"x_axis": "nope"}).status_code == 400


def test_custom_chart_rejects_categorical_y_for_bar(client: TestClient) -> None:
    client.post("/selection/videos", json={"video": sample_video("a")})
    assert "channelTitle" not in client.get("/dashboard/chart-options").json()["aggregate_y_axes"]

    response = client.post(
        "/dashboard/custom-chart",
        json={"chart_type": "bar", "x_axis": "categoryName", "y_axis": "channelTitle"},
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Bar charts need a numeric Y axis; Channel is categorical"
