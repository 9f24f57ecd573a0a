from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest
import structlog
from pydantic import ValidationError

from tubelens.app.config import AppSettings, load_settings
from tubelens.app.logging_config import (
    TELEMETRY_LOG_FILE_NAME,
    _stream_supports_color,  # pyright: ignore[reportPrivateUsage]
    configure_application_logging,
    configure_cli_logging,
)
from tubelens.app.repositories.client_storage_repository import (
    ClientStorageRepository,
    StorageQuotaExceededError,
)
from tubelens.app.repositories.database import Database


def test_settings_derive_paths_from_data_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TUBELENS_DATA_DIR", str(tmp_path / "data"))

    settings = load_settings()

    assert settings.db_path == (tmp_path / "data" / "storage.db").resolve()
    assert settings.log_dir == (tmp_path / "data" / "logs").resolve()
    assert settings.api_url == "http://localhost:5000/api/v1"
    assert settings.http_max_retries == 3
    assert settings.selection_ttl_seconds == 86_400


def test_settings_explicit_paths_win(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TUBELENS_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("TUBELENS_DB_PATH", str(tmp_path / "elsewhere.db"))

    settings = load_settings()

    assert settings.db_path == (tmp_path / "elsewhere.db").resolve()
    assert settings.log_dir == (tmp_path / "data" / "logs").resolve()


def test_settings_normalize_backend_url(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TUBELENS_API_BASE_URL", " https://api.example.com/ ")
    monkeypatch.setenv("TUBELENS_API_PREFIX", "v2/")
    monkeypatch.setenv("TUBELENS_TRENDING_REGION_CODE", "gb")

    settings = load_settings()

    assert settings.api_url == "https://api.example.com/v2"
    assert settings.trending_region_code == "GB"


def test_settings_bool_branches(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TUBELENS_TELEMETRY_ENABLED", "off")
    assert load_settings().telemetry_enabled is False

    monkeypatch.setenv("TUBELENS_TELEMETRY_ENABLED", "yes")
    assert load_settings().telemetry_enabled is True

    monkeypatch.setenv("TUBELENS_TELEMETRY_ENABLED", "maybe")
    assert load_settings().telemetry_enabled is True


def test_settings_reject_invalid_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TUBELENS_TELEMETRY_SINK", "otlp")
    with pytest.raises(ValidationError):
        load_settings()

    monkeypatch.delenv("TUBELENS_TELEMETRY_SINK")
    monkeypatch.setenv("TUBELENS_HTTP_MAX_RETRIES", "-1")
    with pytest.raises(ValidationError):
        load_settings()


def test_client_storage_enforces_quota(tmp_path: Path) -> None:
    db = Database(tmp_path / "storage.db")
    db.initialize()
    storage = ClientStorageRepository(db, quota_bytes=20)

    storage.set_item("k", "v" * 10)
    storage.set_item("k", "w" * 19)
    assert storage.size_bytes() == 20

    with pytest.raises(StorageQuotaExceededError) as excinfo:
        storage.set_item("other", "x")
    assert excinfo.value.key == "other"
    assert storage.keys() == ["k"]

    storage.remove_item("k")
    storage.set_item("other", "x")
    assert storage.get_item("other") == "x"
    storage.clear()
    assert storage.keys() == []


def test_configure_application_logging_creates_file(tmp_path: Path) -> None:
    settings = AppSettings(
        data_dir=tmp_path,
        db_path=tmp_path / "storage.db",
        log_dir=tmp_path / "logs",
        log_level="INFO",
    )
    log_file = configure_application_logging(settings)
    logging.getLogger("tubelens.test").info("runtime-log-test")
    structlog.get_logger("tubelens.telemetry").info("telemetry", telemetry_event="test.event")

    app_logger = logging.getLogger("tubelens")
    assert len(app_logger.handlers) == 2
    assert {handler.level for handler in app_logger.handlers} == {logging.INFO, logging.DEBUG}
    assert app_logger.propagate is False
    for handler in app_logger.handlers:
        handler.flush()

    telemetry_logger = logging.getLogger("tubelens.telemetry")
    assert telemetry_logger.propagate is False
    assert len(telemetry_logger.handlers) == 1
    for handler in telemetry_logger.handlers:
        handler.flush()

    parsed_events = [
        json.loads(line)
        for line in log_file.read_text(encoding="utf-8").splitlines()
        if line.strip()
    ]
    runtime_event = next(event for event in parsed_events if event.get("event") == "runtime-log-test")
    assert runtime_event["logger"] == "tubelens.test"
    assert runtime_event["level"] == "info"
    assert runtime_event["lineno"]
    assert all(event.get("telemetry_event") != "test.event" for event in parsed_events)

    telemetry_lines = (settings.log_dir / TELEMETRY_LOG_FILE_NAME).read_text(encoding="utf-8").splitlines()
    telemetry_events = [json.loads(line) for line in telemetry_lines if line.strip()]
    assert any(event.get("telemetry_event") == "test.event" for event in telemetry_events)


def test_configure_cli_logging_keeps_console_quiet(tmp_path: Path) -> None:
    settings = AppSettings(data_dir=tmp_path, db_path=tmp_path / "storage.db", log_dir=tmp_path / "logs")

    configure_cli_logging(settings)
    quiet_levels = {handler.level for handler in logging.getLogger("tubelens").handlers}
    configure_cli_logging(settings, verbose=True)
    verbose_levels = {handler.level for handler in logging.getLogger("tubelens").handlers}

    assert quiet_levels == {logging.WARNING, logging.DEBUG}
    assert verbose_levels == {logging.DEBUG}


def test_stream_supports_color_detects_tty() -> None:
    class _TTY:
        def isatty(self) -> bool:
            return True

    class _Pipe:
        def isatty(self) -> bool:
            return False

    class _Broken:
        def isatty(self) -> bool:
            raise RuntimeError("boom")

    assert _stream_supports_color(_TTY()) is True
    assert _stream_supports_color(_Pipe()) is False
    assert _stream_supports_color(_Broken()) is False
    assert _stream_supports_color(object()) is False
