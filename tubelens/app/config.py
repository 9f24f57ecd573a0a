from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DATA_DIR = ".tubelens"
_DATA_DIR_RELATIVE_DEFAULTS: tuple[tuple[str, Path], ...] = (
    ("db_path", Path("storage.db")),
    ("log_dir", Path("logs")),
)
_PATH_FIELDS: tuple[str, ...] = (
    "data_dir",
    *(field_name for field_name, _ in _DATA_DIR_RELATIVE_DEFAULTS),
)
_BOOLEAN_COERCION_FIELDS: tuple[str, ...] = ("telemetry_enabled",)


def _default_in_data_dir(relative_path: Path) -> Path:
    return Path(DEFAULT_DATA_DIR) / relative_path


def _data_dir_default_note(relative_path: Path) -> str:
    return f"Defaults to `${{TUBELENS_DATA_DIR}}/{relative_path}` when not explicitly set."


def _resolve_path(value: str | Path) -> Path:
    return Path(value).expanduser().resolve()


def _parse_bool_with_default(value: Any, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        if value == 1:
            return True
        if value == 0:
            return False
        return default
    if not isinstance(value, str):
        return default

    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


class AppSettings(BaseSettings):
    """
    Canonical runtime configuration.

    Every option is read from a `TUBELENS_*` environment variable (or `.env`)
    and documents its own default.
    """

    model_config = SettingsConfigDict(
        env_prefix="TUBELENS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Core paths.
    data_dir: Path = Field(
        default=Path(DEFAULT_DATA_DIR),
        description="Root runtime directory for client storage and logs.",
    )
    db_path: Path = Field(
        default=_default_in_data_dir(Path("storage.db")),
        description=f"SQLite client storage path. {_data_dir_default_note(Path('storage.db'))}",
    )

    # Backend API.
    api_base_url: str = Field(
        default="http://localhost:5000",
        description="Base URL of the guest-auth / YouTube proxy backend.",
    )
    api_prefix: str = Field(
        default="/api/v1",
        description="Path prefix appended to the backend base URL.",
    )
    http_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout for a single backend HTTP exchange.",
    )
    http_max_retries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Maximum transient-error retries per request.",
    )
    http_retry_base_delay_ms: int = Field(
        default=1_000,
        ge=0,
        description="Base backoff delay; attempt N waits base * 2^N milliseconds.",
    )
    http_slow_request_ms: int = Field(
        default=3_000,
        description="Requests slower than this are logged as warnings.",
    )
    http_metrics_capacity: int = Field(
        default=100,
        ge=1,
        description="Number of recent request metrics kept in memory.",
    )

    # Session and persistence.
    token_ttl_seconds: int = Field(
        default=86_400,
        description="Expiry stored alongside a freshly issued guest token.",
    )
    token_refresh_window_ms: int = Field(
        default=3_600_000,
        description="A stored token with less than this much time left should be refreshed.",
    )
    selection_ttl_seconds: int = Field(
        default=86_400,
        description="How long a persisted selection stays loadable.",
    )
    storage_quota_bytes: int = Field(
        default=5 * 1024 * 1024,
        ge=1,
        description="Byte quota of the client storage (keys plus values).",
    )

    # Search guardrails.
    daily_search_limit: int = Field(
        default=100,
        ge=1,
        description="Number of searches a guest session may run before being blocked.",
    )
    search_history_limit: int = Field(
        default=10,
        ge=1,
        description="Maximum entries kept in the recent-search history.",
    )
    trending_region_code: str = Field(
        default="US",
        description="Region code sent with trending lookups.",
    )

    # Logging.
    log_dir: Path = Field(
        default=_default_in_data_dir(Path("logs")),
        description=f"Directory for log files. {_data_dir_default_note(Path('logs'))}",
    )
    log_level: str = Field(
        default="INFO",
        description="Console log level (stdout).",
    )

    # Telemetry.
    telemetry_enabled: bool = Field(
        default=True,
        description="Enable lightweight internal telemetry events.",
    )
    telemetry_sink: Literal["none", "log"] = Field(
        default="log",
        description=(
            "Telemetry sink backend. `log` emits structured telemetry locally; "
            "`none` disables sink output."
        ),
    )

    @property
    def api_url(self) -> str:
        return f"{self.api_base_url}{self.api_prefix}"

    @field_validator("api_base_url", mode="before")
    @classmethod
    def _normalize_api_base_url(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("TUBELENS_API_BASE_URL must be a string.")
        normalized = value.strip().rstrip("/")
        if not normalized:
            raise ValueError("TUBELENS_API_BASE_URL must not be empty.")
        return normalized

    @field_validator("api_prefix", mode="before")
    @classmethod
    def _normalize_api_prefix(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("TUBELENS_API_PREFIX must be a string.")
        normalized = value.strip().strip("/")
        if not normalized:
            return ""
        return f"/{normalized}"

    @field_validator("trending_region_code", mode="before")
    @classmethod
    def _normalize_region_code(cls, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            raise ValueError("TUBELENS_TRENDING_REGION_CODE must be a non-empty string.")
        return value.strip().upper()

    @field_validator("telemetry_sink", mode="before")
    @classmethod
    def _normalize_telemetry_sink(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("TUBELENS_TELEMETRY_SINK must be a string.")
        normalized = value.strip().lower()
        if normalized in {"none", "log"}:
            return normalized
        raise ValueError("TUBELENS_TELEMETRY_SINK must be set to: none, log.")

    @field_validator(*_PATH_FIELDS, mode="before")
    @classmethod
    def _normalize_paths(cls, value: Any) -> Any:
        if value is None:
            return None
        return _resolve_path(value)

    @field_validator(*_BOOLEAN_COERCION_FIELDS, mode="before")
    @classmethod
    def _normalize_booleans(cls, value: Any, info: ValidationInfo) -> bool:
        field_name = info.field_name
        assert field_name is not None
        default_value = cls.model_fields[field_name].default
        assert isinstance(default_value, bool)
        return _parse_bool_with_default(value, default=default_value)


def _apply_path_defaults(settings: AppSettings) -> AppSettings:
    updates: dict[str, Path] = {}
    for field_name, relative_default in _DATA_DIR_RELATIVE_DEFAULTS:
        if field_name in settings.model_fields_set:
            continue
        updates[field_name] = settings.data_dir / relative_default
    if not updates:
        return settings
    return settings.model_copy(update=updates)


def _resolve_path_fields(settings: AppSettings) -> AppSettings:
    resolved_updates = {
        field_name: _resolve_path(getattr(settings, field_name))
        for field_name in _PATH_FIELDS
    }
    return settings.model_copy(update=resolved_updates)


def load_settings() -> AppSettings:
    settings = AppSettings()
    settings = _apply_path_defaults(settings)
    return _resolve_path_fields(settings)
