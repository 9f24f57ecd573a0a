from __future__ import annotations

import base64
import binascii
import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, cast

from tubelens.app.repositories.client_storage_repository import (
    ClientStorageRepository,
    StorageQuotaExceededError,
)

TOKEN_KEY = "auth_token"
TOKEN_EXPIRY_KEY = "token_expiry"
DEFAULT_TOKEN_TTL_SECONDS = 24 * 60 * 60
DEFAULT_REFRESH_WINDOW_MS = 60 * 60 * 1000

LOGGER = logging.getLogger("tubelens.auth.tokens")


@dataclass(frozen=True)
class TokenInfo:
    has_token: bool
    is_expired: bool
    payload: dict[str, Any] | None
    time_remaining_ms: int
    expiry: datetime | None = None
    should_refresh: bool = False


def is_valid_token_format(token: object) -> bool:
    if not isinstance(token, str) or not token:
        return False
    parts = token.split(".")
    if len(parts) != 3:
        return False
    return all(len(part) > 0 for part in parts)


def get_token_payload(token: object) -> dict[str, Any] | None:
    if not isinstance(token, str) or not token:
        return None
    parts = token.split(".")
    if len(parts) != 3:
        return None

    segment = parts[1]
    padded = segment + "=" * (-len(segment) % 4)
    try:
        decoded = base64.urlsafe_b64decode(padded.encode("ascii"))
        payload = json.loads(decoded.decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError):
        return None
    if not isinstance(payload, dict):
        return None
    return payload


def is_token_expired(token: object, *, now: float | None = None) -> bool:
    payload = get_token_payload(token)
    if payload is None:
        return True

    exp = payload.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, int | float):
        return True
    current_seconds = int(time.time() if now is None else now)
    return exp < current_seconds


class TokenStore:
    """Bearer token persistence on top of client storage.

    Nothing here raises to the caller: malformed tokens, undecodable payloads
    and storage failures degrade to `False` / `None` / "expired".
    """

    def __init__(
        self,
        storage: ClientStorageRepository,
        *,
        default_ttl_seconds: int = DEFAULT_TOKEN_TTL_SECONDS,
        refresh_window_ms: int = DEFAULT_REFRESH_WINDOW_MS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._storage = storage
        self._default_ttl_seconds = default_ttl_seconds
        self._refresh_window_ms = refresh_window_ms
        self._clock = clock

    def set_token(self, token: object, expires_in_seconds: int | None = None) -> bool:
        if not is_valid_token_format(token):
            LOGGER.error("refusing to store token with invalid JWT format")
            return False
        token = cast(str, token)

        ttl = self._default_ttl_seconds if expires_in_seconds is None else expires_in_seconds
        try:
            expiry = datetime.fromtimestamp(self._clock(), tz=UTC) + timedelta(seconds=ttl)
        except OverflowError:
            LOGGER.error("token expiry out of range ttl_seconds=%s", ttl)
            return False

        try:
            self._write(token, expiry)
            return True
        except StorageQuotaExceededError:
            LOGGER.error("client storage quota exceeded while storing token; clearing storage")

        self._storage.clear()
        try:
            self._write(token, expiry)
        except StorageQuotaExceededError:
            LOGGER.error("failed to store token even after clearing client storage")
            return False
        return True

    def get_token(self) -> str | None:
        token = self._storage.get_item(TOKEN_KEY)
        if not token:
            return None
        if is_token_expired(token, now=self._clock()):
            LOGGER.warning("stored token is expired; removing it")
            self.remove_token()
            return None
        return token

    def remove_token(self) -> None:
        self._storage.remove_item(TOKEN_KEY)
        self._storage.remove_item(TOKEN_EXPIRY_KEY)

    def is_token_expired(self, token: object) -> bool:
        return is_token_expired(token, now=self._clock())

    def get_token_expiry(self) -> datetime | None:
        raw_expiry = self._storage.get_item(TOKEN_EXPIRY_KEY)
        if not raw_expiry:
            return None
        try:
            parsed = datetime.fromisoformat(raw_expiry)
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        return parsed

    def get_token_time_remaining_ms(self) -> int:
        expiry = self.get_token_expiry()
        if expiry is None:
            return 0
        remaining_ms = int((expiry.timestamp() - self._clock()) * 1000)
        return max(0, remaining_ms)

    def should_refresh_token(self) -> bool:
        remaining_ms = self.get_token_time_remaining_ms()
        return 0 < remaining_ms < self._refresh_window_ms

    def get_token_info(self) -> TokenInfo:
        token = self.get_token()
        if token is None:
            return TokenInfo(has_token=False, is_expired=True, payload=None, time_remaining_ms=0)
        return TokenInfo(
            has_token=True,
            is_expired=self.is_token_expired(token),
            payload=get_token_payload(token),
            time_remaining_ms=self.get_token_time_remaining_ms(),
            expiry=self.get_token_expiry(),
            should_refresh=self.should_refresh_token(),
        )

    def _write(self, token: str, expiry: datetime) -> None:
        self._storage.set_item(TOKEN_KEY, token)
        self._storage.set_item(TOKEN_EXPIRY_KEY, expiry.isoformat())
