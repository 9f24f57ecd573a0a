from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, cast

from tubelens.app.services.http_client import ApiClient, ApiClientError
from tubelens.app.services.response_extraction import (
    extract_first,
    extract_token,
    extract_user,
    path_strategy,
)
from tubelens.app.services.token_store import TokenStore

GUEST_LOGIN_PATH = "/auth/guest"
GUEST_REFRESH_PATH = "/auth/guest/refresh"
VERIFY_PATH = "/auth/verify"
LOGOUT_PATH = "/auth/logout"
DEFAULT_QUOTA_REMAINING = 100

_QUOTA_STRATEGIES = (
    path_strategy("data", "quotaRemaining", expect=int),
    path_strategy("quotaRemaining", expect=int),
    path_strategy("data", "user", "quotaRemaining", expect=int),
    path_strategy("user", "quotaRemaining", expect=int),
)

LOGGER = logging.getLogger("tubelens.auth")


class AuthError(Exception):
    pass


@dataclass(frozen=True)
class GuestSession:
    token: str | None
    user: dict[str, Any]
    quota_remaining: int = DEFAULT_QUOTA_REMAINING


class AuthApi:
    def __init__(self, client: ApiClient, token_store: TokenStore) -> None:
        self._client = client
        self._token_store = token_store

    def login_as_guest(self) -> GuestSession:
        try:
            response = self._client.post(GUEST_LOGIN_PATH, {})
        except ApiClientError as exc:
            raise AuthError(_failure_message(exc, "Failed to authenticate as guest")) from exc
        session = self._store_session(response.data, action="login")
        LOGGER.info("guest session started user_id=%s", session.user.get("id"))
        return session

    def refresh_session(self) -> GuestSession:
        if self._token_store.get_token() is None:
            raise AuthError("No active session to refresh")
        try:
            response = self._client.post(GUEST_REFRESH_PATH, {})
        except ApiClientError as exc:
            raise AuthError(_failure_message(exc, "Failed to refresh session")) from exc
        session = self._store_session(response.data, action="refresh")
        LOGGER.info("guest session refreshed user_id=%s", session.user.get("id"))
        return session

    def verify(self) -> GuestSession:
        response = self._client.get(VERIFY_PATH)
        return GuestSession(
            token=self._token_store.get_token(),
            user=extract_user(response.data) or {},
            quota_remaining=_quota_remaining(response.data),
        )

    def logout(self) -> None:
        if self._token_store.get_token() is not None:
            try:
                self._client.post(LOGOUT_PATH, {})
            except ApiClientError as exc:
                LOGGER.warning("backend logout failed; clearing local session anyway error=%s", exc)
        self._token_store.remove_token()

    def check_auth_status(self) -> GuestSession | None:
        if self._token_store.get_token() is None:
            return None
        try:
            return self.verify()
        except ApiClientError as exc:
            LOGGER.warning("token verification failed; clearing session error=%s", exc)
            self._token_store.remove_token()
            return None

    def _store_session(self, payload: Any, *, action: str) -> GuestSession:
        token = extract_token(payload)
        if token is None:
            raise AuthError(f"Guest {action} response did not include a token")
        if not self._token_store.set_token(token):
            raise AuthError(f"Guest {action} returned a token that could not be stored")
        return GuestSession(
            token=token,
            user=extract_user(payload) or {},
            quota_remaining=_quota_remaining(payload),
        )


def _quota_remaining(payload: Any) -> int:
    value = extract_first(payload, _QUOTA_STRATEGIES)
    if isinstance(value, bool) or not isinstance(value, int):
        return DEFAULT_QUOTA_REMAINING
    return max(0, cast(int, value))


def _failure_message(error: ApiClientError, default: str) -> str:
    if isinstance(error.payload, dict):
        message = cast(dict[str, Any], error.payload).get("error")
        if isinstance(message, str) and message.strip():
            return message.strip()
    return default
