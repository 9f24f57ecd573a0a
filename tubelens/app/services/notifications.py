from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from threading import Lock
from typing import Any

QUOTA_EXCEEDED_EVENT = "quota-exceeded"
NETWORK_ERROR_EVENT = "network-error"
SESSION_EXPIRED_EVENT = "session-expired"

LOGIN_REDIRECT_PATH = "/login"

LOGGER = logging.getLogger("tubelens.notifications")

NotificationHandler = Callable[["Notification"], None]


@dataclass(frozen=True)
class Notification:
    name: str
    detail: dict[str, Any]
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class NotificationBus:
    """Decoupled out-of-band notifications between the HTTP pipeline and the UI layer.

    Handlers subscribe per event name (or `"*"` for everything). The bus also
    keeps a bounded backlog so a polling consumer can `drain()` what it missed.
    """

    def __init__(self, *, backlog_size: int = 50) -> None:
        self._handlers: dict[str, list[NotificationHandler]] = {}
        self._backlog: deque[Notification] = deque(maxlen=max(1, backlog_size))
        self._lock = Lock()

    def subscribe(self, name: str, handler: NotificationHandler) -> Callable[[], None]:
        with self._lock:
            self._handlers.setdefault(name, []).append(handler)

        def _unsubscribe() -> None:
            with self._lock:
                handlers = self._handlers.get(name, [])
                if handler in handlers:
                    handlers.remove(handler)

        return _unsubscribe

    def publish(self, name: str, detail: Mapping[str, Any] | None = None) -> Notification:
        notification = Notification(name=name, detail=dict(detail or {}))
        with self._lock:
            self._backlog.append(notification)
            handlers = [*self._handlers.get(name, []), *self._handlers.get("*", [])]

        for handler in handlers:
            try:
                handler(notification)
            except Exception:
                LOGGER.exception("notification handler failed event=%s", name)
        return notification

    def recent(self) -> list[Notification]:
        with self._lock:
            return list(self._backlog)

    def drain(self) -> list[Notification]:
        with self._lock:
            drained = list(self._backlog)
            self._backlog.clear()
        return drained
