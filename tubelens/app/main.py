from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, Request, Response
from structlog.contextvars import bind_contextvars, reset_contextvars

from tubelens.app.api.routes import router
from tubelens.app.dependencies import get_notification_bus, get_settings, get_telemetry
from tubelens.app.logging_config import configure_application_logging
from tubelens.app.services.notifications import Notification

LOGGER = logging.getLogger("tubelens.app")


def health_check() -> dict[str, str]:
    return {"status": "ok"}


def _log_notification(notification: Notification) -> None:
    LOGGER.warning(
        "notification published event=%s detail=%s",
        notification.name,
        notification.detail,
    )


@asynccontextmanager
async def app_lifespan(_: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    log_path = configure_application_logging(settings)
    unsubscribe = get_notification_bus().subscribe("*", _log_notification)
    LOGGER.info("tubelens dashboard started backend=%s log_file=%s", settings.api_url, log_path)
    try:
        yield
    finally:
        unsubscribe()


def create_app() -> FastAPI:
    app = FastAPI(title="TubeLens Dashboard API", version="0.1.0", lifespan=app_lifespan)

    async def request_context_middleware(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        incoming_request_id = request.headers.get("X-Request-ID")
        request_id = (
            incoming_request_id.strip()
            if isinstance(incoming_request_id, str) and incoming_request_id.strip()
            else str(uuid4())
        )
        context_tokens = bind_contextvars(
            http_request_id=request_id,
            http_method=request.method,
            http_path=request.url.path,
        )
        try:
            with get_telemetry().span(
                "http.request",
                request_id=request_id,
                method=request.method,
                path=request.url.path,
            ) as span:
                response = await call_next(request)
                span.set(status_code=response.status_code)
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            reset_contextvars(**context_tokens)

    app.middleware("http")(request_context_middleware)
    app.include_router(router)
    app.add_api_route(
        "/health",
        health_check,
        methods=["GET"],
        tags=["system"],
        operation_id="health_check",
    )
    return app


app = create_app()
