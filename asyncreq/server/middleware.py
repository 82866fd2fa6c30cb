"""
Request tracking middleware.

Provides:
- Request ID generation and propagation
- Request timing logs, with the level picked from the status
  (503 timeouts and 499 disconnects are warnings, other 5xx are errors)

Written against raw ASGI rather than BaseHTTPMiddleware: the endpoints poll
``request.is_disconnected()``, which only sees ``http.disconnect`` when the
``receive`` channel reaches them unwrapped.
"""

from __future__ import annotations

import logging
import time
from contextvars import ContextVar
from typing import Optional

from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from asyncreq.pending import generate_request_id
from asyncreq.server.exceptions import CLIENT_CLOSED_REQUEST


logger = logging.getLogger(__name__)

# Context variable for request tracking
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def get_request_id() -> Optional[str]:
    """Get the current request ID from context."""
    return request_id_var.get()


class RequestTrackingMiddleware:
    """
    Middleware for request tracking.

    Extracts the request ID from X-Request-ID, generates one if missing, and
    logs how long each request took. The same ID names the PendingRequest,
    so log lines from the controller and the HTTP layer line up.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = Headers(scope=scope).get("x-request-id") or generate_request_id()
        scope.setdefault("state", {})["request_id"] = request_id
        method, path = scope["method"], scope["path"]
        token = request_id_var.set(request_id)
        started = time.monotonic()
        status_code: Optional[int] = None

        async def send_with_request_id(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
                MutableHeaders(scope=message)["X-Request-ID"] = request_id
            await send(message)

        try:
            await self.app(scope, receive, send_with_request_id)
        except Exception as e:
            logger.error(
                "[%s] %s %s raised %s after %.1fms",
                request_id, method, path, type(e).__name__, _elapsed_ms(started),
            )
            raise
        finally:
            request_id_var.reset(token)

        if status_code is not None and not path.startswith("/health"):
            logger.log(
                _level_for(status_code),
                "[%s] %s %s -> %d %s (%.1fms)",
                request_id, method, path,
                status_code, _describe_status(status_code),
                _elapsed_ms(started),
            )


def _elapsed_ms(started: float) -> float:
    return (time.monotonic() - started) * 1000


def _level_for(status_code: int) -> int:
    if status_code >= 500 and status_code != 503:
        return logging.ERROR
    if status_code in (503, CLIENT_CLOSED_REQUEST):
        return logging.WARNING
    return logging.INFO


def _describe_status(status_code: int) -> str:
    if status_code == CLIENT_CLOSED_REQUEST:
        return "client closed request"
    if status_code == 503:
        return "unavailable"
    if status_code >= 500:
        return "failed"
    return "ok" if status_code < 400 else "rejected"
