"""HTTP transport: the extension message endpoint plus security middleware."""

from __future__ import annotations

import json
import re
import secrets
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog
import uvicorn
from starlette.applications import Starlette
from starlette.datastructures import Headers
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from brevity import __version__
from brevity.router import route
from brevity.state import open_state

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from starlette.requests import Request
    from starlette.types import ASGIApp, Receive, Scope, Send

    from brevity.config import Settings

log = structlog.get_logger()

# Local pages plus Chrome/Edge and Firefox extension origins.
_ALLOWED_ORIGIN = re.compile(
    r"^(https?://(localhost|127\.0\.0\.1)(:\d+)?"
    r"|chrome-extension://[a-p]{32}"
    r"|moz-extension://[0-9a-f-]{36})$"
)


class MessageSecurityMiddleware:
    """Pure ASGI middleware for HTTP transport security.

    Enforces two checks on every HTTP request:
    1. Optional bearer key authentication.
    2. Origin validation: only localhost pages and browser extensions.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        auth_enabled: bool,
        auth_key: str | None = None,
    ) -> None:
        self.app = app
        self.auth_enabled = auth_enabled
        self.auth_key = auth_key

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http":
            headers = Headers(scope=scope)

            if self.auth_enabled:
                auth_header = headers.get("authorization", "")
                supplied = auth_header[7:] if auth_header.startswith("Bearer ") else ""
                if not self.auth_key or not secrets.compare_digest(supplied, self.auth_key):
                    await Response("Unauthorized", status_code=401)(scope, receive, send)
                    return

            origin = headers.get("origin", "")
            if origin and not _ALLOWED_ORIGIN.match(origin):
                await Response("Forbidden", status_code=403)(scope, receive, send)
                return

        await self.app(scope, receive, send)


async def _message_endpoint(request: Request) -> JSONResponse:
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return JSONResponse({"error": "Request body must be valid JSON."}, status_code=400)
    reply = await route(payload, request.app.state.brevity)
    return JSONResponse(reply)


async def _health_endpoint(request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok", "version": __version__})


def build_http_app(settings: Settings) -> Starlette:
    """Create the Starlette app. Its lifespan owns AppState."""

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        async with open_state(settings) as state:
            app.state.brevity = state
            yield

    return Starlette(
        routes=[
            Route("/message", _message_endpoint, methods=["POST"]),
            Route("/health", _health_endpoint, methods=["GET"]),
        ],
        lifespan=lifespan,
    )


def run_http_server(settings: Settings) -> None:
    """Serve the message endpoint over HTTP with uvicorn."""
    http_log = log.bind(transport="http")

    auth_key: str | None = settings.server.auth_key or None

    if settings.server.auth_enabled and not auth_key:
        auth_key = secrets.token_urlsafe(32)
        http_log.warning("http_auth_key_auto_generated", auth_key=auth_key)

    if not settings.server.auth_enabled:
        http_log.warning("http_auth_disabled")

    secured_app = MessageSecurityMiddleware(
        build_http_app(settings),
        auth_enabled=settings.server.auth_enabled,
        auth_key=auth_key,
    )

    uvicorn.run(
        secured_app,
        host=settings.server.host,
        port=settings.server.port,
        log_config=None,  # Disable uvicorn's default logging; structlog handles it
    )
