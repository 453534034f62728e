"""Service entrypoint.

Responsibilities (and nothing more):
- Configure structlog
- Create AppState via the FastMCP lifespan context manager
- Register MCP tools
- Start the correct transport (stdio MCP or the HTTP message endpoint)
"""

from __future__ import annotations

import json
import logging
import sys
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog
from mcp.server.fastmcp import Context, FastMCP
from mcp.types import CallToolResult, TextContent

from brevity import __version__
from brevity.config import Settings
from brevity.router import route
from brevity.state import AppState, open_state
from brevity.transport import run_http_server

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def _setup_logging(settings: Settings) -> None:
    """Configure structlog. Called once at startup before any log statements."""
    log_level = logging.getLevelNamesMapping()[settings.logging.level]

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.logging.format == "json":
        processors = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [*shared_processors, structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        # Logs go to stderr; stdout is reserved for the MCP JSON-RPC stream
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(server: FastMCP) -> AsyncGenerator[AppState, None]:
    """Create and tear down all shared resources for the server's lifetime."""
    settings = Settings()
    _setup_logging(settings)
    async with open_state(settings) as state:
        yield state


# ---------------------------------------------------------------------------
# FastMCP instance and tool registration
# ---------------------------------------------------------------------------

mcp = FastMCP("brevity", lifespan=lifespan)
# FastMCP doesn't expose a version kwarg; set it on the underlying Server
# so the MCP initialize handshake reports our version, not the SDK's.
mcp._mcp_server.version = __version__  # pyright: ignore[reportPrivateUsage]


def _tool_result(reply: dict) -> object:
    """Turn a router reply into a tool result, flagging ``{"error": ...}`` replies."""
    if "error" in reply:
        return CallToolResult(
            content=[TextContent(type="text", text=json.dumps(reply))],
            isError=True,
        )
    return reply


@mcp.tool()
async def get_summary(text: str, ctx: Context, cache_key: str | None = None) -> object:
    """Summarise a piece of descriptive text in one or two sentences.

    Pass the cache key computed by the client when available; otherwise it is
    derived from the text. The reply's ``source`` says whether the summary
    came from the cache, a concurrent identical request, or a fresh API call.
    """
    state: AppState = ctx.request_context.lifespan_context
    message = {"type": "GET_SUMMARY", "text": text, "cacheKey": cache_key}
    return _tool_result(await route(message, state))


@mcp.tool()
async def get_key_source(ctx: Context) -> object:
    """Report which credential tier (config or storage) supplies the API key."""
    state: AppState = ctx.request_context.lifespan_context
    return _tool_result(await route({"type": "GET_KEY_SOURCE"}, state))


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def main() -> None:
    settings = Settings()

    if settings.server.transport == "http":
        _setup_logging(settings)
        run_http_server(settings)
        return

    mcp.run()


if __name__ == "__main__":
    main()
