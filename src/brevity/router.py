"""Message router for the browser extension contract.

Every inbound message is a dict with a ``type`` field. The reply is always a
plain dict: the handler's payload on success, ``{"error": "<message>"}`` on
any failure. Raw exceptions never reach the caller.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

import brevity.tools.get_key_source as t_key_source
import brevity.tools.get_summary as t_summary
import brevity.tools.manage_cache as t_cache
import brevity.tools.set_api_key as t_set_key
from brevity.errors import BrevityError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from brevity.state import AppState

log = structlog.get_logger()

GENERIC_ERROR_MESSAGE = "Something went wrong while generating the summary."


def _get_summary(message: dict[str, Any], state: AppState) -> Awaitable[dict]:
    return t_summary.handle(message.get("text", ""), message.get("cacheKey"), state)


def _get_key_source(message: dict[str, Any], state: AppState) -> Awaitable[dict]:
    return t_key_source.handle(state)


def _set_api_key(message: dict[str, Any], state: AppState) -> Awaitable[dict]:
    return t_set_key.handle(message.get("key", ""), state)


def _clear_cache(message: dict[str, Any], state: AppState) -> Awaitable[dict]:
    return t_cache.handle_clear(state)


def _get_cache_stats(message: dict[str, Any], state: AppState) -> Awaitable[dict]:
    return t_cache.handle_stats(state)


HANDLERS: dict[str, Callable[[dict[str, Any], AppState], Awaitable[dict]]] = {
    "GET_SUMMARY": _get_summary,
    "GET_KEY_SOURCE": _get_key_source,
    "SET_API_KEY": _set_api_key,
    "CLEAR_CACHE": _clear_cache,
    "GET_CACHE_STATS": _get_cache_stats,
}


async def route(message: Any, state: AppState) -> dict:
    """Dispatch one message and return its reply."""
    if not isinstance(message, dict):
        return {"error": "Message must be a JSON object."}

    message_type = message.get("type")
    handler = HANDLERS.get(message_type) if isinstance(message_type, str) else None
    if handler is None:
        log.warning("router_unknown_message", message_type=message_type)
        return {"error": f"Unknown message type: {message_type!r}"}

    try:
        return await handler(message, state)
    except BrevityError as exc:
        log.warning(
            "request_error",
            message_type=message_type,
            code=exc.code,
            message=exc.message,
            recoverable=exc.recoverable,
        )
        return {"error": exc.message}
    except Exception:
        log.error("request_unexpected_error", message_type=message_type, exc_info=True)
        return {"error": GENERIC_ERROR_MESSAGE}
