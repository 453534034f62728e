"""Tool handler for get_summary.

Receives AppState, validates the request, derives a cache key when the
caller did not send one, and delegates to the RequestCoordinator. No MCP or
HTTP imports; server.py and transport.py handle the wiring.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError

from brevity.errors import BrevityError, ErrorCode
from brevity.keys import make_cache_key, namespace_key
from brevity.models.tools import GetSummaryInput, GetSummaryOutput

if TYPE_CHECKING:
    from brevity.state import AppState


async def handle(text: str, cache_key: str | None, state: AppState) -> dict:
    """Handle a get_summary request."""
    log = structlog.get_logger().bind(tool="get_summary")

    # Validate input
    try:
        validated = GetSummaryInput(text=text, cache_key=cache_key)
    except ValidationError as exc:
        raise BrevityError(
            code=ErrorCode.INVALID_INPUT,
            message="Description text must be a non-empty string.",
            suggestion="Send the description text (and optionally its cacheKey).",
            recoverable=False,
        ) from exc

    if state.coordinator is None:
        raise RuntimeError("Coordinator not initialized")

    if validated.cache_key:
        key = namespace_key(validated.cache_key)
    else:
        key = make_cache_key(validated.text)
    log = log.bind(cache_key=key)
    log.info("handler_called", text_length=len(validated.text))

    result = await state.coordinator.resolve(validated.text, key)
    log.info("summary_resolved", source=result.origin)

    output = GetSummaryOutput(summary=result.summary, source=result.origin)
    return output.model_dump(mode="json")
