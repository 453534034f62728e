"""Tool handler for set_api_key."""

from __future__ import annotations

from typing import TYPE_CHECKING

import aiosqlite
import structlog
from pydantic import ValidationError

from brevity.errors import BrevityError, ErrorCode
from brevity.models.tools import SetApiKeyInput

if TYPE_CHECKING:
    from brevity.state import AppState


async def handle(key: str, state: AppState) -> dict:
    """Persist a user-supplied API key and drop the memoized credential."""
    log = structlog.get_logger().bind(tool="set_api_key")

    try:
        validated = SetApiKeyInput(key=key)
    except ValidationError as exc:
        raise BrevityError(
            code=ErrorCode.INVALID_INPUT,
            message="API key must be a non-empty string.",
            suggestion="Paste the full key from your OpenAI dashboard.",
            recoverable=False,
        ) from exc

    if state.stored_credentials is None or state.credentials is None:
        raise RuntimeError("Credential storage not initialized")

    try:
        await state.stored_credentials.save(validated.key)
    except aiosqlite.Error as exc:
        log.warning("credential_write_error", exc_info=True)
        raise BrevityError(
            code=ErrorCode.SERVER_ERROR,
            message="Failed to save the API key.",
            suggestion="Check that the data directory is writable.",
            recoverable=True,
        ) from exc

    state.credentials.invalidate()
    return {"saved": True}
