"""Tool handler for get_key_source. Reports which credential tier is active."""

from __future__ import annotations

from typing import TYPE_CHECKING

from brevity.models.tools import KeySourceOutput

if TYPE_CHECKING:
    from brevity.state import AppState


async def handle(state: AppState) -> dict:
    """Handle a get_key_source request. The key itself is never returned."""
    if state.credentials is None:
        raise RuntimeError("Credential chain not initialized")
    source = await state.credentials.active_source()
    return KeySourceOutput(source=source).model_dump(mode="json")
