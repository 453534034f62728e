"""Tool handlers for cache administration: entry count and clear-all."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from brevity.state import AppState


async def handle_stats(state: AppState) -> dict:
    if state.cache is None:
        raise RuntimeError("Cache not initialized")
    return {"entries": await state.cache.count()}


async def handle_clear(state: AppState) -> dict:
    """Remove every cached summary. The stored API key survives."""
    if state.cache is None:
        raise RuntimeError("Cache not initialized")
    cleared = await state.cache.clear()
    structlog.get_logger().info("cache_clear_requested", cleared=cleared)
    return {"cleared": cleared}
