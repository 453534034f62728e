"""Background scheduler coroutine for cache expiry sweeps."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from brevity.protocols import CacheProtocol
    from brevity.state import AppState

log = structlog.get_logger()


async def run_cache_sweep(cache: CacheProtocol) -> int:
    """Sweep expired entries once. Never raises; returns the number removed."""
    try:
        removed = await cache.sweep()
    except Exception:
        log.warning("cache_sweep_scheduler_error", exc_info=True)
        return 0
    log.info("cache_sweep_tick", removed=removed)
    return removed


async def run_cache_sweep_scheduler(state: AppState) -> None:
    """Sweep at startup, then once per configured interval until cancelled."""
    interval_seconds = state.settings.cache.sweep_interval_hours * 3600

    while True:
        if state.cache is not None:
            await run_cache_sweep(state.cache)
        await asyncio.sleep(interval_seconds)
