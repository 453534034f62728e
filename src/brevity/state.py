"""Application state container.

AppState is created once at startup by ``open_state`` (entered from the
FastMCP lifespan or the HTTP app lifespan) and handed to every request
handler. ``open_state`` also owns teardown: the sweep task is cancelled,
in-flight summary calls are drained, then the HTTP client and database
are closed.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import TYPE_CHECKING

import aiosqlite
import structlog

from brevity import __version__
from brevity.cache import SummaryCache, init_db
from brevity.client import SummaryClient, build_http_client
from brevity.coordinator import RequestCoordinator
from brevity.credentials import (
    ConfigCredentialProvider,
    CredentialChain,
    StoredCredentialProvider,
)
from brevity.schedulers import run_cache_sweep_scheduler

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    import httpx

    from brevity.config import Settings
    from brevity.protocols import CacheProtocol

log = structlog.get_logger()


@dataclass
class AppState:
    """Holds all shared runtime state. Passed to every request handler."""

    settings: Settings
    cache: CacheProtocol | None = None
    credentials: CredentialChain | None = None
    stored_credentials: StoredCredentialProvider | None = None
    coordinator: RequestCoordinator | None = None
    http_client: httpx.AsyncClient | None = None


@asynccontextmanager
async def open_state(settings: Settings) -> AsyncGenerator[AppState, None]:
    """Create and tear down all shared resources for the process lifetime."""
    log.info("service_starting", version=__version__, transport=settings.server.transport)

    db_path = Path(settings.cache.db_path).expanduser()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    db = await aiosqlite.connect(str(db_path))
    await init_db(db)

    cache = SummaryCache(db, ttl=timedelta(days=settings.cache.ttl_days))
    stored_credentials = StoredCredentialProvider(db)
    credentials = CredentialChain(
        [ConfigCredentialProvider(settings.api.api_key), stored_credentials]
    )
    http_client = build_http_client(settings.api)
    client = SummaryClient(http_client, settings.api, credentials)
    coordinator = RequestCoordinator(cache, client)

    state = AppState(
        settings=settings,
        cache=cache,
        credentials=credentials,
        stored_credentials=stored_credentials,
        coordinator=coordinator,
        http_client=http_client,
    )

    sweep_task = asyncio.create_task(run_cache_sweep_scheduler(state))

    log.info(
        "service_started",
        version=__version__,
        db_path=str(db_path),
        key_source=await credentials.active_source(),
    )

    try:
        yield state
    finally:
        sweep_task.cancel()
        with suppress(asyncio.CancelledError):
            await sweep_task
        await coordinator.aclose()
        await http_client.aclose()
        await db.close()
        log.info("service_stopping")
