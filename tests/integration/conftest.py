"""Integration test fixtures.

Provides a fully wired AppState with in-memory SQLite, a real httpx client
(mocked per test with respx) and the real cache, credential chain, client
and coordinator.
"""

from __future__ import annotations

import os
from datetime import timedelta
from typing import TYPE_CHECKING

import aiosqlite
import httpx
import pytest

from brevity.cache import SummaryCache, init_db
from brevity.client import SummaryClient
from brevity.config import Settings
from brevity.coordinator import RequestCoordinator
from brevity.credentials import (
    ConfigCredentialProvider,
    CredentialChain,
    StoredCredentialProvider,
)
from brevity.state import AppState

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

API_ENDPOINT = "https://api.test.invalid/v1/chat/completions"


@pytest.fixture()
def subprocess_env(tmp_path: Path) -> dict[str, str]:
    """Baseline env dict for subprocess-based MCP integration tests.

    Forces stdio transport, points the database at an isolated tmp directory
    and blanks the API key so no test can reach the real endpoint.
    """
    env = os.environ.copy()
    env["BREVITY__SERVER__TRANSPORT"] = "stdio"
    env["BREVITY__CACHE__DB_PATH"] = str(tmp_path / "cache.db")
    env["BREVITY__API__API_KEY"] = ""
    env["BREVITY__API__ENDPOINT"] = "http://127.0.0.1:1/v1/chat/completions"
    return env


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        api={
            "endpoint": API_ENDPOINT,
            "api_key": "sk-integration",
            "retry_base_delay_seconds": 0,
        }
    )


@pytest.fixture()
async def app_state(settings: Settings) -> AsyncIterator[AppState]:
    """Full AppState wired the same way open_state does, minus the scheduler."""
    async with aiosqlite.connect(":memory:") as db:
        await init_db(db)
        cache = SummaryCache(db, ttl=timedelta(days=settings.cache.ttl_days))
        stored = StoredCredentialProvider(db)
        credentials = CredentialChain([ConfigCredentialProvider(settings.api.api_key), stored])

        async with httpx.AsyncClient() as http_client:
            client = SummaryClient(http_client, settings.api, credentials)
            coordinator = RequestCoordinator(cache, client)
            yield AppState(
                settings=settings,
                cache=cache,
                credentials=credentials,
                stored_credentials=stored,
                coordinator=coordinator,
                http_client=http_client,
            )
            await coordinator.aclose()
