"""Shared test fixtures for the brevity test suite."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import aiosqlite
import pytest

from brevity.cache import SummaryCache, init_db
from brevity.config import ApiSettings

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

TTL = timedelta(days=30)
API_ENDPOINT = "https://api.test.invalid/v1/chat/completions"


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 1, 1, 12, 0, tzinfo=UTC))


@pytest.fixture()
async def db() -> AsyncIterator[aiosqlite.Connection]:
    """In-memory database with the key/value table created."""
    async with aiosqlite.connect(":memory:") as conn:
        await init_db(conn)
        yield conn


@pytest.fixture()
def cache(db: aiosqlite.Connection, clock: FakeClock) -> SummaryCache:
    return SummaryCache(db, ttl=TTL, clock=clock)


@pytest.fixture()
def api_settings() -> ApiSettings:
    return ApiSettings(
        endpoint=API_ENDPOINT,
        max_retries=3,
        retry_base_delay_seconds=2.0,
        api_key="sk-test",
    )
