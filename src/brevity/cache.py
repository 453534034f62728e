"""SQLite summary cache with TTL expiry.

Entries live in a generic ``kv_store`` table that also holds unrelated
persisted state (the stored API key). Cache rows are the ones whose key
starts with the namespace prefix; every bulk operation filters on it.

All cache operations catch ``aiosqlite.Error`` internally and degrade
gracefully: read failures return ``None`` (treated as cache miss by callers),
write failures are logged and reported as ``False``, bulk operations report
``0``. Infrastructure errors never cross the SummaryCache class boundary.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import aiosqlite
import structlog

from brevity.config import CACHE_KEY_PREFIX
from brevity.models.cache import SummaryCacheEntry

if TYPE_CHECKING:
    from collections.abc import Callable

log = structlog.get_logger()

_CREATE_KV_TABLE = """
CREATE TABLE IF NOT EXISTS kv_store (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
)
"""

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
_ONE_MS = timedelta(milliseconds=1)

# Timestamp of a row, or NULL when the value is not valid JSON.
_ROW_TIMESTAMP = (
    "CASE WHEN json_valid(value) THEN json_extract(value, '$.timestamp') END"
)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def epoch_ms(moment: datetime) -> int:
    """Milliseconds since the Unix epoch, computed without float rounding."""
    return (moment - _EPOCH) // _ONE_MS


async def init_db(db: aiosqlite.Connection) -> None:
    """Create the key/value table and set WAL mode. Called once at startup."""
    await db.execute("PRAGMA journal_mode = WAL")
    await db.execute(_CREATE_KV_TABLE)
    await db.commit()


class SummaryCache:
    """SQLite-backed summary cache implementing CacheProtocol."""

    def __init__(
        self,
        db: aiosqlite.Connection,
        *,
        ttl: timedelta,
        prefix: str = CACHE_KEY_PREFIX,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._db = db
        self._ttl_ms = ttl // _ONE_MS
        self._prefix = prefix
        self._clock = clock

    def _storage_key(self, key: str) -> str:
        return key if key.startswith(self._prefix) else f"{self._prefix}{key}"

    def _now_ms(self) -> int:
        return epoch_ms(self._clock())

    # ------------------------------------------------------------------
    # Reads and writes
    # ------------------------------------------------------------------

    async def get(self, key: str) -> str | None:
        """Return the cached summary, or ``None`` on miss, expiry or read failure.

        An expired entry is deleted on the way out so it cannot be observed
        again before the next sweep.
        """
        storage_key = self._storage_key(key)
        try:
            cursor = await self._db.execute(
                "SELECT value FROM kv_store WHERE key = ?", (storage_key,)
            )
            row = await cursor.fetchone()
            if row is None:
                return None

            entry = self._decode(storage_key, row[0])
            if entry is None:
                return None

            age_ms = self._now_ms() - epoch_ms(entry.written_at)
            if age_ms > self._ttl_ms:
                # Guarded on the value so a concurrent refresh is never removed.
                await self._db.execute(
                    "DELETE FROM kv_store WHERE key = ? AND value = ?",
                    (storage_key, row[0]),
                )
                await self._db.commit()
                log.debug("cache_entry_expired", key=storage_key, age_ms=age_ms)
                return None

            return entry.summary
        except aiosqlite.Error:
            log.warning("cache_read_error", key=storage_key, exc_info=True)
            return None

    async def set(self, key: str, value: str) -> bool:
        """Write a summary stamped with the current time. Non-fatal on failure."""
        storage_key = self._storage_key(key)
        try:
            payload = json.dumps({"summary": value, "timestamp": self._now_ms()})
            await self._db.execute(
                "INSERT OR REPLACE INTO kv_store (key, value) VALUES (?, ?)",
                (storage_key, payload),
            )
            await self._db.commit()
            return True
        except aiosqlite.Error:
            log.warning("cache_write_error", key=storage_key, exc_info=True)
            return False

    def _decode(self, storage_key: str, raw: str) -> SummaryCacheEntry | None:
        try:
            data = json.loads(raw)
            summary = data["summary"]
            timestamp = int(data["timestamp"])
        except (ValueError, TypeError, KeyError):
            log.warning("cache_entry_malformed", key=storage_key)
            return None
        if not isinstance(summary, str) or not summary:
            return None
        return SummaryCacheEntry(
            key=storage_key,
            summary=summary,
            written_at=_EPOCH + timestamp * _ONE_MS,
        )

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def sweep(self) -> int:
        """Delete every namespaced entry older than the TTL.

        Returns the number of entries removed (``0`` on failure).
        """
        try:
            cutoff = self._now_ms() - self._ttl_ms
            cursor = await self._db.execute(
                f"DELETE FROM kv_store WHERE substr(key, 1, ?) = ? AND {_ROW_TIMESTAMP} < ?",
                (len(self._prefix), self._prefix, cutoff),
            )
            removed = cursor.rowcount
            await self._db.commit()
            log.info("cache_sweep_complete", removed=removed)
            return removed
        except aiosqlite.Error:
            log.warning("cache_sweep_error", exc_info=True)
            return 0

    async def clear(self) -> int:
        """Delete all namespaced entries. Other keys in the table are untouched."""
        try:
            cursor = await self._db.execute(
                "DELETE FROM kv_store WHERE substr(key, 1, ?) = ?",
                (len(self._prefix), self._prefix),
            )
            removed = cursor.rowcount
            await self._db.commit()
            log.info("cache_cleared", removed=removed)
            return removed
        except aiosqlite.Error:
            log.warning("cache_clear_error", exc_info=True)
            return 0

    async def count(self) -> int:
        """Number of namespaced entries currently stored, expired ones included."""
        try:
            cursor = await self._db.execute(
                "SELECT COUNT(*) FROM kv_store WHERE substr(key, 1, ?) = ?",
                (len(self._prefix), self._prefix),
            )
            row = await cursor.fetchone()
            return int(row[0]) if row is not None else 0
        except aiosqlite.Error:
            log.warning("cache_count_error", exc_info=True)
            return 0
