"""Summary request coordination: cache lookup and in-flight deduplication.

Runs on a single asyncio event loop. The pending-map check and the insert of
a new leader task happen with no ``await`` between them, so two callers for
the same key can never both become leader.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from brevity.models.tools import Origin, SummaryResult

if TYPE_CHECKING:
    from brevity.protocols import CacheProtocol, SummaryClientProtocol

log = structlog.get_logger()


class RequestCoordinator:
    """Resolves summary requests with at most one API call in flight per key."""

    def __init__(self, cache: CacheProtocol, client: SummaryClientProtocol) -> None:
        self._cache = cache
        self._client = client
        self._pending: dict[str, asyncio.Task[str]] = {}

    @property
    def pending_keys(self) -> frozenset[str]:
        return frozenset(self._pending)

    async def resolve(self, content: str, key: str) -> SummaryResult:
        """Return a summary for ``content``, tagged with where it came from.

        Followers attached to a leader's call receive the leader's value or
        re-raise the leader's exception.
        """
        bound = log.bind(cache_key=key)

        # Pending first: an entry only coexists with a cache row while its leader writes it.
        pending = self._pending.get(key)
        if pending is None:
            cached = await self._cache.get(key)
            if cached is not None:
                bound.info("summary_cache_hit")
                return SummaryResult(summary=cached, origin=Origin.CACHE)
            # A leader may have registered while the cache read was suspended.
            pending = self._pending.get(key)

        if pending is not None:
            bound.info("summary_deduplicated")
            summary = await asyncio.shield(pending)
            return SummaryResult(summary=summary, origin=Origin.DEDUPLICATED)

        task = asyncio.create_task(self._lead(content, key), name=f"brevity-summary-{key}")
        self._pending[key] = task
        task.add_done_callback(_log_unobserved_failure)
        bound.info("summary_cache_miss")

        # Shielded: a caller that gives up does not cancel the call.
        summary = await asyncio.shield(task)
        return SummaryResult(summary=summary, origin=Origin.FRESH)

    async def _lead(self, content: str, key: str) -> str:
        try:
            summary = await self._client.generate(content)
            await self._cache.set(key, summary)
            return summary
        finally:
            # Runs before the task result is published to any waiter.
            self._pending.pop(key, None)

    async def aclose(self) -> None:
        """Wait for in-flight calls to finish. Called once at shutdown."""
        tasks = list(self._pending.values())
        if tasks:
            log.info("coordinator_draining", pending=len(tasks))
            await asyncio.gather(*tasks, return_exceptions=True)


def _log_unobserved_failure(task: asyncio.Task[str]) -> None:
    """Retrieve the task exception so it is logged once, not reported as unretrieved."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        log.info("summary_request_failed", task=task.get_name(), error=str(exc))
