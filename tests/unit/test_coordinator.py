"""Unit tests for brevity.coordinator.

The API client is replaced with a gated fake so tests decide exactly when
the leader's outbound call completes while followers pile up behind it.
"""

from __future__ import annotations

import asyncio

import pytest

from brevity.coordinator import RequestCoordinator
from brevity.errors import BrevityError, ErrorCode
from brevity.models.tools import Origin


class GatedClient:
    """Fake SummaryClient whose calls block until ``release`` is called."""

    def __init__(self, result: str | Exception = "A summary.") -> None:
        self.result = result
        self.calls: list[str] = []
        self.started = asyncio.Event()
        self._gate = asyncio.Event()

    def release(self) -> None:
        self._gate.set()

    async def generate(self, input_text: str) -> str:
        self.calls.append(input_text)
        self.started.set()
        await self._gate.wait()
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


class MemoryCache:
    """Dict-backed CacheProtocol with an optional read delay."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.read_delay = 0.0

    async def get(self, key: str) -> str | None:
        if self.read_delay:
            await asyncio.sleep(self.read_delay)
        return self.data.get(key)

    async def set(self, key: str, value: str) -> bool:
        self.data[key] = value
        return True

    async def sweep(self) -> int:
        return 0

    async def clear(self) -> int:
        removed = len(self.data)
        self.data.clear()
        return removed

    async def count(self) -> int:
        return len(self.data)


@pytest.fixture()
def memory_cache() -> MemoryCache:
    return MemoryCache()


async def _wait_for_waiters(n: int = 5) -> None:
    for _ in range(n):
        await asyncio.sleep(0)


class TestCacheHit:
    async def test_hit_skips_client(self, memory_cache: MemoryCache) -> None:
        memory_cache.data["brevity_k"] = "Cached."
        client = GatedClient()
        coordinator = RequestCoordinator(memory_cache, client)

        result = await coordinator.resolve("text", "brevity_k")

        assert result.summary == "Cached."
        assert result.origin is Origin.CACHE
        assert client.calls == []


class TestFreshCall:
    async def test_miss_calls_client_and_writes_cache(self, memory_cache: MemoryCache) -> None:
        client = GatedClient("Fresh.")
        client.release()
        coordinator = RequestCoordinator(memory_cache, client)

        result = await coordinator.resolve("some text", "brevity_k")

        assert result.summary == "Fresh."
        assert result.origin is Origin.FRESH
        assert client.calls == ["some text"]
        assert memory_cache.data == {"brevity_k": "Fresh."}
        assert coordinator.pending_keys == frozenset()

    async def test_second_request_is_served_from_cache(self, memory_cache: MemoryCache) -> None:
        client = GatedClient("Fresh.")
        client.release()
        coordinator = RequestCoordinator(memory_cache, client)

        await coordinator.resolve("text", "brevity_k")
        result = await coordinator.resolve("text", "brevity_k")

        assert result.origin is Origin.CACHE
        assert len(client.calls) == 1


class TestDeduplication:
    @pytest.mark.parametrize("n", [2, 5, 20])
    async def test_concurrent_requests_share_one_call(
        self, memory_cache: MemoryCache, n: int
    ) -> None:
        client = GatedClient("Shared.")
        coordinator = RequestCoordinator(memory_cache, client)

        tasks = [asyncio.create_task(coordinator.resolve("text", "brevity_k")) for _ in range(n)]
        await client.started.wait()
        await _wait_for_waiters()
        assert coordinator.pending_keys == frozenset({"brevity_k"})
        client.release()
        results = await asyncio.gather(*tasks)

        assert len(client.calls) == 1
        assert {r.summary for r in results} == {"Shared."}
        origins = [r.origin for r in results]
        assert origins.count(Origin.FRESH) == 1
        assert origins.count(Origin.DEDUPLICATED) == n - 1

    async def test_slow_cache_read_does_not_create_second_leader(
        self, memory_cache: MemoryCache
    ) -> None:
        # Both callers suspend in the cache read before either registers.
        memory_cache.read_delay = 0.01
        client = GatedClient("Shared.")
        coordinator = RequestCoordinator(memory_cache, client)

        first = asyncio.create_task(coordinator.resolve("text", "brevity_k"))
        second = asyncio.create_task(coordinator.resolve("text", "brevity_k"))
        await client.started.wait()
        await asyncio.sleep(0.02)
        client.release()
        results = await asyncio.gather(first, second)

        assert len(client.calls) == 1
        assert sorted(r.origin for r in results) == [Origin.DEDUPLICATED, Origin.FRESH]

    async def test_different_keys_run_in_parallel(self, memory_cache: MemoryCache) -> None:
        client = GatedClient("Summary.")
        coordinator = RequestCoordinator(memory_cache, client)

        a = asyncio.create_task(coordinator.resolve("text a", "brevity_a"))
        b = asyncio.create_task(coordinator.resolve("text b", "brevity_b"))
        await _wait_for_waiters()
        assert coordinator.pending_keys == frozenset({"brevity_a", "brevity_b"})
        client.release()
        await asyncio.gather(a, b)

        assert sorted(client.calls) == ["text a", "text b"]

    async def test_failure_reaches_every_waiter(self, memory_cache: MemoryCache) -> None:
        error = BrevityError(code=ErrorCode.RATE_LIMITED, message="slow down")
        client = GatedClient(error)
        coordinator = RequestCoordinator(memory_cache, client)

        tasks = [asyncio.create_task(coordinator.resolve("text", "brevity_k")) for _ in range(3)]
        await client.started.wait()
        await _wait_for_waiters()
        client.release()
        results = await asyncio.gather(*tasks, return_exceptions=True)

        assert len(client.calls) == 1
        assert all(isinstance(r, BrevityError) for r in results)
        assert {r.code for r in results} == {ErrorCode.RATE_LIMITED}
        assert memory_cache.data == {}


class TestLeaderCleanup:
    async def test_failed_call_is_not_deduplicated_later(
        self, memory_cache: MemoryCache
    ) -> None:
        client = GatedClient(BrevityError(code=ErrorCode.NETWORK_ERROR, message="offline"))
        client.release()
        coordinator = RequestCoordinator(memory_cache, client)

        with pytest.raises(BrevityError):
            await coordinator.resolve("text", "brevity_k")
        assert coordinator.pending_keys == frozenset()

        client.result = "Second try."
        result = await coordinator.resolve("text", "brevity_k")

        assert result.origin is Origin.FRESH
        assert result.summary == "Second try."
        assert len(client.calls) == 2

    async def test_cache_write_failure_leads_to_fresh_miss(
        self, memory_cache: MemoryCache
    ) -> None:
        async def failing_set(key: str, value: str) -> bool:
            return False

        memory_cache.set = failing_set  # type: ignore[method-assign]
        client = GatedClient("Uncached.")
        client.release()
        coordinator = RequestCoordinator(memory_cache, client)

        first = await coordinator.resolve("text", "brevity_k")
        second = await coordinator.resolve("text", "brevity_k")

        assert first.origin is Origin.FRESH
        assert second.origin is Origin.FRESH
        assert len(client.calls) == 2


class TestCancellation:
    async def test_cancelled_caller_does_not_abort_call(self, memory_cache: MemoryCache) -> None:
        client = GatedClient("Finished anyway.")
        coordinator = RequestCoordinator(memory_cache, client)

        caller = asyncio.create_task(coordinator.resolve("text", "brevity_k"))
        await client.started.wait()
        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller

        client.release()
        await coordinator.aclose()

        assert memory_cache.data == {"brevity_k": "Finished anyway."}
        assert coordinator.pending_keys == frozenset()

    async def test_aclose_with_nothing_pending(self, memory_cache: MemoryCache) -> None:
        coordinator = RequestCoordinator(memory_cache, GatedClient())
        await coordinator.aclose()
