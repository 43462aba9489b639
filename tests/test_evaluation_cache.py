"""
Memory cache + single-flight coordinator
"""

import asyncio

import pytest

from conftest import build_result
from services.evaluation_cache import PROCESSING, EvaluationCache, MemoryCache


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


# ── MemoryCache ───────────────────────────────────────────────


def test_lru_eviction_respects_recent_reads():
    cache = MemoryCache(max_size=2, ttl_seconds=60)
    a, b, c = build_result(5), build_result(6), build_result(7)
    cache.set("a", a)
    cache.set("b", b)
    assert cache.get("a") is a
    cache.set("c", c)

    assert cache.get("b") is None
    assert cache.get("a") is a
    assert cache.get("c") is c
    assert len(cache) == 2


def test_ttl_expiry_and_refresh_on_read():
    clock = FakeClock()
    cache = MemoryCache(max_size=10, ttl_seconds=100, clock=clock)
    cache.set("k", build_result())

    clock.now = 90
    assert cache.get("k") is not None  # refreshes age
    clock.now = 180
    assert cache.get("k") is not None
    clock.now = 281
    assert cache.get("k") is None
    assert len(cache) == 0


def test_membership_does_not_refresh_ttl():
    clock = FakeClock()
    cache = MemoryCache(max_size=10, ttl_seconds=100, clock=clock)
    cache.set("k", build_result())
    clock.now = 90
    assert "k" in cache
    clock.now = 101
    assert "k" not in cache


def test_invalid_bound():
    with pytest.raises(ValueError):
        MemoryCache(max_size=0)


# ── Single-flight ─────────────────────────────────────────────


def test_concurrent_resolve_runs_compute_once():
    result = build_result(9)

    async def scenario():
        cache = EvaluationCache()
        release = asyncio.Event()
        calls = []

        async def compute():
            calls.append(1)
            await release.wait()
            return result

        first = cache.resolve("42_abc", compute)
        second = cache.resolve("42_abc", compute)
        in_flight_during = cache.is_in_flight("42_abc")

        release.set()
        assert await cache.wait_idle(timeout=1)

        third = cache.resolve("42_abc", compute)
        return first, second, in_flight_during, third, len(calls), cache.is_in_flight("42_abc")

    first, second, in_flight_during, third, calls, in_flight_after = asyncio.run(scenario())

    assert first is PROCESSING
    assert second is PROCESSING
    assert in_flight_during is True
    assert calls == 1
    assert third is result
    assert in_flight_after is False


def test_failed_compute_clears_in_flight_and_caches_nothing():
    async def scenario():
        cache = EvaluationCache()

        async def compute():
            raise RuntimeError("engine exploded")

        assert cache.resolve("k", compute) is PROCESSING
        await cache.wait_idle(timeout=1)
        return cache.is_in_flight("k"), cache.get("k"), cache.in_flight_count

    in_flight, cached, count = asyncio.run(scenario())
    assert in_flight is False
    assert cached is None
    assert count == 0


def test_cached_hit_skips_compute():
    async def scenario():
        cache = EvaluationCache()
        stored = build_result(4)
        cache.set("k", stored)
        calls = []

        async def compute():
            calls.append(1)
            return build_result(10)

        return cache.resolve("k", compute), calls, cache.in_flight_count, stored

    got, calls, count, stored = asyncio.run(scenario())
    assert got is stored
    assert calls == []
    assert count == 0


def test_distinct_keys_run_independently():
    async def scenario():
        cache = EvaluationCache()

        async def compute_a():
            return build_result(3)

        async def compute_b():
            return build_result(6)

        cache.resolve("a", compute_a)
        cache.resolve("b", compute_b)
        assert cache.in_flight_count == 2
        await cache.wait_idle(timeout=1)
        return cache.get("a").overall_score, cache.get("b").overall_score, cache.size

    a, b, size = asyncio.run(scenario())
    assert (a, b, size) == (3, 6, 2)


def test_processing_sentinel_repr():
    assert repr(PROCESSING) == "PROCESSING"
