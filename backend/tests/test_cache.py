"""
Tests for core/cache.py — TTL validity, size sweep, invalidation and stats.
"""

import os
import sys
import asyncio
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.cache import TTLCache, key_kind, make_key


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return TTLCache(ttl=300, max_entries=10, clock=clock)


class TestTTL:
    """Entries are valid while now - inserted_at < ttl."""

    def test_fresh_entry_hits(self, cache):
        cache.set("grade_stats:1:2024", {"ok": 1})
        assert cache.get("grade_stats:1:2024") == {"ok": 1}

    def test_valid_just_before_ttl(self, cache, clock):
        cache.set("k", "v")
        clock.advance(299.999)
        assert cache.get("k") == "v"

    def test_expired_exactly_at_ttl(self, cache, clock):
        cache.set("k", "v")
        clock.advance(300)
        assert cache.get("k") is None
        assert "k" not in cache

    def test_overwrite_refreshes_timestamp(self, cache, clock):
        cache.set("k", 1)
        clock.advance(200)
        cache.set("k", 2)
        clock.advance(200)
        assert cache.get("k") == 2

    def test_per_call_ttl(self, cache, clock):
        cache.set("k", "v")
        clock.advance(60)
        assert cache.get("k", ttl=30) is None
        assert cache.get("k") == "v"


class TestGetOrFetch:
    """Tests for get_or_fetch."""

    def test_producer_called_once_within_ttl(self, cache, clock):
        calls = []

        async def producer():
            calls.append(1)
            return len(calls)

        async def run():
            first = await cache.get_or_fetch("k", producer)
            clock.advance(100)
            second = await cache.get_or_fetch("k", producer)
            return first, second

        assert asyncio.run(run()) == (1, 1)
        assert len(calls) == 1

    def test_producer_called_again_after_expiry(self, cache, clock):
        calls = []

        async def producer():
            calls.append(1)
            return len(calls)

        async def run():
            await cache.get_or_fetch("k", producer)
            clock.advance(300)
            return await cache.get_or_fetch("k", producer)

        assert asyncio.run(run()) == 2

    def test_uncacheable_result_not_stored(self, cache):
        async def producer():
            return {"error": "no data"}

        result = asyncio.run(
            cache.get_or_fetch("k", producer, cacheable=lambda v: "error" not in v)
        )
        assert result == {"error": "no data"}
        assert len(cache) == 0

    def test_producer_exception_propagates_and_caches_nothing(self, cache):
        async def producer():
            raise RuntimeError("provider down")

        with pytest.raises(RuntimeError):
            asyncio.run(cache.get_or_fetch("k", producer))
        assert len(cache) == 0


class TestSweep:
    """Size-bounded eviction of the oldest entries."""

    def test_no_sweep_at_ceiling(self, cache, clock):
        for i in range(10):
            cache.set(f"k{i}", i)
            clock.advance(1)
        assert len(cache) == 10
        assert cache.evictions == 0

    def test_sweep_removes_oldest_fifth(self, clock):
        cache = TTLCache(ttl=300, max_entries=20, clock=clock)
        for i in range(21):
            cache.set(f"k{i}", i)
            clock.advance(1)
        # 21 entries -> int(21 * 0.2) = 4 oldest removed
        assert len(cache) == 17
        for i in range(4):
            assert f"k{i}" not in cache
        assert "k4" in cache
        assert cache.evictions == 4

    def test_sweep_removes_at_least_one(self, clock):
        cache = TTLCache(ttl=300, max_entries=2, clock=clock)
        for i in range(3):
            cache.set(f"k{i}", i)
            clock.advance(1)
        assert len(cache) == 2
        assert "k0" not in cache

    def test_sweep_spans_kinds(self, clock):
        cache = TTLCache(ttl=300, max_entries=4, clock=clock)
        cache.set("student_history:S1", 1)
        clock.advance(1)
        for i in range(4):
            cache.set(f"grade_stats:1:{2020 + i}", i)
            clock.advance(1)
        assert "student_history:S1" not in cache
        assert len(cache) == 4


class TestInvalidate:
    """Tests for invalidate."""

    def test_invalidate_all(self, cache):
        cache.set("grade_stats:1:2024", 1)
        cache.set("student_history:S1", 2)
        assert cache.invalidate() == 2
        assert len(cache) == 0

    def test_invalidate_scope_prefix(self, cache):
        cache.set("grade_stats:1:2023", 1)
        cache.set("grade_stats:1:2024", 2)
        cache.set("grade_stats:2:2024", 3)
        cache.set("grade_stats:10:2024", 4)
        assert cache.invalidate("grade_stats:1") == 2
        assert "grade_stats:2:2024" in cache
        assert "grade_stats:10:2024" in cache

    def test_invalidate_exact_key(self, cache):
        cache.set("grade_history:1", 1)
        cache.set("grade_history:2", 2)
        assert cache.invalidate("grade_history:1") == 1
        assert "grade_history:2" in cache


class TestStats:
    """Tests for stats and key helpers."""

    def test_counts_per_kind_and_age(self, cache, clock):
        cache.set("grade_stats:1:2024", 1)
        cache.set("grade_stats:2:2024", 2)
        clock.advance(42)
        cache.set("student_history:S1", 3)
        cache.get("grade_stats:1:2024")
        cache.get("missing")
        stats = cache.stats()
        assert stats["total_entries"] == 3
        assert stats["entries_by_kind"] == {"grade_stats": 2, "student_history": 1}
        assert stats["oldest_entry_age_seconds"] == 42
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate"] == 0.5

    def test_empty_stats(self, cache):
        stats = cache.stats()
        assert stats["total_entries"] == 0
        assert stats["oldest_entry_age_seconds"] == 0
        assert stats["hit_rate"] == 0.0

    def test_make_key(self):
        assert make_key("grade_stats", 1, 2024) == "grade_stats:1:2024"
        assert key_kind("grade_stats:1:2024") == "grade_stats"
