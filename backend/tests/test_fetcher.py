"""
Tests for core/fetcher.py — bounded batches, ordering, failure isolation, pauses.
"""

import os
import sys
import asyncio
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.fetcher import BatchFetcher


class RecordingSleep:
    """Stands in for asyncio.sleep; records requested pauses."""

    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)
        await asyncio.sleep(0)


class PagedSource:
    """Fake paged listing of `total` rows that tracks in-flight calls."""

    def __init__(self, total, fail_pages=(), delay=0.001):
        self.total = total
        self.fail_pages = set(fail_pages)
        self.delay = delay
        self.in_flight = 0
        self.max_in_flight = 0
        self.requested = []

    async def fetch_page(self, page, page_size):
        self.requested.append(page)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            # Later pages answer sooner so completion order differs from page order.
            await asyncio.sleep(self.delay / page)
            if page in self.fail_pages:
                raise ConnectionError(f"page {page} unavailable")
            start = (page - 1) * page_size
            rows = list(range(start, min(start + page_size, self.total)))
            return {"data": rows, "total": self.total}
        finally:
            self.in_flight -= 1


@pytest.fixture
def sleep():
    return RecordingSleep()


class TestFetchPaged:
    """Tests for fetch_paged."""

    def test_single_page(self, sleep):
        source = PagedSource(total=30)
        fetcher = BatchFetcher(max_parallel=5, batch_delay=0.1, sleep=sleep)
        rows = asyncio.run(fetcher.fetch_paged(source.fetch_page, page_size=50))
        assert rows == list(range(30))
        assert source.requested == [1]
        assert sleep.calls == []

    def test_rows_in_page_order(self, sleep):
        source = PagedSource(total=1000)
        fetcher = BatchFetcher(max_parallel=5, batch_delay=0.1, sleep=sleep)
        rows = asyncio.run(fetcher.fetch_paged(source.fetch_page, page_size=50))
        assert rows == list(range(1000))

    def test_in_flight_bounded(self, sleep):
        source = PagedSource(total=1000)
        fetcher = BatchFetcher(max_parallel=5, batch_delay=0.1, sleep=sleep)
        asyncio.run(fetcher.fetch_paged(source.fetch_page, page_size=50))
        assert source.max_in_flight <= 5
        assert sorted(source.requested) == list(range(1, 21))

    def test_pause_between_batches(self, sleep):
        # 20 pages: page 1 alone, then 19 pages in batches of 5 -> 4 batches, 3 pauses
        source = PagedSource(total=1000)
        fetcher = BatchFetcher(max_parallel=5, batch_delay=0.1, sleep=sleep)
        asyncio.run(fetcher.fetch_paged(source.fetch_page, page_size=50))
        assert sleep.calls == [0.1, 0.1, 0.1]

    def test_failed_page_skipped(self, sleep):
        source = PagedSource(total=200, fail_pages={3})
        fetcher = BatchFetcher(max_parallel=2, batch_delay=0.1, sleep=sleep)
        rows = asyncio.run(fetcher.fetch_paged(source.fetch_page, page_size=50))
        assert rows == list(range(0, 100)) + list(range(150, 200))

    def test_first_page_failure_returns_empty(self, sleep):
        source = PagedSource(total=200, fail_pages={1})
        fetcher = BatchFetcher(max_parallel=2, batch_delay=0.1, sleep=sleep)
        rows = asyncio.run(fetcher.fetch_paged(source.fetch_page, page_size=50))
        assert rows == []
        assert source.requested == [1]

    def test_empty_listing(self, sleep):
        source = PagedSource(total=0)
        fetcher = BatchFetcher(sleep=sleep)
        assert asyncio.run(fetcher.fetch_paged(source.fetch_page, page_size=50)) == []

    def test_invalid_page_size(self, sleep):
        fetcher = BatchFetcher(sleep=sleep)
        with pytest.raises(ValueError):
            asyncio.run(fetcher.fetch_paged(PagedSource(total=10).fetch_page, page_size=0))


class TestRunBounded:
    """Tests for run_bounded."""

    def test_results_keep_input_order(self, sleep):
        fetcher = BatchFetcher(max_parallel=3, batch_delay=0.1, sleep=sleep)

        def make(i):
            async def task():
                await asyncio.sleep(0.001 * (10 - i))
                return i * 10
            return task

        results = asyncio.run(fetcher.run_bounded([make(i) for i in range(7)]))
        assert results == [0, 10, 20, 30, 40, 50, 60]
        assert sleep.calls == [0.1, 0.1]

    def test_failures_become_none(self, sleep):
        fetcher = BatchFetcher(max_parallel=2, sleep=sleep)

        def make(i):
            async def task():
                if i == 1:
                    raise KeyError(i)
                return i
            return task

        results = asyncio.run(fetcher.run_bounded([make(i) for i in range(3)]))
        assert results == [0, None, 2]

    def test_custom_delay(self, sleep):
        fetcher = BatchFetcher(max_parallel=1, batch_delay=0.1, sleep=sleep)

        async def task():
            return 1

        asyncio.run(fetcher.run_bounded([task, task, task], delay=0.2))
        assert sleep.calls == [0.2, 0.2]

    def test_empty(self, sleep):
        fetcher = BatchFetcher(sleep=sleep)
        assert asyncio.run(fetcher.run_bounded([])) == []

    def test_semaphore_bounds_concurrent_callers(self, sleep):
        fetcher = BatchFetcher(max_parallel=2, batch_delay=0, sleep=sleep)
        state = {"now": 0, "max": 0}

        async def task():
            state["now"] += 1
            state["max"] = max(state["max"], state["now"])
            await asyncio.sleep(0.001)
            state["now"] -= 1
            return True

        async def run():
            return await asyncio.gather(
                fetcher.run_bounded([task, task]),
                fetcher.run_bounded([task, task]),
            )

        asyncio.run(run())
        assert state["max"] <= 2

    def test_unguarded_tasks_can_nest_guarded_calls(self, sleep):
        fetcher = BatchFetcher(max_parallel=1, batch_delay=0, sleep=sleep)

        async def leaf():
            return "leaf"

        async def parent():
            return await fetcher.call(leaf)

        results = asyncio.run(fetcher.run_bounded([parent, parent], guarded=False))
        assert results == ["leaf", "leaf"]

    def test_invalid_max_parallel(self):
        with pytest.raises(ValueError):
            BatchFetcher(max_parallel=0)
