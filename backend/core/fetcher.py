"""
fetcher.py — Bounded-concurrency batch fetching over the data provider.

Requests go out in batches of at most `max_parallel` in-flight calls with a
short pause between batches. A semaphore also bounds in-flight calls across
concurrent callers that share one fetcher. Results always come back in request
order; a failed request is logged and dropped, never fatal to the batch.
"""

import asyncio
import logging
import math
from functools import partial
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)

PageFetcher = Callable[[int, int], Awaitable[Dict[str, Any]]]


class BatchFetcher:
    """
    Args:
        max_parallel: Maximum provider calls in flight at once.
        batch_delay: Seconds to pause between consecutive batches.
        sleep: Awaitable sleep used for the pause (swap out in tests).
    """

    def __init__(
        self,
        max_parallel: int = 5,
        batch_delay: float = 0.1,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if max_parallel < 1:
            raise ValueError(f"max_parallel must be at least 1, got {max_parallel}")
        self.max_parallel = max_parallel
        self.batch_delay = batch_delay
        self._sleep = sleep
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def _get_semaphore(self) -> asyncio.Semaphore:
        # A semaphore belongs to one event loop; rebuild it if the loop changed.
        loop = asyncio.get_running_loop()
        if self._semaphore is None or self._loop is not loop:
            self._semaphore = asyncio.Semaphore(self.max_parallel)
            self._loop = loop
        return self._semaphore

    async def call(self, factory: Callable[[], Awaitable[Any]]) -> Any:
        """Run one provider call under the shared in-flight bound."""
        async with self._get_semaphore():
            return await factory()

    async def run_bounded(
        self,
        factories: Sequence[Callable[[], Awaitable[Any]]],
        delay: Optional[float] = None,
        label: str = "task",
        guarded: bool = True,
    ) -> List[Optional[Any]]:
        """
        Run coroutine factories in bounded batches.

        Returns one result per factory in input order; failed ones are None.
        Pass guarded=False for factories that make their own provider calls
        through call().
        """
        pause = self.batch_delay if delay is None else delay
        results: List[Optional[Any]] = [None] * len(factories)

        for start in range(0, len(factories), self.max_parallel):
            if start and pause > 0:
                await self._sleep(pause)
            batch = factories[start:start + self.max_parallel]
            outcomes = await asyncio.gather(
                *(self.call(factory) if guarded else factory() for factory in batch),
                return_exceptions=True,
            )
            for offset, outcome in enumerate(outcomes):
                if isinstance(outcome, Exception):
                    logger.warning(
                        "%s #%d failed: %s", label, start + offset, outcome, exc_info=outcome
                    )
                elif isinstance(outcome, BaseException):
                    raise outcome
                else:
                    results[start + offset] = outcome

        return results

    async def fetch_paged(self, fetch_page: PageFetcher, page_size: int = 50, label: str = "page") -> List[Any]:
        """
        Fetch every page of a paged listing and concatenate the rows.

        Page 1 is fetched alone to learn the total; the remaining pages go out
        in bounded batches. If page 1 fails nothing can be known, so the
        result is empty.
        """
        if page_size < 1:
            raise ValueError(f"page_size must be at least 1, got {page_size}")

        try:
            first = await self.call(partial(fetch_page, 1, page_size))
        except Exception:
            logger.exception("%s 1 failed; returning no rows", label)
            return []

        rows = list(first.get("data") or [])
        total = int(first.get("total") or 0)
        page_count = math.ceil(total / page_size)
        if page_count <= 1:
            return rows

        pages = list(range(2, page_count + 1))
        results = await self.run_bounded(
            [partial(fetch_page, page, page_size) for page in pages],
            label=label,
        )
        for page, result in zip(pages, results):
            if result is None:
                logger.warning("Skipping %s %d of %d", label, page, page_count)
                continue
            rows.extend(result.get("data") or [])

        logger.debug("Fetched %d rows across %d pages (%s)", len(rows), page_count, label)
        return rows
