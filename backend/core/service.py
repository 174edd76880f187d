"""
service.py — The operations exposed to callers, wired over provider, cache and fetcher.

Every result is cached under a key of the form "<kind>:<subject>[:<year>]":

    grade_stats:<grade>:<year>          grade statistics
    grade_history:<grade>               grade history analysis
    grade_details:<grade>               detailed grade history statistics
    grade_comparison:<grade>:<a>:<b>    year-range comparison
    student_composite:<id>:<year>       (raw, composite record) pair
    student_history:<id>                student history analysis

NoData results ({"error": ...}) are returned but never cached.
"""

import logging
from functools import partial
from typing import Any, Dict, Iterable, List, Optional, Tuple

from core.cache import TTLCache, make_key
from core.composite import CompositeRecord, compute_composite, item_detail
from core.config import FitnessConfig
from core.fetcher import BatchFetcher
from core.grading import InvalidArgument, validate_grade
from core.provider import DataProvider
from core.standards import ITEMS_BY_KEY
from core.stats import ScoredStudent, compute_grade_stats
from core.trends import (
    compute_grade_history,
    compute_history_details,
    compute_student_history,
    compute_year_range_comparison,
)

logger = logging.getLogger(__name__)


def _is_result(value: Any) -> bool:
    """Cacheable: anything except a NoData error dict or a missing value."""
    if value is None:
        return False
    return not (isinstance(value, dict) and "error" in value)


class FitnessService:
    def __init__(
        self,
        provider: DataProvider,
        cache: Optional[TTLCache] = None,
        fetcher: Optional[BatchFetcher] = None,
        config: Optional[FitnessConfig] = None,
    ) -> None:
        self.config = config or FitnessConfig()
        self.provider = provider
        self.cache = cache or TTLCache(
            ttl=self.config.cache_ttl, max_entries=self.config.cache_max_entries
        )
        self.fetcher = fetcher or BatchFetcher(
            max_parallel=self.config.max_parallel, batch_delay=self.config.batch_delay
        )

    # ── Grade level ─────────────────────────────────────────────────

    async def get_grade_statistics(self, grade_id: int, year: int) -> Dict[str, Any]:
        """Grade aggregate for one year, or {"error"} when it has no students."""
        grade_id = validate_grade(grade_id)
        year = int(year)
        return await self.cache.get_or_fetch(
            make_key("grade_stats", grade_id, year),
            partial(self._build_grade_statistics, grade_id, year),
            cacheable=_is_result,
        )

    async def _build_grade_statistics(self, grade_id: int, year: int) -> Dict[str, Any]:
        rows = await self.fetcher.fetch_paged(
            partial(self.provider.fetch_page, grade_id, year),
            page_size=self.config.page_size,
            label=f"grade {grade_id}/{year} page",
        )
        entries: List[ScoredStudent] = []
        for row in rows:
            try:
                record = compute_composite(row, row.get("sex"), grade_id, year)
            except InvalidArgument as exc:
                logger.warning("Skipping student %s in grade %s/%s: %s", row.get("student_id"), grade_id, year, exc)
                continue
            entries.append(
                ScoredStudent(
                    student_id=str(row.get("student_id")),
                    name=row.get("name") or "",
                    sex=row["sex"],
                    record=record,
                    raw=row,
                )
            )
        logger.info("Scored %d of %d students for grade %s/%s", len(entries), len(rows), grade_id, year)
        return compute_grade_stats(entries)

    async def _grade_aggregates(self, grade_id: int) -> Optional[Dict[int, Dict[str, Any]]]:
        """Every available year's aggregate for a grade; None if years are unavailable."""
        try:
            years = await self.fetcher.call(partial(self.provider.fetch_available_years, grade_id))
        except Exception:
            logger.exception("Could not list years for grade %s", grade_id)
            return None
        results = await self.fetcher.run_bounded(
            [partial(self.get_grade_statistics, grade_id, year) for year in years],
            label=f"grade {grade_id} year",
            guarded=False,
        )
        aggregates: Dict[int, Dict[str, Any]] = {}
        for year, agg in zip(years, results):
            if agg is None or "error" in agg:
                logger.info("No usable aggregate for grade %s/%s", grade_id, year)
                continue
            aggregates[int(year)] = agg
        return aggregates

    async def get_grade_history(self, grade_id: int) -> Dict[str, Any]:
        grade_id = validate_grade(grade_id)

        async def build():
            aggregates = await self._grade_aggregates(grade_id)
            return compute_grade_history(aggregates or {})

        return await self.cache.get_or_fetch(
            make_key("grade_history", grade_id), build, cacheable=_is_result
        )

    async def get_year_range_comparison(self, grade_id: int, start_year: int, end_year: int) -> Dict[str, Any]:
        grade_id = validate_grade(grade_id)
        if start_year > end_year:
            raise InvalidArgument(f"start year {start_year} is after end year {end_year}")

        async def build():
            aggregates = await self._grade_aggregates(grade_id)
            return compute_year_range_comparison(aggregates or {}, start_year, end_year)

        return await self.cache.get_or_fetch(
            make_key("grade_comparison", grade_id, start_year, end_year), build, cacheable=_is_result
        )

    async def get_history_details(self, grade_id: int) -> Dict[str, Any]:
        grade_id = validate_grade(grade_id)

        async def build():
            history = await self.get_grade_history(grade_id)
            if "error" in history:
                return history
            aggregates = await self._grade_aggregates(grade_id)
            return compute_history_details(history, aggregates or {})

        return await self.cache.get_or_fetch(
            make_key("grade_details", grade_id), build, cacheable=_is_result
        )

    async def prewarm(self, grade_ids: Iterable[int], years: Iterable[int]) -> Dict[str, int]:
        """Compute grade statistics for every (grade, year) pair in gentle batches."""
        try:
            years = [int(y) for y in years]
        except (TypeError, ValueError):
            raise InvalidArgument(f"years must be integers, got {years!r}")
        pairs = [(validate_grade(g), y) for g in grade_ids for y in years]
        results = await self.fetcher.run_bounded(
            [partial(self.get_grade_statistics, g, y) for g, y in pairs],
            delay=self.config.prewarm_delay,
            label="prewarm",
            guarded=False,
        )
        warmed = sum(1 for r in results if _is_result(r))
        logger.info("Pre-warmed %d of %d grade-years", warmed, len(pairs))
        return {"requested": len(pairs), "warmed": warmed}

    # ── Student level ───────────────────────────────────────────────

    async def _student_record(self, student_id: str, year: int) -> Optional[Tuple[Dict[str, Any], CompositeRecord]]:
        async def build():
            raw = await self.fetcher.call(partial(self.provider.fetch_student_by_id, student_id, year))
            if raw is None:
                return None
            try:
                record = compute_composite(raw, raw.get("sex"), raw.get("grade"), year)
            except InvalidArgument as exc:
                logger.warning("Cannot score student %s for %s: %s", student_id, year, exc)
                return None
            return raw, record

        return await self.cache.get_or_fetch(
            make_key("student_composite", student_id, year), build, cacheable=_is_result
        )

    async def get_student_composite(self, student_id: str, year: int) -> Optional[CompositeRecord]:
        """Composite record for one student-year, or None when not found."""
        found = await self._student_record(str(student_id), int(year))
        return found[1] if found else None

    async def get_item_score(self, student_id: str, year: int, item_key: str) -> Optional[Dict[str, Any]]:
        if item_key not in ITEMS_BY_KEY:
            raise InvalidArgument(f"Unknown test item: {item_key!r}")
        found = await self._student_record(str(student_id), int(year))
        if not found:
            return None
        raw, record = found
        return item_detail(record, raw, item_key)

    async def get_student_history(self, student_id: str) -> Dict[str, Any]:
        student_id = str(student_id)

        async def build():
            try:
                years = await self.fetcher.call(
                    partial(self.provider.fetch_student_available_years, student_id)
                )
            except Exception:
                logger.exception("Could not list years for student %s", student_id)
                years = []
            results = await self.fetcher.run_bounded(
                [partial(self._student_record, student_id, year) for year in years],
                label=f"student {student_id} year",
                guarded=False,
            )
            return compute_student_history([found[1] for found in results if found])

        return await self.cache.get_or_fetch(
            make_key("student_history", student_id), build, cacheable=_is_result
        )

    # ── Cache ───────────────────────────────────────────────────────

    def invalidate_cache(self, scope: Optional[str] = None) -> int:
        return self.cache.invalidate(scope)

    def cache_stats(self) -> Dict[str, Any]:
        return self.cache.stats()
