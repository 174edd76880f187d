"""
Fitness routes — scoring, grade statistics, history and cache endpoints.
"""

from typing import Any, Awaitable, Optional

from fastapi import APIRouter, HTTPException, Request

from core.composite import compute_composite
from core.grading import InvalidArgument, get_level_thresholds, score_by_key, validate_grade, validate_sex
from core.service import FitnessService
from core.standards import ITEMS_BY_KEY, describe_table, get_item

router = APIRouter()


def _service(request: Request) -> FitnessService:
    return request.app.state.fitness_service


async def _call(awaitable: Awaitable[Any]) -> Any:
    """Await a service call, mapping bad arguments to 400 and NoData to 404."""
    try:
        result = await awaitable
    except InvalidArgument as exc:
        raise HTTPException(400, str(exc))
    if isinstance(result, dict) and "error" in result:
        raise HTTPException(404, result["error"])
    return result


# ── Grades ──────────────────────────────────────────────────────────

@router.get("/grades/{grade_id}/statistics")
async def grade_statistics(grade_id: int, year: int, request: Request):
    """Grade-wide averages, level distribution, rankings and weakest items."""
    return await _call(_service(request).get_grade_statistics(grade_id, year))


@router.get("/grades/{grade_id}/history")
async def grade_history(grade_id: int, request: Request):
    """Per-item averages across all available years with trends."""
    return await _call(_service(request).get_grade_history(grade_id))


@router.get("/grades/{grade_id}/history/details")
async def grade_history_details(grade_id: int, request: Request):
    return await _call(_service(request).get_history_details(grade_id))


@router.get("/grades/{grade_id}/comparison")
async def grade_comparison(grade_id: int, start_year: int, end_year: int, request: Request):
    """Year-by-year comparison between two years, inclusive."""
    return await _call(_service(request).get_year_range_comparison(grade_id, start_year, end_year))


@router.post("/grades/prewarm")
async def prewarm(payload: dict, request: Request):
    grade_ids = payload.get("grade_ids") or []
    years = payload.get("years") or []
    if not grade_ids or not years:
        raise HTTPException(400, "Both grade_ids and years are required.")
    return await _call(_service(request).prewarm(grade_ids, years))


# ── Students ────────────────────────────────────────────────────────

@router.get("/students/{student_id}/composite")
async def student_composite(student_id: str, year: int, request: Request):
    record = await _call(_service(request).get_student_composite(student_id, year))
    if record is None:
        raise HTTPException(404, f"Student '{student_id}' has no record for {year}.")
    return record.to_dict()


@router.get("/students/{student_id}/items/{item_key}")
async def student_item(student_id: str, item_key: str, year: int, request: Request):
    if item_key not in ITEMS_BY_KEY:
        raise HTTPException(404, f"Unknown test item '{item_key}'.")
    result = await _call(_service(request).get_item_score(student_id, year, item_key))
    if result is None:
        raise HTTPException(404, f"Student '{student_id}' has no record for {year}.")
    return result


@router.get("/students/{student_id}/history")
async def student_history(student_id: str, request: Request):
    """Item series, improvement, best/worst year and overall trend."""
    return await _call(_service(request).get_student_history(student_id))


# ── Scoring & standards ─────────────────────────────────────────────

@router.post("/score")
async def score(payload: dict):
    """Score one measurement: {"item", "sex", "grade", "value"}."""
    try:
        result = score_by_key(payload.get("item"), payload.get("sex"), payload.get("grade"), payload.get("value"))
    except InvalidArgument as exc:
        raise HTTPException(400, str(exc))
    return result.to_dict()


@router.post("/composite")
async def composite(payload: dict):
    """Score a full raw record: {"sex", "grade", "year", "measurements": {...}}."""
    try:
        record = compute_composite(
            payload.get("measurements") or {},
            payload.get("sex"),
            payload.get("grade"),
            payload.get("year") or 0,
        )
    except InvalidArgument as exc:
        raise HTTPException(400, str(exc))
    return record.to_dict()


@router.get("/standards/levels")
async def level_thresholds():
    return {"levels": get_level_thresholds()}


@router.get("/standards/{item_key}")
async def standard_table(item_key: str, sex: str, grade: int):
    try:
        item = get_item(item_key)
    except KeyError:
        raise HTTPException(404, f"Unknown test item '{item_key}'.")
    try:
        return describe_table(item, validate_sex(sex), validate_grade(grade))
    except InvalidArgument as exc:
        raise HTTPException(400, str(exc))


# ── Cache ───────────────────────────────────────────────────────────

@router.delete("/cache")
async def invalidate_cache(request: Request, scope: Optional[str] = None):
    removed = _service(request).invalidate_cache(scope)
    return {"removed": removed, "scope": scope or "all"}


@router.get("/cache/stats")
async def cache_stats(request: Request):
    return _service(request).cache_stats()
