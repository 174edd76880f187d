"""
stats.py — Grade-level aggregation of composite records (pandas/numpy).

Computes, for every student of one grade in one year:
- Sex distribution and per-sex item averages
- Per-item sums, valid counts and averages (a score counts only when > 0)
- Per-student totals, valid-item averages and level distribution
- Top 5 students overall and per item
- The two weakest items, grade-wide and per sex
"""

from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Sequence

import numpy as np
import pandas as pd

from core.composite import CompositeRecord, is_missing
from core.grading import GRADED_LEVELS, get_level
from core.standards import ITEM_KEYS, ITEMS, ITEMS_BY_KEY, SEXES

TOP_N = 5
WEAKEST_N = 2


class ScoredStudent(NamedTuple):
    student_id: str
    name: str
    sex: str
    record: CompositeRecord
    raw: Optional[Dict[str, Any]] = None


# ── Helpers ─────────────────────────────────────────────────────────

def _safe_float(val) -> Optional[float]:
    """Convert to a finite float or return None."""
    try:
        v = float(val)
        return None if np.isnan(v) or np.isinf(v) else v
    except (TypeError, ValueError):
        return None


def _sanitize(obj):
    """Recursively coerce numpy/pandas scalars to JSON-safe Python types."""
    if isinstance(obj, dict):
        return {k: _sanitize(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_sanitize(v) for v in obj]
    if isinstance(obj, (np.bool_,)):
        return bool(obj)
    if isinstance(obj, (np.integer,)):
        return int(obj)
    if isinstance(obj, (np.floating, float)):
        v = float(obj)
        return None if (np.isnan(v) or np.isinf(v)) else v
    return obj


def valid_items_average(scores: Iterable[float]) -> float:
    """
    Aggregator average: sum of the scores above 0 over how many there are.

    Differs on purpose from composite.fixed_divisor_average, which always
    divides by six.
    """
    valid = [s for s in scores if s > 0]
    if not valid:
        return 0.0
    return round(sum(valid) / len(valid), 2)


def _item_averages(sums: pd.Series, counts: pd.Series) -> Dict[str, float]:
    return {
        key: (_safe_float(sums[key] / counts[key]) if counts[key] > 0 else 0.0)
        for key in ITEM_KEYS
    }


def _average_scores(valid: pd.DataFrame) -> Dict[str, Any]:
    """Per-item averages plus the grand total and the overall valid average."""
    sums = valid.sum()
    counts = valid.count()
    averages: Dict[str, Any] = _item_averages(sums, counts)
    total_sum = float(sums.sum())
    total_count = int(counts.sum())
    averages["total"] = total_sum if total_count > 0 else 0.0
    averages["average"] = _safe_float(total_sum / total_count) if total_count > 0 else 0.0
    return averages


def _weakest_items(averages: Dict[str, Any], count: int = WEAKEST_N) -> List[Dict[str, Any]]:
    rows = [
        {"item": item.key, "name": item.name, "score": averages.get(item.key) or 0.0}
        for item in ITEMS
    ]
    return sorted(rows, key=lambda r: r["score"])[:count]


# ── Grade Statistics ────────────────────────────────────────────────

def compute_grade_stats(entries: Sequence[ScoredStudent]) -> Dict[str, Any]:
    """Aggregate one grade-year of scored students into grade statistics."""
    if not entries:
        return {"error": "No student records found for this grade and year"}

    df = pd.DataFrame(
        [
            {"student_id": e.student_id, "name": e.name, "sex": e.sex, **e.record.scores()}
            for e in entries
        ]
    )
    scores = df[list(ITEM_KEYS)].astype(float)
    valid = scores.where(scores > 0)

    df["total"] = valid.sum(axis=1)
    df["valid_count"] = valid.count(axis=1)
    df["average"] = [valid_items_average(e.record.scores().values()) for e in entries]
    df["level"] = [get_level(avg).value for avg in df["average"]]

    level_counts = df["level"].value_counts()
    level_distribution = {lvl.value: int(level_counts.get(lvl.value, 0)) for lvl in GRADED_LEVELS}

    sex_counts = df["sex"].value_counts()
    sex_distribution = {sex: int(sex_counts.get(sex, 0)) for sex in SEXES}

    average_scores = _average_scores(valid)

    # Rankings: only students with at least one valid item; ties keep input order.
    ranked = df[df["valid_count"] > 0].sort_values("total", ascending=False, kind="stable")
    top_students = [
        {
            "student_id": row["student_id"],
            "name": row["name"],
            "sex": row["sex"],
            "total": int(row["total"]),
            "average": row["average"],
            "level": row["level"],
        }
        for _, row in ranked.head(TOP_N).iterrows()
    ]

    item_top_students: Dict[str, List[Dict[str, Any]]] = {}
    for key in ITEM_KEYS:
        item = ITEMS_BY_KEY[key]
        ranked_item = valid[key].dropna().sort_values(ascending=False, kind="stable").head(TOP_N)
        rows = []
        for idx, score in ranked_item.items():
            raw_value = item.raw_value(entries[idx].raw)
            rows.append(
                {
                    "student_id": df.at[idx, "student_id"],
                    "name": df.at[idx, "name"],
                    "score": int(score),
                    "level": get_level(score).value,
                    "raw_value": None if is_missing(raw_value) else raw_value,
                }
            )
        item_top_students[key] = rows

    sex_stats: Dict[str, Any] = {}
    for sex in SEXES:
        sex_averages = _average_scores(valid[df["sex"] == sex])
        sex_stats[sex] = {
            "average_scores": sex_averages,
            "weakest_items": _weakest_items(sex_averages),
        }

    return _sanitize(
        {
            "total_students": len(df),
            "sex_distribution": sex_distribution,
            "average_scores": average_scores,
            "score_sums": {key: float(valid[key].sum()) for key in ITEM_KEYS},
            "valid_counts": {key: int(valid[key].count()) for key in ITEM_KEYS},
            "level_distribution": level_distribution,
            "top_students": top_students,
            "item_top_students": item_top_students,
            "weakest_items": _weakest_items(average_scores),
            "sex_stats": sex_stats,
        }
    )
