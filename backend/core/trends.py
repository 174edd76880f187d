"""
trends.py — Multi-year trend analysis for students and grades.

Computes:
- Improvement between the first and last point of a series
- Step-count trend classification (rising / falling / stable / volatile)
- A student's history across their composite records
- A grade's history across its yearly aggregates
- Year-range comparison and detailed history statistics (numpy, scipy)
"""

from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np
from scipy import stats as sp_stats

from core.composite import CompositeRecord
from core.grading import InvalidArgument
from core.standards import ITEM_KEYS

# A step smaller than this (in score points) counts as no change.
STABLE_BAND = 0.5
# Share of steps one direction needs to name the trend.
MAJORITY = 0.6

# Year-over-range improvement rate (%) bands.
RANGE_RISING = 5.0
RANGE_VOLATILE = 1.0


class Trend(str, Enum):
    RISING = "rising"
    FALLING = "falling"
    STABLE = "stable"
    VOLATILE = "volatile"


# ── Series primitives ───────────────────────────────────────────────

def compute_improvement(series: Sequence[float]) -> Optional[Dict[str, Any]]:
    """Change from the first to the last point; None with fewer than 2 points."""
    if len(series) < 2:
        return None
    first, last = float(series[0]), float(series[-1])
    change = last - first
    change_percent = change / first * 100 if first > 0 else 0.0
    return {
        "change": round(change, 2),
        "change_percent": round(change_percent, 2),
        "improved": change > 0,
    }


def classify_trend(series: Sequence[float]) -> Trend:
    """
    Classify a series by its year-to-year steps.

    A step is stable when |Δ| < 0.5, otherwise rising or falling. A direction
    that covers more than 60% of the steps names the trend; with no such
    majority the series is volatile.
    """
    steps = len(series) - 1
    if steps < 1:
        return Trend.STABLE

    rising = falling = stable = 0
    for prev, cur in zip(series, series[1:]):
        diff = cur - prev
        if abs(diff) < STABLE_BAND:
            stable += 1
        elif diff > 0:
            rising += 1
        else:
            falling += 1

    if rising > steps * MAJORITY:
        return Trend.RISING
    if falling > steps * MAJORITY:
        return Trend.FALLING
    if stable > steps * MAJORITY:
        return Trend.STABLE
    return Trend.VOLATILE


def analyze_series(series_by_item: Mapping[str, Sequence[float]]) -> Dict[str, Dict[str, Any]]:
    """Improvement and trend for every series with at least two points."""
    improvement: Dict[str, Any] = {}
    trends: Dict[str, str] = {}
    for key, series in series_by_item.items():
        if len(series) < 2:
            continue
        improvement[key] = compute_improvement(series)
        trends[key] = classify_trend(series).value
    return {"improvement": improvement, "trends": trends}


# ── Student History ─────────────────────────────────────────────────

def compute_student_history(records: Sequence[CompositeRecord]) -> Dict[str, Any]:
    """Analyse one student's composite records across years."""
    if not records:
        return {"error": "No historical records found for this student"}

    ordered = sorted(records, key=lambda r: r.year)
    series: Dict[str, List[float]] = {key: [] for key in (*ITEM_KEYS, "total", "average")}
    for record in ordered:
        for key in ITEM_KEYS:
            series[key].append(record.score(key))
        series["total"].append(record.total)
        series["average"].append(record.average)

    # max/min keep the first of equal values, so the earliest year wins ties.
    best = max(ordered, key=lambda r: r.average)
    worst = min(ordered, key=lambda r: r.average)

    analysis = analyze_series(series)
    return {
        "years": [r.year for r in ordered],
        "series": series,
        "improvement": analysis["improvement"],
        "trends": analysis["trends"],
        "best_performance": {"year": best.year, "average": best.average},
        "worst_performance": {"year": worst.year, "average": worst.average},
        "trajectory": [
            {"year": r.year, "average": r.average, "level": r.level.value} for r in ordered
        ],
        "trend": classify_trend(series["average"]).value,
    }


# ── Grade History ───────────────────────────────────────────────────

def _usable_years(aggregates_by_year: Mapping[int, Dict[str, Any]]) -> List[int]:
    return sorted(
        year for year, agg in aggregates_by_year.items() if agg and "error" not in agg
    )


def compute_grade_history(aggregates_by_year: Mapping[int, Dict[str, Any]]) -> Dict[str, Any]:
    """Analyse a grade's yearly aggregates; years whose aggregate errored are skipped."""
    years = _usable_years(aggregates_by_year)
    if not years:
        return {"error": "No historical data available for this grade"}

    series: Dict[str, List[float]] = {key: [] for key in (*ITEM_KEYS, "average")}
    level_distribution: Dict[int, Dict[str, int]] = {}
    for year in years:
        agg = aggregates_by_year[year]
        averages = agg.get("average_scores") or {}
        for key in series:
            series[key].append(averages.get(key) or 0.0)
        if agg.get("level_distribution"):
            level_distribution[year] = agg["level_distribution"]

    analysis = analyze_series(series)
    return {
        "years": years,
        "series": series,
        "level_distribution": level_distribution,
        "improvement": analysis["improvement"],
        "trends": analysis["trends"],
    }


def compute_year_range_comparison(
    aggregates_by_year: Mapping[int, Dict[str, Any]], start_year: int, end_year: int
) -> Dict[str, Any]:
    """Compare the grade's yearly aggregates between two years, inclusive."""
    if start_year > end_year:
        raise InvalidArgument(f"start year {start_year} is after end year {end_year}")

    years = [y for y in _usable_years(aggregates_by_year) if start_year <= y <= end_year]
    if not years:
        return {"error": f"No data available between {start_year} and {end_year}"}

    comparison: Dict[int, Dict[str, Any]] = {}
    yearly: List[Dict[str, Any]] = []
    for year in years:
        agg = aggregates_by_year[year]
        comparison[year] = {
            "total_students": agg.get("total_students", 0),
            "average_scores": agg.get("average_scores", {}),
            "level_distribution": agg.get("level_distribution", {}),
            "sex_distribution": agg.get("sex_distribution", {}),
        }
        yearly.append({"year": year, "average": (agg.get("average_scores") or {}).get("average") or 0.0})

    best = max(yearly, key=lambda y: y["average"])
    worst = min(yearly, key=lambda y: y["average"])

    first, last = yearly[0]["average"], yearly[-1]["average"]
    rate = (last - first) / first * 100 if first > 0 else 0.0

    if rate > RANGE_RISING:
        overall = Trend.RISING
    elif rate < -RANGE_RISING:
        overall = Trend.FALLING
    elif abs(rate) > RANGE_VOLATILE:
        overall = Trend.VOLATILE
    else:
        overall = Trend.STABLE

    return {
        "comparison": comparison,
        "summary": {
            "overall_trend": overall.value,
            "best_year": best,
            "worst_year": worst,
            "improvement_rate": round(rate, 2),
        },
    }


def compute_history_details(
    history: Dict[str, Any], aggregates_by_year: Mapping[int, Dict[str, Any]]
) -> Dict[str, Any]:
    """
    Detailed statistics over a grade history.

    - data_completeness: share (%) of items with a positive average per year
    - series_stats: population std (volatility), consistency
      (1 - std/mean, as %, floored at 0) and linear slope per year
    - yearly_comparison: each year's rank by overall average and percentile
    """
    if "error" in history:
        return history

    years = history["years"]
    n_years = len(years)

    data_completeness: Dict[int, int] = {}
    for year in years:
        averages = (aggregates_by_year.get(year) or {}).get("average_scores") or {}
        positive = sum(1 for key in ITEM_KEYS if (averages.get(key) or 0) > 0)
        data_completeness[year] = int(round(positive / len(ITEM_KEYS) * 100))

    series_stats: Dict[str, Dict[str, Any]] = {}
    for key, values in history["series"].items():
        if len(values) < 2:
            continue
        arr = np.asarray(values, dtype=float)
        mean = float(arr.mean())
        std = float(arr.std())
        consistency = (1 - std / mean) * 100 if mean > 0 else 0.0
        slope = float(np.polyfit(np.asarray(years, dtype=float), arr, 1)[0])
        series_stats[key] = {
            "trend": history["trends"].get(key, Trend.STABLE.value),
            "volatility": round(std, 2),
            "consistency": round(max(0.0, consistency), 2),
            "slope": round(slope, 3),
        }

    # Ordinal ranking on the negated averages: highest first, earlier year wins ties.
    averages = np.asarray(history["series"]["average"], dtype=float)
    ranks = sp_stats.rankdata(-averages, method="ordinal")
    yearly_comparison = [
        {
            "year": year,
            "rank": int(rank),
            "percentile": round((n_years - int(rank) + 1) / n_years * 100, 2),
        }
        for year, rank in zip(years, ranks)
    ]

    return {
        "total_years_analyzed": n_years,
        "data_completeness": data_completeness,
        "series_stats": series_stats,
        "yearly_comparison": yearly_comparison,
    }
