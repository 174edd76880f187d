"""
composite.py — One student's full scored result for one year.

Combines the six item scores into a CompositeRecord. A missing measurement
scores 0 with level "no data"; a failure while scoring one item scores 0 with
level "calc error" and never stops the other items.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Sequence

from core.grading import ItemResult, Level, get_level, score_item, validate_grade, validate_sex
from core.standards import ITEMS, ITEMS_BY_KEY, ItemStandard

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompositeRecord:
    items: Dict[str, ItemResult]
    total: int
    average: float
    level: Level
    year: int
    items_count: int

    def score(self, item_key: str) -> int:
        return self.items[item_key].score

    def scores(self) -> Dict[str, int]:
        return {key: result.score for key, result in self.items.items()}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "year": self.year,
            "items": {key: result.to_dict() for key, result in self.items.items()},
            "total": self.total,
            "average": self.average,
            "level": self.level.value,
            "items_count": self.items_count,
        }


def is_missing(value: Any) -> bool:
    """None and NaN both mean the student did not take the test."""
    if value is None:
        return True
    try:
        return math.isnan(value)
    except TypeError:
        return False


def fixed_divisor_average(scores: Sequence[float]) -> float:
    """
    Composite average: total over all six items, missing ones included as 0.

    Differs on purpose from stats.valid_items_average, which divides by the
    number of items actually scored.
    """
    return round(sum(scores) / len(ITEMS), 2)


def _score_one(item: ItemStandard, raw: Any, sex: str, grade: int) -> ItemResult:
    value = item.raw_value(raw)
    if is_missing(value):
        return ItemResult(score=0, level=Level.NO_DATA)
    try:
        return score_item(item, sex, grade, value)
    except Exception:
        logger.exception("Failed to score %s (value=%r, sex=%s, grade=%s)", item.key, value, sex, grade)
        return ItemResult(score=0, level=Level.CALC_ERROR)


def compute_composite(raw: Mapping[str, Any], sex: str, grade: int, year: int) -> CompositeRecord:
    """Score all six items of a raw measurement record for one year."""
    sex = validate_sex(sex)
    grade = validate_grade(grade)

    items = {item.key: _score_one(item, raw, sex, grade) for item in ITEMS}
    scores = [result.score for result in items.values()]
    total = sum(scores)
    average = fixed_divisor_average(scores)
    scored = sum(1 for r in items.values() if r.level not in (Level.NO_DATA, Level.CALC_ERROR))

    return CompositeRecord(
        items=items,
        total=total,
        average=average,
        level=get_level(average),
        year=int(year),
        items_count=scored,
    )


def item_detail(record: CompositeRecord, raw: Mapping[str, Any], item_key: str) -> Dict[str, Any]:
    """Name, score, level and raw value of one item in a composite record."""
    item = ITEMS_BY_KEY[item_key]
    result = record.items[item_key]
    value = item.raw_value(raw)
    return {
        "item": item.key,
        "name": item.name,
        "unit": item.unit,
        "score": result.score,
        "level": result.level.value,
        "raw_value": None if is_missing(value) else value,
    }
