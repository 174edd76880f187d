"""
grading.py — Score calculator and level bands.

Converts a single raw measurement into a 0-100 score by scanning the item's
standard table from the top, and maps any score onto the uniform level bands:
  excellent ≥85, good ≥70, pass ≥60, fail below 60.
"""

import math
from dataclasses import dataclass
from enum import Enum
from numbers import Integral, Real
from typing import Any, Dict, List, Optional

from core.standards import GRADES, SEXES, ItemStandard, get_item


class InvalidArgument(ValueError):
    """Bad sex, grade or measurement passed to the score calculator."""


class Level(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    PASS = "pass"
    FAIL = "fail"
    NO_DATA = "no data"
    CALC_ERROR = "calc error"


# Level bands (min_score, level, description), ordered high to low.
LEVEL_BANDS = [
    (85.0, Level.EXCELLENT, "Excellent"),
    (70.0, Level.GOOD, "Good"),
    (60.0, Level.PASS, "Pass"),
    (0.0, Level.FAIL, "Fail"),
]
GRADED_LEVELS = [band[1] for band in LEVEL_BANDS]


@dataclass(frozen=True)
class ItemResult:
    score: int
    level: Level

    def to_dict(self) -> Dict[str, Any]:
        return {"score": self.score, "level": self.level.value}


def get_level(score: Optional[float]) -> Level:
    """Return the level for a 0-100 score (an item score or an average)."""
    value = 0.0 if score is None else float(score)
    for min_score, level, _ in LEVEL_BANDS:
        if value >= min_score:
            return level
    return Level.FAIL


def get_level_thresholds() -> List[Dict[str, Any]]:
    """Return the full level scale for legend/reference."""
    thresholds = []
    for idx, (min_score, level, desc) in enumerate(LEVEL_BANDS):
        max_score = 100.0 if idx == 0 else LEVEL_BANDS[idx - 1][0] - 0.01
        thresholds.append(
            {
                "min": min_score,
                "max": round(max_score, 2),
                "level": level.value,
                "description": desc,
            }
        )
    return thresholds


# ── Validation ──────────────────────────────────────────────────────

def validate_sex(sex: Any) -> str:
    if sex not in SEXES:
        raise InvalidArgument(f"sex must be 'male' or 'female', got {sex!r}")
    return sex


def validate_grade(grade: Any) -> int:
    if isinstance(grade, bool) or not isinstance(grade, Integral) or int(grade) not in GRADES:
        raise InvalidArgument(f"grade must be 1, 2 or 3, got {grade!r}")
    return int(grade)


def _validate_value(item: ItemStandard, raw_value: Any) -> float:
    if isinstance(raw_value, bool) or not isinstance(raw_value, Real):
        raise InvalidArgument(f"{item.name} measurement must be a number, got {raw_value!r}")
    value = float(raw_value)
    if math.isnan(value) or math.isinf(value):
        raise InvalidArgument(f"{item.name} measurement must be finite, got {raw_value!r}")
    if value < 0 and not item.allow_negative:
        raise InvalidArgument(f"{item.name} measurement must be non-negative, got {raw_value!r}")
    return value


# ── Score Calculator ────────────────────────────────────────────────

def score_item(item: ItemStandard, sex: str, grade: int, raw_value: Any) -> ItemResult:
    """
    Score one measurement against the item's table for (sex, grade).

    The first breakpoint reached from the top wins; a value that reaches
    none of them gets the floor score of 0.
    """
    sex = validate_sex(sex)
    grade = validate_grade(grade)
    value = _validate_value(item, raw_value)

    table = item.table_for(sex, grade)
    score = table[-1].score
    for bp in table[:-1]:
        reached = value <= bp.threshold if item.lower_is_better else value >= bp.threshold
        if reached:
            score = bp.score
            break

    return ItemResult(score=score, level=get_level(score))


def score_by_key(item_key: str, sex: str, grade: int, raw_value: Any) -> ItemResult:
    """Same as score_item, looking the item up by key."""
    try:
        item = get_item(item_key)
    except KeyError:
        raise InvalidArgument(f"Unknown test item: {item_key!r}") from None
    return score_item(item, sex, grade, raw_value)
