"""
standards.py — Graduated standard tables for the six fitness test items.

Each item carries one table per (sex, grade) pair. A table is a tuple of
breakpoints ordered from the highest score to the lowest, ending in a single
floor breakpoint with score 0.

Items:
- endurance_run       1000 m (male) / 800 m (female), seconds, lower is better
- sprint_50m          50 m sprint, seconds, lower is better
- sit_and_reach       flexibility, cm (may be negative), higher is better
- standing_long_jump  cm, higher is better
- vital_capacity      ml, higher is better
- strength            pull-ups (male) / sit-ups (female), reps, higher is better
"""

from dataclasses import dataclass
from typing import Any, Dict, List, NamedTuple, Sequence, Tuple


SEXES = ("male", "female")
GRADES = (1, 2, 3)

LOWER_IS_BETTER = "lower"
HIGHER_IS_BETTER = "higher"

# Shared score ladder, highest first. The floor (0) is appended per table.
SCORE_LADDER = (100, 95, 90, 85, 80, 78, 76, 74, 72, 70, 68, 66, 64, 62, 60, 50, 40, 30, 20, 10)


class Breakpoint(NamedTuple):
    score: int
    threshold: float


Table = Tuple[Breakpoint, ...]


@dataclass(frozen=True)
class ItemStandard:
    """One test item: identifier, raw-field accessor and its tables."""

    key: str
    field: str
    name: str
    unit: str
    direction: str
    tables: Dict[str, Dict[int, Table]]
    allow_negative: bool = False

    @property
    def lower_is_better(self) -> bool:
        return self.direction == LOWER_IS_BETTER

    def table_for(self, sex: str, grade: int) -> Table:
        return self.tables[sex][grade]

    def raw_value(self, raw: Any) -> Any:
        """Read this item's measurement from a raw record (mapping or object)."""
        if raw is None:
            return None
        if hasattr(raw, "get"):
            return raw.get(self.field)
        return getattr(raw, self.field, None)


def _table(thresholds: Sequence[float], direction: str) -> Table:
    if len(thresholds) != len(SCORE_LADDER):
        raise ValueError(f"Expected {len(SCORE_LADDER)} thresholds, got {len(thresholds)}")
    floor = float("inf") if direction == LOWER_IS_BETTER else float("-inf")
    rows = tuple(Breakpoint(score, float(t)) for score, t in zip(SCORE_LADDER, thresholds))
    return rows + (Breakpoint(0, floor),)


def _tables(direction: str, male: Sequence[Sequence[float]], female: Sequence[Sequence[float]]):
    return {
        "male": {grade: _table(t, direction) for grade, t in zip(GRADES, male)},
        "female": {grade: _table(t, direction) for grade, t in zip(GRADES, female)},
    }


# ── Endurance run (seconds) ─────────────────────────────────────────

ENDURANCE_RUN = ItemStandard(
    key="endurance_run",
    field="long_run",
    name="Endurance run",
    unit="s",
    direction=LOWER_IS_BETTER,
    tables=_tables(
        LOWER_IS_BETTER,
        male=[
            [210, 215, 220, 227, 235, 240, 245, 250, 255, 260, 265, 270, 275, 280, 285, 305, 325, 345, 365, 385],
            [205, 210, 215, 222, 230, 235, 240, 245, 250, 255, 260, 265, 270, 275, 280, 300, 320, 340, 360, 380],
            [200, 205, 210, 217, 225, 230, 235, 240, 245, 250, 255, 260, 265, 270, 275, 295, 315, 335, 355, 375],
        ],
        female=[
            [204, 210, 216, 223, 230, 235, 240, 245, 250, 255, 260, 265, 270, 275, 280, 290, 300, 310, 320, 330],
            [202, 208, 214, 221, 228, 233, 238, 243, 248, 253, 258, 263, 268, 273, 278, 288, 298, 308, 318, 328],
            [200, 206, 212, 219, 226, 231, 236, 241, 246, 251, 256, 261, 266, 271, 276, 286, 296, 306, 316, 326],
        ],
    ),
)

# ── 50 m sprint (seconds) ───────────────────────────────────────────

SPRINT_50M = ItemStandard(
    key="sprint_50m",
    field="short_run",
    name="50m sprint",
    unit="s",
    direction=LOWER_IS_BETTER,
    tables=_tables(
        LOWER_IS_BETTER,
        male=[
            [7.1, 7.2, 7.3, 7.4, 7.5, 7.7, 7.9, 8.1, 8.3, 8.5, 8.7, 8.9, 9.1, 9.3, 9.5, 9.7, 9.9, 10.1, 10.3, 10.5],
            [7.0, 7.1, 7.2, 7.3, 7.4, 7.6, 7.8, 8.0, 8.2, 8.4, 8.6, 8.8, 9.0, 9.2, 9.4, 9.6, 9.8, 10.0, 10.2, 10.4],
            [6.8, 6.9, 7.0, 7.1, 7.2, 7.4, 7.6, 7.8, 8.0, 8.2, 8.4, 8.6, 8.8, 9.0, 9.2, 9.4, 9.6, 9.8, 10.0, 10.2],
        ],
        female=[
            [7.8, 7.9, 8.0, 8.3, 8.6, 8.8, 9.0, 9.2, 9.4, 9.6, 9.8, 10.0, 10.2, 10.4, 10.6, 10.8, 11.0, 11.2, 11.4, 11.6],
            [7.7, 7.8, 7.9, 8.2, 8.5, 8.7, 8.9, 9.1, 9.3, 9.5, 9.7, 9.9, 10.1, 10.3, 10.5, 10.7, 10.9, 11.1, 11.3, 11.5],
            [7.6, 7.7, 7.8, 8.1, 8.4, 8.6, 8.8, 9.0, 9.2, 9.4, 9.6, 9.8, 10.0, 10.2, 10.4, 10.6, 10.8, 11.0, 11.2, 11.4],
        ],
    ),
)

# ── Sit-and-reach (cm) ──────────────────────────────────────────────

SIT_AND_REACH = ItemStandard(
    key="sit_and_reach",
    field="sit_and_reach",
    name="Sit-and-reach",
    unit="cm",
    direction=HIGHER_IS_BETTER,
    allow_negative=True,
    tables=_tables(
        HIGHER_IS_BETTER,
        male=[
            [23.6, 21.5, 19.4, 17.2, 15.0, 13.6, 12.2, 10.8, 9.4, 8.0, 6.6, 5.2, 3.8, 2.4, 1.0, 0.0, -1.0, -2.0, -3.0, -4.0],
            [24.3, 22.4, 20.5, 18.3, 16.1, 14.7, 13.3, 11.9, 10.5, 9.1, 7.7, 6.3, 4.9, 3.5, 2.1, 1.1, 0.1, -0.9, -1.9, -2.9],
            [24.6, 22.8, 21.0, 19.1, 17.2, 15.8, 14.4, 13.0, 11.6, 10.2, 8.8, 7.4, 6.0, 4.6, 3.2, 2.2, 1.2, 0.2, -0.8, -1.8],
        ],
        female=[
            [24.2, 22.5, 20.8, 19.1, 17.4, 16.1, 14.8, 13.5, 12.2, 10.9, 9.6, 8.3, 7.0, 5.7, 4.4, 3.6, 2.8, 2.0, 1.2, 0.4],
            [24.8, 23.1, 21.4, 19.7, 18.0, 16.7, 15.4, 14.1, 12.8, 11.5, 10.2, 8.9, 7.6, 6.3, 5.0, 4.2, 3.4, 2.6, 1.8, 1.0],
            [25.8, 24.0, 22.2, 20.4, 18.3, 17.0, 15.7, 14.4, 13.1, 11.8, 10.5, 9.2, 7.9, 6.6, 5.3, 4.5, 3.7, 2.9, 2.1, 1.3],
        ],
    ),
)

# ── Standing long jump (cm) ─────────────────────────────────────────

STANDING_LONG_JUMP = ItemStandard(
    key="standing_long_jump",
    field="long_jump",
    name="Standing long jump",
    unit="cm",
    direction=HIGHER_IS_BETTER,
    tables=_tables(
        HIGHER_IS_BETTER,
        male=[
            [270, 265, 260, 250, 240, 235, 230, 225, 220, 215, 210, 205, 200, 195, 190, 185, 180, 175, 170, 165],
            [275, 270, 265, 255, 245, 240, 235, 230, 225, 220, 215, 210, 205, 200, 195, 190, 185, 180, 175, 170],
            [280, 275, 270, 260, 250, 245, 240, 235, 230, 225, 220, 215, 210, 205, 200, 195, 190, 185, 180, 175],
        ],
        female=[
            [207, 202, 197, 188, 179, 174, 169, 164, 159, 154, 149, 144, 139, 134, 129, 124, 119, 114, 109, 104],
            [209, 204, 199, 190, 181, 176, 171, 166, 161, 156, 151, 146, 141, 136, 131, 126, 121, 116, 111, 106],
            [211, 206, 201, 192, 183, 178, 173, 168, 163, 158, 153, 148, 143, 138, 133, 128, 123, 118, 113, 108],
        ],
    ),
)

# ── Vital capacity (ml) ─────────────────────────────────────────────

VITAL_CAPACITY = ItemStandard(
    key="vital_capacity",
    field="vital_capacity",
    name="Vital capacity",
    unit="ml",
    direction=HIGHER_IS_BETTER,
    tables=_tables(
        HIGHER_IS_BETTER,
        male=[
            [5040, 4800, 4560, 4180, 3800, 3610, 3420, 3230, 3040, 2850, 2660, 2470, 2280, 2090, 1900, 1710, 1520, 1330, 1140, 950],
            [5160, 4920, 4680, 4300, 3920, 3730, 3540, 3350, 3160, 2970, 2780, 2590, 2400, 2210, 2020, 1830, 1640, 1450, 1260, 1070],
            [5280, 5040, 4800, 4420, 4040, 3850, 3660, 3470, 3280, 3090, 2900, 2710, 2520, 2330, 2140, 1950, 1760, 1570, 1380, 1190],
        ],
        female=[
            [3400, 3250, 3100, 2850, 2600, 2475, 2350, 2225, 2100, 1975, 1850, 1725, 1600, 1475, 1350, 1225, 1100, 975, 850, 725],
            [3450, 3300, 3150, 2900, 2650, 2525, 2400, 2275, 2150, 2025, 1900, 1775, 1650, 1525, 1400, 1275, 1150, 1025, 900, 775],
            [3500, 3350, 3200, 2950, 2700, 2575, 2450, 2325, 2200, 2075, 1950, 1825, 1700, 1575, 1450, 1325, 1200, 1075, 950, 825],
        ],
    ),
)

# ── Pull-ups (male) / sit-ups (female), repetitions ─────────────────

STRENGTH = ItemStandard(
    key="strength",
    field="sit_up_pull_up",
    name="Pull-ups / sit-ups",
    unit="reps",
    direction=HIGHER_IS_BETTER,
    tables=_tables(
        HIGHER_IS_BETTER,
        male=[
            [17, 16, 15, 14, 13, 12, 11, 10, 9, 8, 7, 6, 5, 4, 3, 2, 1, 1, 1, 1],
            [18, 17, 16, 15, 14, 13, 12, 11, 10, 9, 8, 7, 6, 5, 4, 3, 2, 1, 1, 1],
            [19, 18, 17, 16, 15, 14, 13, 12, 11, 10, 9, 8, 7, 6, 5, 4, 3, 2, 1, 1],
        ],
        female=[
            [56, 54, 52, 49, 46, 44, 42, 40, 38, 36, 34, 32, 30, 28, 26, 24, 22, 20, 18, 16],
            [57, 55, 53, 50, 47, 45, 43, 41, 39, 37, 35, 33, 31, 29, 27, 25, 23, 21, 19, 17],
            [58, 56, 54, 51, 48, 46, 44, 42, 40, 38, 36, 34, 32, 30, 28, 26, 24, 22, 20, 18],
        ],
    ),
)


# Fixed item order used by every score series, aggregate and report.
ITEMS: Tuple[ItemStandard, ...] = (
    ENDURANCE_RUN,
    SPRINT_50M,
    SIT_AND_REACH,
    STANDING_LONG_JUMP,
    VITAL_CAPACITY,
    STRENGTH,
)
ITEM_KEYS: Tuple[str, ...] = tuple(item.key for item in ITEMS)
ITEM_FIELDS: Tuple[str, ...] = tuple(item.field for item in ITEMS)
ITEMS_BY_KEY: Dict[str, ItemStandard] = {item.key: item for item in ITEMS}


def get_item(key: str) -> ItemStandard:
    """Look up an item by key; raises KeyError for unknown keys."""
    return ITEMS_BY_KEY[key]


def describe_table(item: ItemStandard, sex: str, grade: int) -> Dict[str, Any]:
    """Return one table as plain data for legends and reference views."""
    rows: List[Dict[str, Any]] = []
    for bp in item.table_for(sex, grade):
        if bp.score == 0:
            rows.append({"score": 0, "threshold": None})
        else:
            rows.append({"score": bp.score, "threshold": bp.threshold})
    return {
        "item": item.key,
        "name": item.name,
        "unit": item.unit,
        "direction": item.direction,
        "sex": sex,
        "grade": grade,
        "breakpoints": rows,
    }
