"""
Tests for core/composite.py — per-student composite records.
"""

import os
import sys
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.composite import (
    compute_composite,
    fixed_divisor_average,
    is_missing,
    item_detail,
)
from core.grading import InvalidArgument, Level
from core.standards import ITEM_KEYS

FULL_MALE = {
    "long_run": 220,
    "short_run": 7.3,
    "sit_and_reach": 15.0,
    "long_jump": 240,
    "vital_capacity": 3800,
    "sit_up_pull_up": 13,
}

PARTIAL_FEMALE = {
    "long_run": 230,
    "short_run": None,
    "sit_and_reach": 18.3,
    "long_jump": float("nan"),
    "vital_capacity": 2700,
}


class TestComputeComposite:
    """Tests for compute_composite."""

    def test_full_record(self):
        record = compute_composite(FULL_MALE, "male", 1, 2024)
        assert record.scores() == {
            "endurance_run": 90,
            "sprint_50m": 90,
            "sit_and_reach": 80,
            "standing_long_jump": 80,
            "vital_capacity": 80,
            "strength": 80,
        }
        assert record.total == 500
        assert record.average == round(500 / 6, 2)
        assert record.level == Level.GOOD
        assert record.year == 2024
        assert record.items_count == 6

    def test_missing_fields_score_zero_no_data(self):
        record = compute_composite(PARTIAL_FEMALE, "female", 3, 2024)
        for key in ("sprint_50m", "standing_long_jump", "strength"):
            assert record.items[key].score == 0
            assert record.items[key].level == Level.NO_DATA
        assert record.items_count == 3

    def test_partial_average_divides_by_six(self):
        record = compute_composite(PARTIAL_FEMALE, "female", 3, 2024)
        present = [record.score(k) for k in ("endurance_run", "sit_and_reach", "vital_capacity")]
        assert record.total == sum(present)
        assert record.average == round(sum(present) / 6, 2)

    def test_total_is_sum_of_items(self):
        record = compute_composite(PARTIAL_FEMALE, "female", 3, 2023)
        assert record.total == sum(record.scores().values())

    def test_empty_record(self):
        record = compute_composite({}, "male", 2, 2024)
        assert record.total == 0
        assert record.average == 0
        assert record.level == Level.FAIL
        assert record.items_count == 0
        assert all(r.level == Level.NO_DATA for r in record.items.values())

    def test_bad_measurement_isolated_as_calc_error(self):
        raw = dict(FULL_MALE, long_jump=-10, short_run="fast")
        record = compute_composite(raw, "male", 1, 2024)
        assert record.items["standing_long_jump"].level == Level.CALC_ERROR
        assert record.items["sprint_50m"].level == Level.CALC_ERROR
        assert record.items["standing_long_jump"].score == 0
        assert record.items["endurance_run"].score == 90
        assert record.items_count == 4

    def test_deterministic(self):
        a = compute_composite(FULL_MALE, "male", 1, 2024)
        b = compute_composite(dict(FULL_MALE), "male", 1, 2024)
        assert a == b

    def test_invalid_sex_raises(self):
        with pytest.raises(InvalidArgument):
            compute_composite(FULL_MALE, "M", 1, 2024)

    def test_invalid_grade_raises(self):
        with pytest.raises(InvalidArgument):
            compute_composite(FULL_MALE, "male", 7, 2024)

    def test_to_dict_is_plain(self):
        data = compute_composite(FULL_MALE, "male", 1, 2024).to_dict()
        assert data["level"] == "good"
        assert set(data["items"]) == set(ITEM_KEYS)
        assert data["items"]["endurance_run"] == {"score": 90, "level": "excellent"}


class TestHelpers:
    """Tests for is_missing, fixed_divisor_average and item_detail."""

    @pytest.mark.parametrize("value,missing", [(None, True), (float("nan"), True), (0, False), (12.5, False), ("x", False)])
    def test_is_missing(self, value, missing):
        assert is_missing(value) is missing

    def test_fixed_divisor_average(self):
        assert fixed_divisor_average([90, 80, 70]) == 40.0

    def test_item_detail(self):
        record = compute_composite(FULL_MALE, "male", 1, 2024)
        detail = item_detail(record, FULL_MALE, "endurance_run")
        assert detail["score"] == 90
        assert detail["level"] == "excellent"
        assert detail["raw_value"] == 220
        assert detail["unit"] == "s"

    def test_item_detail_missing_raw(self):
        record = compute_composite(PARTIAL_FEMALE, "female", 3, 2024)
        detail = item_detail(record, PARTIAL_FEMALE, "standing_long_jump")
        assert detail["raw_value"] is None
        assert detail["level"] == "no data"
