"""
provider.py — Data provider: the four read operations the engine needs.

DataProvider is the contract; DataFrameProvider serves it from an in-memory
pandas DataFrame with one row per student-year (student_id, name, sex, grade,
year and the six measurement columns). Column names are matched
case-insensitively against common aliases and sex labels are normalised.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Union

import pandas as pd

from core.composite import is_missing
from core.standards import ITEM_FIELDS

logger = logging.getLogger(__name__)


class DataProvider(Protocol):
    async def fetch_available_years(self, grade_id: int) -> List[int]: ...

    async def fetch_student_available_years(self, student_id: str) -> List[int]: ...

    async def fetch_page(self, grade_id: int, year: int, page: int, page_size: int) -> Dict[str, Any]: ...

    async def fetch_student_by_id(self, student_id: str, year: int) -> Optional[Dict[str, Any]]: ...


# ── Column and value normalisation ──────────────────────────────────

COLUMN_ALIASES: Dict[str, List[str]] = {
    "student_id": ["student_id", "stu_id", "studentid", "id", "adm_no", "admission_no"],
    "name": ["name", "student_name", "full_name", "student"],
    "sex": ["sex", "gender"],
    "grade": ["grade", "grade_id", "class", "form"],
    "year": ["year", "test_year", "school_year"],
    "long_run": ["long_run", "endurance_run", "run_1000m", "run_800m"],
    "short_run": ["short_run", "sprint_50m", "run_50m", "sprint"],
    "sit_and_reach": ["sit_and_reach", "sit_reach", "flexibility"],
    "long_jump": ["long_jump", "standing_long_jump", "jump"],
    "vital_capacity": ["vital_capacity", "lung_capacity", "vc"],
    "sit_up_pull_up": ["sit_up_pull_up", "strength", "pull_up", "sit_up", "pull_ups", "sit_ups"],
}

REQUIRED_COLUMNS = ("student_id", "grade", "year")

SEX_MAP = {
    "m": "male", "male": "male", "boy": "male", "b": "male", "man": "male",
    "f": "female", "female": "female", "girl": "female", "g": "female", "woman": "female",
}


def standardize_sex(value: Any) -> Optional[str]:
    """Map sex label variants to 'male'/'female'; None when unrecognised."""
    if value is None or pd.isna(value):
        return None
    return SEX_MAP.get(str(value).strip().lower())


def _find_col(df: pd.DataFrame, aliases: List[str]) -> Optional[str]:
    """Find the first column matching any alias (case-insensitive, spaces as underscores)."""
    cols_lower = {str(c).lower().strip().replace(" ", "_"): c for c in df.columns}
    for a in aliases:
        if a.lower() in cols_lower:
            return cols_lower[a.lower()]
    return None


def normalize_frame(raw: pd.DataFrame) -> pd.DataFrame:
    """Rename aliased columns, coerce types and drop rows without grade/year."""
    rename = {}
    for canonical, aliases in COLUMN_ALIASES.items():
        col = _find_col(raw, aliases)
        if col is not None:
            rename[col] = canonical
    df = raw.rename(columns=rename)

    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"Missing required columns: {', '.join(missing)}")

    df = df[[c for c in COLUMN_ALIASES if c in df.columns]].copy()
    if "name" not in df.columns:
        df["name"] = ""
    if "sex" not in df.columns:
        df["sex"] = None
    for field in ITEM_FIELDS:
        df[field] = pd.to_numeric(df[field], errors="coerce") if field in df.columns else float("nan")

    df["student_id"] = df["student_id"].astype(str).str.strip()
    df["name"] = df["name"].fillna("").astype(str).str.strip()
    df["sex"] = df["sex"].map(standardize_sex)
    df["grade"] = pd.to_numeric(df["grade"], errors="coerce")
    df["year"] = pd.to_numeric(df["year"], errors="coerce")

    before = len(df)
    df = df.dropna(subset=["grade", "year"])
    if len(df) < before:
        logger.warning("Dropped %d rows without a usable grade or year", before - len(df))
    df["grade"] = df["grade"].astype(int)
    df["year"] = df["year"].astype(int)
    return df.reset_index(drop=True)


def _to_record(row: pd.Series) -> Dict[str, Any]:
    record = {
        "student_id": row["student_id"],
        "name": row["name"],
        "sex": row["sex"] if isinstance(row["sex"], str) else None,
        "grade": int(row["grade"]),
        "year": int(row["year"]),
    }
    for field in ITEM_FIELDS:
        value = row[field]
        record[field] = None if is_missing(value) else float(value)
    return record


# ── DataFrame provider ──────────────────────────────────────────────

class DataFrameProvider:
    """Serves student-year rows from an in-memory DataFrame."""

    def __init__(self, df: Optional[pd.DataFrame] = None) -> None:
        if df is None or df.empty:
            df = pd.DataFrame(columns=list(COLUMN_ALIASES))
        self.df = normalize_frame(df)
        logger.info("Data provider loaded %d student-year rows", len(self.df))

    @classmethod
    def from_csv(cls, path: Union[str, Path]) -> "DataFrameProvider":
        return cls(pd.read_csv(path))

    async def fetch_available_years(self, grade_id: int) -> List[int]:
        years = self.df.loc[self.df["grade"] == grade_id, "year"].unique()
        return sorted(int(y) for y in years)

    async def fetch_student_available_years(self, student_id: str) -> List[int]:
        years = self.df.loc[self.df["student_id"] == str(student_id), "year"].unique()
        return sorted(int(y) for y in years)

    async def fetch_page(self, grade_id: int, year: int, page: int, page_size: int) -> Dict[str, Any]:
        """1-based page of the grade-year's rows plus the grade-year total."""
        if page < 1 or page_size < 1:
            raise ValueError(f"page and page_size must be positive, got {page}/{page_size}")
        rows = self.df[(self.df["grade"] == grade_id) & (self.df["year"] == year)]
        start = (page - 1) * page_size
        chunk = rows.iloc[start:start + page_size]
        return {
            "data": [_to_record(row) for _, row in chunk.iterrows()],
            "total": len(rows),
        }

    async def fetch_student_by_id(self, student_id: str, year: int) -> Optional[Dict[str, Any]]:
        rows = self.df[(self.df["student_id"] == str(student_id)) & (self.df["year"] == year)]
        if rows.empty:
            return None
        return _to_record(rows.iloc[0])
