"""
normalize.py — Map heterogeneous merged-CSV columns onto canonical records.

Every raw row becomes a NormalizedRecord {date, project, income, duration}.
Column names vary between exports, so each field is resolved from a list of
known aliases (first non-empty value wins).

Income is special: the column is chosen once for the whole dataset. If any
row carries a value in `amount_gbp`, that column is used for every row,
including rows where it is empty (they count as 0). Otherwise `amount` is
used. Falling back per row would silently change totals, so it is not done.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable

import numpy as np
import pandas as pd

from .calendar import parse_day
from .csv_table import CsvTable

logger = logging.getLogger(__name__)

UNKNOWN_PROJECT  = "(unknown)"
PROJECT_ALIASES  = ("project_name", "project", "Project", "client")
DATE_ALIASES     = ("date", "Date", "day", "start_date")
DURATION_ALIASES = ("duration_hours", "hours", "duration")
PRIMARY_INCOME   = "amount"
SECONDARY_INCOME = "amount_gbp"


@dataclass(frozen=True)
class NormalizedRecord:
    date:     str
    project:  str
    income:   float
    duration: float


@dataclass(frozen=True)
class IncomeAccessor:
    column: str
    label:  str

    def column_values(self, frame: pd.DataFrame) -> pd.Series:
        """Income per row; a missing column reads as 0 everywhere."""
        if self.column not in frame.columns:
            return pd.Series(0.0, index=frame.index)
        return coerce_numeric(frame[self.column])


# ---------------------------------------------------------------------------
# Coercion
# ---------------------------------------------------------------------------

def coerce_numeric(series: pd.Series) -> pd.Series:
    numbers = pd.to_numeric(series.fillna("").astype(str).str.strip(), errors="coerce")
    return numbers.replace([np.inf, -np.inf], np.nan).fillna(0.0).astype(float)


@lru_cache(maxsize=4096)
def normalize_date(raw: str) -> str:
    """
    ISO `YYYY-MM-DD` for anything pandas can read as a date; the trimmed raw
    string otherwise, so unparseable dates still group under a stable key.
    """
    text = raw.strip()
    if not text or parse_day(text):
        return text
    # Bare numbers other than YYYYMMDD are ids or years, not days.
    if text.isdigit() and len(text) != 8:
        return text
    try:
        parsed = pd.to_datetime(text, errors="coerce")
    except (ValueError, TypeError, OverflowError):
        return text
    if pd.isna(parsed):
        return text
    return parsed.strftime("%Y-%m-%d")


# ---------------------------------------------------------------------------
# Column resolution
# ---------------------------------------------------------------------------

def choose_income_accessor(rows: Iterable[dict]) -> IncomeAccessor:
    any_secondary = any(str(r.get(SECONDARY_INCOME) or "").strip() for r in rows)
    if any_secondary:
        return IncomeAccessor(column=SECONDARY_INCOME, label="GBP")
    return IncomeAccessor(column=PRIMARY_INCOME, label="amount")


def first_non_empty(frame: pd.DataFrame, aliases: tuple[str, ...]) -> pd.Series:
    out = pd.Series("", index=frame.index, dtype=object)
    for alias in aliases:
        if alias not in frame.columns:
            continue
        column = frame[alias].fillna("").astype(str).str.strip()
        out = out.where(out != "", column)
    return out


def normalize_table(table: CsvTable) -> tuple[list[NormalizedRecord], IncomeAccessor]:
    """Normalize every row of `table`. Pure; never raises on bad cells."""
    accessor = choose_income_accessor(table.rows)
    if table.empty:
        return [], accessor

    frame = table.to_frame()

    projects = first_non_empty(frame, PROJECT_ALIASES).replace("", UNKNOWN_PROJECT)
    dates    = first_non_empty(frame, DATE_ALIASES).map(normalize_date)

    incomes   = accessor.column_values(frame)
    durations = coerce_numeric(first_non_empty(frame, DURATION_ALIASES))

    records = [
        NormalizedRecord(date=d, project=p, income=float(i), duration=float(h))
        for d, p, i, h in zip(dates, projects, incomes, durations)
    ]

    logger.debug(
        "Normalized %d rows | income column=%s | projects=%d",
        len(records), accessor.column, projects.nunique(),
    )
    return records, accessor
