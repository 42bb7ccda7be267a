"""
range_filter.py — Chart view state and the date-range filter.

ChartState is what the controls edit: range mode (trailing window, custom
interval, or everything), granularity and the cumulative toggle. Filtering
is a pure function of (raw dates, state).
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, replace
from datetime import date, timedelta
from typing import Iterable

from .calendar import GRANULARITIES, parse_day
from .normalize import normalize_date

logger = logging.getLogger(__name__)

RANGE_MODES   = ("lastN", "custom", "all")
DEFAULT_DAYS  = 30
RANGE_PRESETS = {
    "last-14": ("lastN", 14),
    "last-30": ("lastN", 30),
    "last-90": ("lastN", 90),
    "all":     ("all", None),
    "custom":  ("custom", None),
}


@dataclass(frozen=True)
class ChartState:
    range_mode:  str  = "all"
    days:        int  = DEFAULT_DAYS
    custom_from: str  = ""
    custom_to:   str  = ""
    granularity: str  = "day"
    cumulative:  bool = False

    def __post_init__(self):
        if self.range_mode not in RANGE_MODES:
            raise ValueError(f"Unknown range mode: {self.range_mode!r}")
        if self.granularity not in GRANULARITIES:
            raise ValueError(f"Unknown granularity: {self.granularity!r}")
        if int(self.days) < 1:
            object.__setattr__(self, "days", 1)

    @classmethod
    def from_preset(cls, preset: str, **overrides) -> "ChartState":
        if preset not in RANGE_PRESETS:
            raise ValueError(f"Unknown range preset: {preset!r}")
        mode, days = RANGE_PRESETS[preset]
        values = {"range_mode": mode}
        if days is not None:
            values["days"] = days
        values.update(overrides)
        return cls(**values)

    def update(self, **changes) -> "ChartState":
        return replace(self, **changes)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["range"] = data.pop("range_mode")
        return data


def parse_bound(value: str | None) -> date | None:
    """Custom range bound as a date, read the same way record dates are; None if unreadable."""
    return parse_day(normalize_date(str(value or "")))


def filter_dates(raw_dates: Iterable[str], state: ChartState) -> list[str]:
    """
    Restrict raw dates to the range in `state`, preserving input order.

      all    → unchanged
      lastN  → dates within N days of the latest date in `raw_dates`
               (the full, unfiltered set, so the anchor does not drift)
      custom → inclusive [min(from, to), max(from, to)]; unparseable bounds
               fall back to the unfiltered set
    """
    dates = list(raw_dates)

    if state.range_mode == "all":
        return dates

    if state.range_mode == "lastN":
        parsed = [(d, parse_day(d)) for d in dates]
        known  = [day for _, day in parsed if day is not None]
        if not known:
            return dates
        start = max(known) - timedelta(days=max(1, int(state.days)) - 1)
        return [d for d, day in parsed if day is not None and day >= start]

    low, high = parse_bound(state.custom_from), parse_bound(state.custom_to)
    if low is None or high is None:
        logger.warning(
            "Ignoring custom range with invalid bounds: from=%r to=%r",
            state.custom_from, state.custom_to,
        )
        return dates
    if low > high:
        low, high = high, low
    parsed = [(d, parse_day(d)) for d in dates]
    return [d for d, day in parsed if day is not None and low <= day <= high]
