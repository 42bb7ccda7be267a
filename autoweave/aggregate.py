"""
aggregate.py — Group normalized records into per-date, per-project buckets.

Aggregation runs in two passes:
    1. accumulate_raw()  one Bucket per exact date string
    2. regroup()         fold raw dates into day / week / month / year keys

Range filters act on the raw dates, so changing the range or granularity
only re-folds the (small) raw series instead of re-scanning every record.

Ratios (income per hour) are always derived from the summed income and
duration, never stored; a zero duration gives a ratio of 0.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterable

from .calendar import bucket_key
from .normalize import NormalizedRecord

METRICS = ("income", "duration", "ratio")


def safe_div(numerator: float, denominator: float) -> float:
    if not math.isfinite(numerator) or not math.isfinite(denominator) or denominator == 0:
        return 0.0
    return numerator / denominator


@dataclass
class Bucket:
    key:      str
    income:   dict[str, float] = field(default_factory=dict)
    duration: dict[str, float] = field(default_factory=dict)

    @property
    def projects(self) -> list[str]:
        return list(dict.fromkeys([*self.income, *self.duration]))

    @property
    def total_income(self) -> float:
        return sum(self.income.values())

    @property
    def total_duration(self) -> float:
        return sum(self.duration.values())

    @property
    def ratio(self) -> float:
        return safe_div(self.total_income, self.total_duration)

    def project_ratio(self, project: str) -> float:
        return safe_div(self.income.get(project, 0.0), self.duration.get(project, 0.0))

    def value(self, metric: str, project: str) -> float:
        if metric == "income":
            return self.income.get(project, 0.0)
        if metric == "duration":
            return self.duration.get(project, 0.0)
        if metric == "ratio":
            return self.project_ratio(project)
        raise ValueError(f"Unknown metric: {metric!r}")

    def add(self, project: str, income: float, duration: float) -> None:
        self.income[project]   = self.income.get(project, 0.0) + income
        self.duration[project] = self.duration.get(project, 0.0) + duration

    def to_dict(self) -> dict:
        return {
            "key":            self.key,
            "income":         {p: round(v, 6) for p, v in self.income.items()},
            "duration":       {p: round(v, 6) for p, v in self.duration.items()},
            "ratio":          {p: round(self.project_ratio(p), 6) for p in self.projects},
            "total_income":   round(self.total_income, 6),
            "total_duration": round(self.total_duration, 6),
            "total_ratio":    round(self.ratio, 6),
        }


RawSeries = dict[str, Bucket]


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------

def accumulate_raw(records: Iterable[NormalizedRecord]) -> RawSeries:
    """Sum income and duration per exact date, per project."""
    raw: RawSeries = {}
    for record in records:
        bucket = raw.get(record.date)
        if bucket is None:
            bucket = raw[record.date] = Bucket(key=record.date)
        bucket.add(record.project, record.income, record.duration)
    return raw


def regroup(raw: RawSeries, granularity: str, dates: Iterable[str] | None = None) -> list[Bucket]:
    """
    Fold raw dates (all of them, or only `dates`) into buckets of the given
    granularity. Returned buckets are sorted ascending by key.
    """
    selected = raw.keys() if dates is None else [d for d in dict.fromkeys(dates) if d in raw]

    grouped: dict[str, Bucket] = {}
    for raw_date in selected:
        source = raw[raw_date]
        key    = bucket_key(raw_date, granularity)
        target = grouped.get(key)
        if target is None:
            target = grouped[key] = Bucket(key=key)
        for project in source.projects:
            target.add(
                project,
                source.income.get(project, 0.0),
                source.duration.get(project, 0.0),
            )

    return [grouped[key] for key in sorted(grouped)]


def aggregate(records: Iterable[NormalizedRecord], granularity: str) -> list[Bucket]:
    return regroup(accumulate_raw(records), granularity)

