"""
stats.py — Quick statistics over the normalized dataset.

Row count, totals, overall hourly rate and per-project leaderboards for
income, time and rate. Totals cover every project, including the ones the
charts fold into "+N more".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from .aggregate import safe_div
from .normalize import IncomeAccessor, NormalizedRecord

DEFAULT_TOP_N = 8


@dataclass
class ProjectStat:
    name:     str
    income:   float = 0.0
    duration: float = 0.0

    @property
    def ratio(self) -> float:
        return safe_div(self.income, self.duration)

    def to_dict(self) -> dict:
        return {
            "name":     self.name,
            "income":   round(self.income, 2),
            "duration": round(self.duration, 2),
            "ratio":    round(self.ratio, 2),
        }


@dataclass
class QuickStats:
    row_count:      int
    total_income:   float
    total_duration: float
    income_label:   str
    projects:       list[ProjectStat] = field(default_factory=list)
    top_n:          int = DEFAULT_TOP_N

    @property
    def overall_ratio(self) -> float:
        return safe_div(self.total_income, self.total_duration)

    @property
    def by_income(self) -> list[ProjectStat]:
        return sorted(self.projects, key=lambda p: p.income, reverse=True)[: self.top_n]

    @property
    def by_duration(self) -> list[ProjectStat]:
        return sorted(self.projects, key=lambda p: p.duration, reverse=True)[: self.top_n]

    @property
    def by_ratio(self) -> list[ProjectStat]:
        return sorted(self.projects, key=lambda p: p.ratio, reverse=True)[: self.top_n]

    def top_projects(self, limit: int) -> tuple[list[str], int]:
        """Names of the `limit` highest-income projects and how many were left out."""
        ranked = sorted(self.projects, key=lambda p: p.income, reverse=True)
        shown  = [p.name for p in ranked[:limit]]
        return shown, max(0, len(ranked) - len(shown))

    def to_dict(self) -> dict:
        return {
            "row_count":      self.row_count,
            "total_income":   round(self.total_income, 2),
            "total_duration": round(self.total_duration, 2),
            "overall_ratio":  round(self.overall_ratio, 2),
            "income_label":   self.income_label,
            "project_count":  len(self.projects),
            "by_income":      [p.to_dict() for p in self.by_income],
            "by_duration":    [p.to_dict() for p in self.by_duration],
            "by_ratio":       [p.to_dict() for p in self.by_ratio],
        }


def compute_stats(
    records: Iterable[NormalizedRecord],
    accessor: IncomeAccessor,
    top_n: int = DEFAULT_TOP_N,
) -> QuickStats:
    by_project: dict[str, ProjectStat] = {}
    row_count      = 0
    total_income   = 0.0
    total_duration = 0.0

    for record in records:
        row_count      += 1
        total_income   += record.income
        total_duration += record.duration

        stat = by_project.get(record.project)
        if stat is None:
            stat = by_project[record.project] = ProjectStat(name=record.project)
        stat.income   += record.income
        stat.duration += record.duration

    return QuickStats(
        row_count=row_count,
        total_income=total_income,
        total_duration=total_duration,
        income_label=accessor.label,
        projects=list(by_project.values()),
        top_n=top_n,
    )
