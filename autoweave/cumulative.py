from __future__ import annotations

from typing import Iterable

from .aggregate import Bucket


def cumulative(buckets: Iterable[Bucket], projects: Iterable[str] | None = None) -> list[Bucket]:
    """
    Running totals across buckets, in key order.

    Each project's income and duration at bucket i is the sum over buckets
    <= i. The ratio is not accumulated: Bucket derives it from the running
    sums, so it reads as the overall rate to date rather than a sum of
    per-bucket rates.
    """
    ordered = sorted(buckets, key=lambda b: b.key)
    if projects is None:
        names = list(dict.fromkeys(p for b in ordered for p in b.projects))
    else:
        names = list(projects)

    running_income   = {p: 0.0 for p in names}
    running_duration = {p: 0.0 for p in names}
    out: list[Bucket] = []

    for bucket in ordered:
        for project in names:
            running_income[project]   += bucket.income.get(project, 0.0)
            running_duration[project] += bucket.duration.get(project, 0.0)
        out.append(Bucket(
            key=bucket.key,
            income=dict(running_income),
            duration=dict(running_duration),
        ))

    return out
