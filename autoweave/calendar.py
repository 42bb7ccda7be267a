from __future__ import annotations

import re
from datetime import date

DATE_DAY_RE   = re.compile(r"^\d{4}-\d{2}-\d{2}$")
GRANULARITIES = ("day", "week", "month", "year")


def parse_day(value: str | None) -> date | None:
    """Return the date for an ISO `YYYY-MM-DD` string, None for anything else."""
    if not value or not DATE_DAY_RE.match(value):
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def week_key(day: date) -> str:
    # ISO-8601: weeks start Monday, week 1 holds the year's first Thursday.
    iso_year, iso_week, _ = day.isocalendar()
    return f"{iso_year:04d}-W{iso_week:02d}"


def bucket_key(value: str, granularity: str) -> str:
    """
    Map a normalized date string to its bucket key.

    day: YYYY-MM-DD, week: GGGG-Www, month: YYYY-MM, year: YYYY.
    Strings that are not ISO dates are their own key at every granularity.
    """
    if granularity not in GRANULARITIES:
        raise ValueError(f"Unknown granularity: {granularity!r}")

    day = parse_day(value)
    if day is None:
        return value
    if granularity == "day":
        return day.isoformat()
    if granularity == "week":
        return week_key(day)
    if granularity == "month":
        return f"{day.year:04d}-{day.month:02d}"
    return f"{day.year:04d}"
