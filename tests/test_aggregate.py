import pytest

from autoweave.aggregate import Bucket, accumulate_raw, aggregate, regroup, safe_div
from autoweave.normalize import NormalizedRecord


def test_day_buckets_for_scenario(scenario_records):
    buckets = aggregate(scenario_records, "day")

    assert [b.key for b in buckets] == ["2024-01-01", "2024-01-02"]

    first, second = buckets
    assert first.income == {"A": 100.0, "B": 50.0}
    assert first.duration == {"A": 2.0, "B": 1.0}
    assert first.project_ratio("A") == 50.0
    assert first.project_ratio("B") == 50.0
    assert first.ratio == 50.0

    assert second.income == {"A": 10.0}
    assert second.duration == {"A": 0.0}
    assert second.project_ratio("A") == 0.0
    assert second.ratio == 0.0


@pytest.mark.parametrize("granularity", ["day", "week", "month", "year"])
def test_totals_are_conserved_across_granularities(scenario_records, granularity):
    buckets = aggregate(scenario_records, granularity)

    assert sum(b.total_income for b in buckets) == pytest.approx(160.0)
    assert sum(b.total_duration for b in buckets) == pytest.approx(3.0)


def test_week_regroup_spans_iso_weeks():
    records = [
        NormalizedRecord("2023-12-31", "A", 1.0, 1.0),  # Sunday, 2023-W52
        NormalizedRecord("2024-01-01", "A", 2.0, 1.0),  # Monday, 2024-W01
        NormalizedRecord("2024-01-07", "A", 3.0, 1.0),  # Sunday, 2024-W01
    ]

    buckets = aggregate(records, "week")

    assert [(b.key, b.total_income) for b in buckets] == [("2023-W52", 1.0), ("2024-W01", 5.0)]


def test_regroup_only_selected_dates(scenario_records):
    raw = accumulate_raw(scenario_records)

    buckets = regroup(raw, "month", ["2024-01-02", "2024-01-02", "1999-01-01"])

    assert len(buckets) == 1
    assert buckets[0].key == "2024-01"
    assert buckets[0].income == {"A": 10.0}


def test_unparseable_dates_keep_their_own_bucket():
    records = [
        NormalizedRecord("someday", "A", 5.0, 1.0),
        NormalizedRecord("2024-05-01", "A", 1.0, 1.0),
    ]

    buckets = aggregate(records, "year")

    assert [b.key for b in buckets] == ["2024", "someday"]


def test_empty_records_give_no_buckets():
    assert aggregate([], "day") == []


def test_keys_sort_in_plain_string_order():
    records = [
        NormalizedRecord("2024-05-01", "A", 1.0, 1.0),
        NormalizedRecord("(none)", "A", 1.0, 1.0),
        NormalizedRecord("someday", "A", 1.0, 1.0),
    ]

    assert [b.key for b in aggregate(records, "month")] == ["(none)", "2024-05", "someday"]


def test_safe_div_never_returns_inf_or_nan():
    assert safe_div(5.0, 0.0) == 0.0
    assert safe_div(float("nan"), 1.0) == 0.0
    assert safe_div(6.0, 3.0) == 2.0


def test_bucket_value_rejects_unknown_metric():
    with pytest.raises(ValueError):
        Bucket(key="2024-01-01").value("profit", "A")
