import pytest

from autoweave.csv_table import parse_csv
from autoweave.normalize import normalize_table
from autoweave.stats import compute_stats


def test_quick_stats_for_scenario(scenario_csv):
    records, accessor = normalize_table(parse_csv(scenario_csv))

    stats = compute_stats(records, accessor)

    assert stats.row_count == 3
    assert stats.total_income == 160.0
    assert stats.total_duration == 3.0
    assert stats.overall_ratio == pytest.approx(160.0 / 3.0)
    assert stats.income_label == "amount"
    assert [p.name for p in stats.by_income] == ["A", "B"]
    assert [p.name for p in stats.by_duration] == ["A", "B"]
    assert [p.ratio for p in stats.by_ratio] == [55.0, 50.0]


def test_top_projects_reports_hidden_count():
    rows = "\n".join(f"2024-01-01,P{i},{i},1" for i in range(1, 11))
    records, accessor = normalize_table(parse_csv("date,project_name,amount,duration_hours\n" + rows))

    stats = compute_stats(records, accessor, top_n=8)
    shown, hidden = stats.top_projects(6)

    assert shown == ["P10", "P9", "P8", "P7", "P6", "P5"]
    assert hidden == 4
    assert len(stats.by_income) == 8
    assert stats.to_dict()["project_count"] == 10


def test_empty_dataset_has_zero_stats():
    records, accessor = normalize_table(parse_csv(""))

    stats = compute_stats(records, accessor)

    assert stats.row_count == 0
    assert stats.overall_ratio == 0.0
    assert stats.top_projects(6) == ([], 0)
    assert stats.to_dict()["by_income"] == []
