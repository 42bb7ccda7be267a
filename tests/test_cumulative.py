from autoweave.aggregate import Bucket, aggregate
from autoweave.cumulative import cumulative


def test_running_totals_for_scenario(scenario_records):
    daily = aggregate(scenario_records, "day")

    running = cumulative(daily)

    last = running[-1]
    assert last.key == "2024-01-02"
    assert last.income["A"] == 110.0
    assert last.duration["A"] == 2.0
    assert last.project_ratio("A") == 55.0
    assert last.income["B"] == 50.0
    assert last.project_ratio("B") == 50.0


def test_running_totals_never_decrease(scenario_records):
    running = cumulative(aggregate(scenario_records, "day"))

    for earlier, later in zip(running, running[1:]):
        for project in earlier.projects:
            assert later.income[project] >= earlier.income[project]
            assert later.duration[project] >= earlier.duration[project]


def test_input_is_sorted_and_left_untouched():
    buckets = [
        Bucket("2024-01-02", income={"A": 5.0}, duration={"A": 1.0}),
        Bucket("2024-01-01", income={"A": 1.0}, duration={"A": 1.0}),
    ]

    running = cumulative(buckets)

    assert [b.key for b in running] == ["2024-01-01", "2024-01-02"]
    assert running[1].income == {"A": 6.0}
    assert buckets[0].income == {"A": 5.0}


def test_zero_duration_ratio_stays_zero():
    running = cumulative([Bucket("2024-01-01", income={"A": 100.0}, duration={"A": 0.0})])

    assert running[0].project_ratio("A") == 0.0
    assert running[0].ratio == 0.0


def test_explicit_project_list():
    buckets = [Bucket("2024-01-01", income={"A": 1.0, "B": 2.0}, duration={"A": 1.0, "B": 1.0})]

    running = cumulative(buckets, projects=["B"])

    assert running[0].income == {"B": 2.0}


def test_empty_input():
    assert cumulative([]) == []
