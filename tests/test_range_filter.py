import logging

import pytest

from autoweave.range_filter import ChartState, filter_dates

DATES = ["2024-01-01", "2024-01-10", "2024-01-31", "bad-date"]


def test_all_is_identity():
    assert filter_dates(DATES, ChartState(range_mode="all")) == DATES


def test_last_n_is_anchored_on_latest_date():
    state = ChartState(range_mode="lastN", days=30)

    # 2024-01-31 minus 29 days is 2024-01-02
    assert filter_dates(DATES, state) == ["2024-01-10", "2024-01-31"]


def test_last_n_single_day_keeps_only_latest():
    assert filter_dates(DATES, ChartState(range_mode="lastN", days=1)) == ["2024-01-31"]


def test_last_n_without_parseable_dates_is_identity():
    dates = ["foo", "bar"]
    assert filter_dates(dates, ChartState(range_mode="lastN", days=7)) == dates


def test_custom_range_is_inclusive():
    state = ChartState(range_mode="custom", custom_from="2024-01-10", custom_to="2024-01-31")

    assert filter_dates(DATES, state) == ["2024-01-10", "2024-01-31"]


def test_custom_range_with_reversed_bounds():
    forward = ChartState(range_mode="custom", custom_from="2024-01-05", custom_to="2024-01-31")
    backward = ChartState(range_mode="custom", custom_from="2024-01-31", custom_to="2024-01-05")

    assert filter_dates(DATES, backward) == filter_dates(DATES, forward) == ["2024-01-10", "2024-01-31"]


def test_custom_range_with_invalid_bounds_shows_everything(caplog):
    state = ChartState(range_mode="custom", custom_from="nope", custom_to="2024-01-05")

    with caplog.at_level(logging.WARNING):
        assert filter_dates(DATES, state) == DATES
    assert "invalid bounds" in caplog.text


def test_chart_state_validation():
    with pytest.raises(ValueError):
        ChartState(range_mode="forever")
    with pytest.raises(ValueError):
        ChartState(granularity="hour")
    assert ChartState(range_mode="lastN", days=0).days == 1


def test_presets_and_updates():
    state = ChartState.from_preset("last-14", granularity="week")

    assert (state.range_mode, state.days, state.granularity) == ("lastN", 14, "week")
    assert state.update(cumulative=True).cumulative is True
    assert state.cumulative is False
    assert state.to_dict()["range"] == "lastN"

    with pytest.raises(ValueError):
        ChartState.from_preset("last-7")


def test_custom_bounds_accept_the_same_formats_as_record_dates():
    state = ChartState(range_mode="custom", custom_from="2024-1-5", custom_to="2024/01/31")

    assert filter_dates(DATES, state) == ["2024-01-10", "2024-01-31"]
