import pandas as pd
import pytest

from autoweave.calendar import bucket_key
from autoweave.csv_table import parse_csv
from autoweave.normalize import (
    UNKNOWN_PROJECT,
    IncomeAccessor,
    coerce_numeric,
    normalize_date,
    normalize_table,
)


@pytest.mark.parametrize(
    "value, granularity, expected",
    [
        ("2024-03-15", "day", "2024-03-15"),
        ("2024-01-01", "week", "2024-W01"),
        ("2021-01-01", "week", "2020-W53"),
        ("2024-12-30", "week", "2025-W01"),
        ("2024-03-15", "month", "2024-03"),
        ("2024-03-15", "year", "2024"),
        ("not-a-date", "week", "not-a-date"),
    ],
)
def test_bucket_key(value, granularity, expected):
    assert bucket_key(value, granularity) == expected


def test_bucket_key_rejects_unknown_granularity():
    with pytest.raises(ValueError):
        bucket_key("2024-01-01", "quarter")


def test_coerce_numeric_maps_bad_cells_to_zero():
    cells = pd.Series(["12.5", " 3 ", "1e3", "", None, "abc", "inf", "-inf", "1e400", "nan"])

    assert coerce_numeric(cells).tolist() == [12.5, 3.0, 1000.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0]


def test_income_accessor_reads_its_column_or_zero():
    frame = parse_csv("amount,amount_gbp\n10,\nx,7\n").to_frame()

    assert IncomeAccessor("amount", "amount").column_values(frame).tolist() == [10.0, 0.0]
    assert IncomeAccessor("amount_gbp", "GBP").column_values(frame).tolist() == [0.0, 7.0]
    assert IncomeAccessor("missing", "amount").column_values(frame).tolist() == [0.0, 0.0]


def test_normalize_date_formats():
    assert normalize_date("2024-01-05") == "2024-01-05"
    assert normalize_date(" 2024-01-05 ") == "2024-01-05"
    assert normalize_date("2024/03/05") == "2024-03-05"
    assert normalize_date("20240305") == "2024-03-05"
    assert normalize_date("12345") == "12345"
    assert normalize_date("sometime soon") == "sometime soon"
    assert normalize_date("") == ""


def test_aliases_and_unknown_project():
    table = parse_csv(
        "Date,client,hours,amount\n"
        "2024-02-01,Acme,1.5,30\n"
        "2024-02-02,,2,x\n"
    )

    records, accessor = normalize_table(table)

    assert accessor.column == "amount"
    assert accessor.label == "amount"
    assert [(r.date, r.project, r.income, r.duration) for r in records] == [
        ("2024-02-01", "Acme", 30.0, 1.5),
        ("2024-02-02", UNKNOWN_PROJECT, 0.0, 2.0),
    ]


def test_first_alias_with_a_value_wins():
    table = parse_csv(
        "project_name,project,date,duration_hours,hours,amount\n"
        ",Fallback,2024-01-01,,4,1\n"
        "Primary,Other,2024-01-01,2,9,1\n"
    )

    records, _ = normalize_table(table)

    assert [r.project for r in records] == ["Fallback", "Primary"]
    assert [r.duration for r in records] == [4.0, 2.0]


def test_gbp_column_is_chosen_for_the_whole_dataset():
    table = parse_csv(
        "date,project_name,amount,amount_gbp,duration_hours\n"
        "2024-01-01,A,100,80,1\n"
        "2024-01-02,A,100,,1\n"
    )

    records, accessor = normalize_table(table)

    assert accessor.column == "amount_gbp"
    assert accessor.label == "GBP"
    assert [r.income for r in records] == [80.0, 0.0]


def test_empty_table_normalizes_to_nothing():
    records, accessor = normalize_table(parse_csv(""))

    assert records == []
    assert accessor.column == "amount"
