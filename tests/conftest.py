import os
import pathlib
import tempfile
from dataclasses import replace

import pytest


SCENARIO_CSV = (
    "date,project_name,amount,duration_hours\n"
    "2024-01-01,A,100,2\n"
    "2024-01-01,B,50,1\n"
    "2024-01-02,A,10,0\n"
)


def pytest_configure():
    if os.getenv("AUTOWEAVE_RUNTIME_DIR"):
        return
    temp_dir = tempfile.mkdtemp(prefix="autoweave-tests-")
    os.environ["AUTOWEAVE_RUNTIME_DIR"] = temp_dir


@pytest.fixture()
def scenario_csv() -> str:
    return SCENARIO_CSV


@pytest.fixture()
def scenario_records(scenario_csv):
    from autoweave.csv_table import parse_csv
    from autoweave.normalize import normalize_table

    records, _ = normalize_table(parse_csv(scenario_csv))
    return records


@pytest.fixture()
def settings(tmp_path: pathlib.Path):
    from autoweave.config import get_settings

    return replace(
        get_settings(),
        runtime_dir=tmp_path,
        token_file=tmp_path / "session.json",
        chart_width=800,
        chart_height=220,
        dpi=100,
        top_projects=6,
        stats_top_n=8,
        max_labels=10,
    )


@pytest.fixture()
def api_client(tmp_path, settings, monkeypatch):
    from fastapi.testclient import TestClient

    from autoweave import main

    analyses_dir = tmp_path / "analyses"
    analyses_dir.mkdir()
    monkeypatch.setattr(main, "ANALYSES_DIR", analyses_dir)
    monkeypatch.setattr(main, "SETTINGS", settings)
    return TestClient(main.app)
