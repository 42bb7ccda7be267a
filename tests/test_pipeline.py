import json

import pytest

from autoweave.pipeline import AnalysisError, decode_csv, load_dashboard, run_analysis, run_report
from autoweave.range_filter import ChartState


def test_run_analysis_writes_artifacts(tmp_path, settings, scenario_csv):
    run_dir = tmp_path / "run"

    result = run_analysis(
        scenario_csv.encode("utf-8"),
        run_dir,
        state=ChartState(granularity="week"),
        source_file="merged.csv",
        settings=settings,
    )

    assert (run_dir / "tmp" / "merged.csv").read_text(encoding="utf-8") == scenario_csv
    assert set(result.charts) == {"income", "duration", "ratio"}
    assert all(path.exists() for path in result.charts.values())
    assert result.export_path.exists()

    manifest = json.loads((run_dir / "tmp" / "charts_manifest.json").read_text(encoding="utf-8"))
    assert manifest["source_file"] == "merged.csv"
    assert [b["key"] for b in manifest["buckets"]] == ["2024-W01"]
    assert manifest["state"]["granularity"] == "week"

    stats = json.loads((run_dir / "tmp" / "stats.json").read_text(encoding="utf-8"))
    assert stats["row_count"] == 3


def test_stored_analysis_can_be_reloaded_and_reported(tmp_path, settings, scenario_csv):
    run_dir = tmp_path / "run"
    run_analysis(scenario_csv, run_dir, state=ChartState(cumulative=True), settings=settings)

    dashboard = load_dashboard(run_dir, settings=settings)
    report = run_report(run_dir, settings=settings)

    assert dashboard.state.cumulative is True
    assert dashboard.view().buckets[-1].income["A"] == 110.0
    assert report.read_bytes()[:4] == b"%PDF"


def test_missing_analysis_raises(tmp_path, settings):
    with pytest.raises(AnalysisError):
        load_dashboard(tmp_path / "nothing", settings=settings)
    with pytest.raises(AnalysisError):
        run_report(tmp_path / "nothing", settings=settings)


def test_decode_csv_handles_bom_and_latin1():
    assert decode_csv("\ufeffdate\n".encode("utf-8")) == "date\n"
    assert decode_csv("Caf\xe9\n".encode("latin-1")) == "Café\n"
