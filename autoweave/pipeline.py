"""
pipeline.py — Run one analysis of a merged CSV and persist its artifacts.

Sequence:
    1. read + decode the merged CSV        → tmp/merged.csv
    2. parse, normalize, quick statistics   → tmp/stats.json
    3. aggregate + lay out the three charts → output/charts/chart_<id>.png
    4. composite export                     → output/export.png
    5. manifest                             → tmp/charts_manifest.json

Directory layout:
    run_dir/
      tmp/
        merged.csv
        state.json
        stats.json
        charts_manifest.json
      output/
        charts/
          chart_income.png
          chart_duration.png
          chart_ratio.png
        export.png
        report.pdf            (on demand, run_report)
        analysis_result.json  (written by main.py after this returns)
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from .config import Settings, get_settings
from .dashboard import CHARTS, Dashboard
from .export import build_report, describe_state
from .range_filter import ChartState
from .render import save_surface
from .stats import QuickStats

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".csv"}
REPORT_FILENAME    = "report.pdf"
EXPORT_FILENAME    = "export.png"
MANIFEST_FILENAME  = "charts_manifest.json"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class AnalysisError(RuntimeError):
    pass


# ---------------------------------------------------------------------------
# Result dataclass
# ---------------------------------------------------------------------------

@dataclass
class AnalysisResult:
    stats:           QuickStats
    state:           ChartState
    charts:          dict[str, Path]          # chart_id → PNG path
    export_path:     Path
    charts_manifest: dict
    dashboard:       Dashboard


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def decode_csv(data: bytes) -> str:
    # Try utf-8 first, fall back to latin-1 for accented project names
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        return data.decode("latin-1")


def _write_json(path: Path, payload) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, default=str)


def _load_json(path: Path) -> dict:
    try:
        with path.open("r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError as exc:
        raise AnalysisError(f"Expected output file missing: {path}") from exc
    except json.JSONDecodeError as exc:
        raise AnalysisError(f"Output file is not valid JSON: {path}") from exc


def state_from_dict(data: dict) -> ChartState:
    try:
        return ChartState(
            range_mode=data.get("range", "all"),
            days=int(data.get("days", 30)),
            custom_from=data.get("custom_from", "") or "",
            custom_to=data.get("custom_to", "") or "",
            granularity=data.get("granularity", "day"),
            cumulative=bool(data.get("cumulative", False)),
        )
    except (TypeError, ValueError) as exc:
        raise AnalysisError(f"Invalid chart state: {exc}") from exc


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def load_dashboard(run_dir: Path, state: ChartState | None = None, settings: Settings | None = None) -> Dashboard:
    """Rebuild the dashboard of a stored analysis (optionally with a new view state)."""
    merged_path = run_dir / "tmp" / "merged.csv"
    if not merged_path.exists():
        raise AnalysisError(f"Merged CSV not found: {merged_path}. Run analysis first.")

    if state is None:
        state = state_from_dict(_load_json(run_dir / "tmp" / "state.json"))

    dashboard = Dashboard(settings or get_settings())
    dashboard.load(decode_csv(merged_path.read_bytes()), state=state)
    return dashboard


def run_analysis(
    csv_data: bytes | str,
    run_dir: Path,
    state: ChartState | None = None,
    source_file: str = "",
    settings: Settings | None = None,
) -> AnalysisResult:
    """Run the full analysis for one merged CSV and write artifacts under `run_dir`."""
    settings   = settings or get_settings()
    state      = state or ChartState()
    tmp_dir    = run_dir / "tmp"
    output_dir = run_dir / "output"
    charts_dir = output_dir / "charts"

    tmp_dir.mkdir(parents=True, exist_ok=True)
    charts_dir.mkdir(parents=True, exist_ok=True)

    # A report built for an earlier view state no longer matches these charts.
    stale_report = output_dir / REPORT_FILENAME
    if stale_report.exists():
        stale_report.unlink()

    text = decode_csv(csv_data) if isinstance(csv_data, bytes) else csv_data
    (tmp_dir / "merged.csv").write_text(text, encoding="utf-8")
    _write_json(tmp_dir / "state.json", state.to_dict())

    # ── Step 1-2: parse + stats ──────────────────────────────────────────────
    dashboard = Dashboard(settings)
    stats = dashboard.load(text, state=state)
    _write_json(tmp_dir / "stats.json", stats.to_dict())

    # ── Step 3: charts ───────────────────────────────────────────────────────
    view   = dashboard.view()
    blocks = dashboard.render()
    charts: dict[str, Path] = {}
    generated = []
    for chart_id, block in blocks.items():
        path = save_surface(block.surface, charts_dir / f"chart_{chart_id}.png")
        charts[chart_id] = path
        generated.append({
            "id":      chart_id,
            "title":   block.title,
            "path":    str(path),
            "width":   block.layout.width,
            "height":  block.layout.height,
            "empty":   block.layout.empty,
            "legend":  [label for label, _ in block.layout.legend],
            "buckets": len(view.buckets),
        })

    # ── Step 4: composite export ─────────────────────────────────────────────
    export_path = dashboard.export(output_dir / EXPORT_FILENAME)

    # ── Step 5: manifest ─────────────────────────────────────────────────────
    manifest = {
        "state":     state.to_dict(),
        "metadata":  describe_state(state),
        "projects":  view.projects,
        "hidden":    view.hidden_count,
        "buckets":   [b.to_dict() for b in view.buckets],
        "generated": generated,
        "export":    str(export_path),
        "source_file": source_file,
    }
    _write_json(tmp_dir / MANIFEST_FILENAME, manifest)

    logger.info(
        "Analysis complete | %d rows | %d buckets | %d charts",
        stats.row_count, len(view.buckets), len(generated),
    )

    return AnalysisResult(
        stats=stats,
        state=state,
        charts=charts,
        export_path=export_path,
        charts_manifest=manifest,
        dashboard=dashboard,
    )


def run_report(run_dir: Path, settings: Settings | None = None) -> Path:
    """
    Build the PDF report of a completed analysis.
    Reuses the stored CSV, state and composite; does not rewrite the charts.
    """
    manifest_path = run_dir / "tmp" / MANIFEST_FILENAME
    if not manifest_path.exists():
        raise AnalysisError(f"Charts manifest not found: {manifest_path}. Run analysis first.")

    manifest  = _load_json(manifest_path)
    dashboard = load_dashboard(run_dir, settings=settings)

    output_dir = run_dir / "output"
    export_path = Path(manifest.get("export") or output_dir / EXPORT_FILENAME)
    if not export_path.exists():
        export_path = dashboard.export(output_dir / EXPORT_FILENAME)

    return build_report(
        dashboard.stats,
        dashboard.state,
        output_dir / REPORT_FILENAME,
        composite_path=export_path,
        source_file=manifest.get("source_file", ""),
    )
