"""
main.py — FastAPI backend for the AutoWeave visualiser.

Two ways in:
  - POST /api/analyze  upload an already merged CSV
  - POST /api/merge    upload the raw exports; they are merged by the AutoWeave
                       service first and its `download_csv` is analyzed

Each analysis lives under runtime/analyses/<id>/ (see pipeline.py). Changing
the view (range, granularity, cumulative) re-renders that analysis in place.
"""

from __future__ import annotations

import json
import logging
import re
import uuid
from pathlib import Path

from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse

from .config import get_settings
from .dashboard import CHARTS
from .merge_client import FileTokenStorage, MergeClient, MergeError, MergeServiceError, MissingInputError, Session
from .pipeline import (
    ALLOWED_EXTENSIONS,
    EXPORT_FILENAME,
    REPORT_FILENAME,
    AnalysisError,
    AnalysisResult,
    load_dashboard,
    run_analysis,
    run_report,
)
from .range_filter import RANGE_PRESETS, ChartState

# ---------------------------------------------------------------------------
# App setup
# ---------------------------------------------------------------------------

SETTINGS     = get_settings()
ANALYSES_DIR = SETTINGS.runtime_dir / "analyses"
ANALYSES_DIR.mkdir(parents=True, exist_ok=True)

logger         = logging.getLogger(__name__)
CHART_IDS      = {chart_id for chart_id, _ in CHARTS}
ANALYSIS_ID_RE = re.compile(r"^[a-f0-9]{12}$")

app = FastAPI(title="AutoWeave Visualiser", version="1.0.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:4173",
        "http://127.0.0.1:4173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_merge_client() -> MergeClient:
    return MergeClient(session=Session(FileTokenStorage(SETTINGS.token_file)))


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

def _run_dir(analysis_id: str) -> Path:
    if not ANALYSIS_ID_RE.match(analysis_id):
        raise HTTPException(status_code=404, detail="Analysis not found.")
    run_dir = ANALYSES_DIR / analysis_id
    if not run_dir.exists():
        raise HTTPException(status_code=404, detail="Analysis not found.")
    return run_dir


def _result_file_path(analysis_id: str) -> Path:
    return ANALYSES_DIR / analysis_id / "output" / "analysis_result.json"


def _chart_file_path(run_dir: Path, chart_id: str) -> Path:
    if chart_id not in CHART_IDS:
        raise HTTPException(status_code=404, detail="Chart not found.")
    return run_dir / "output" / "charts" / f"chart_{chart_id}.png"


def _parse_state(
    range_mode: str,
    days: int,
    custom_from: str,
    custom_to: str,
    granularity: str,
    cumulative: bool,
) -> ChartState:
    overrides = {
        "custom_from": custom_from or "",
        "custom_to":   custom_to or "",
        "granularity": granularity,
        "cumulative":  cumulative,
    }
    try:
        if range_mode in RANGE_PRESETS and range_mode.startswith("last-"):
            return ChartState.from_preset(range_mode, **overrides)
        return ChartState(range_mode=range_mode, days=days, **overrides)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _response_payload(analysis_id: str, result: AnalysisResult, extra: dict | None = None) -> dict:
    manifest = result.charts_manifest
    charts = [
        {
            "id":           item["id"],
            "title":        item["title"],
            "empty":        item["empty"],
            "width":        item["width"],
            "height":       item["height"],
            "url":          f"/api/analyses/{analysis_id}/charts/{item['id']}",
            "download_url": f"/api/analyses/{analysis_id}/charts/{item['id']}?download=true",
        }
        for item in manifest.get("generated", [])
    ]
    payload = {
        "analysis_id": analysis_id,
        "source_file": manifest.get("source_file", ""),
        "state":       result.state.to_dict(),
        "metadata":    manifest.get("metadata", ""),
        "stats":       result.stats.to_dict(),
        "projects":    manifest.get("projects", []),
        "hidden":      manifest.get("hidden", 0),
        "buckets":     manifest.get("buckets", []),
        "charts":      charts,
        "export_url":  f"/api/analyses/{analysis_id}/export",
    }
    if extra:
        payload.update(extra)

    result_path = _result_file_path(analysis_id)
    result_path.parent.mkdir(parents=True, exist_ok=True)
    with result_path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, default=str)
    return payload


def _analyze(csv_data: bytes | str, state: ChartState, source_file: str, extra: dict | None = None) -> dict:
    analysis_id = uuid.uuid4().hex[:12]
    run_dir     = ANALYSES_DIR / analysis_id
    try:
        result = run_analysis(csv_data, run_dir, state=state, source_file=source_file, settings=SETTINGS)
    except AnalysisError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Unexpected error: {exc}") from exc

    logger.info("Analysis %s: %d rows | state=%s", analysis_id, result.stats.row_count, state.to_dict())
    return _response_payload(analysis_id, result, extra)


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@app.get("/", include_in_schema=False)
def home() -> dict:
    return {"message": "AutoWeave Visualiser API is running"}


@app.get("/api/health")
def health() -> dict:
    return {"status": "ok"}


@app.get("/api/analyses")
def list_analyses(limit: int = 20) -> dict:
    limit = max(1, min(limit, 100))
    rows: list[dict] = []

    for analysis_dir in sorted(
        ANALYSES_DIR.iterdir(),
        key=lambda p: p.stat().st_mtime,
        reverse=True,
    ):
        if not analysis_dir.is_dir():
            continue
        result_path = analysis_dir / "output" / "analysis_result.json"
        if not result_path.exists():
            continue
        try:
            with result_path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError):
            logger.warning("Skipping unreadable analysis result: %s", result_path)
            continue

        stats = data.get("stats", {})
        rows.append({
            "analysis_id":  data.get("analysis_id", analysis_dir.name),
            "source_file":  data.get("source_file", ""),
            "row_count":    stats.get("row_count", 0),
            "total_income": stats.get("total_income", 0),
            "state":        data.get("state", {}),
            "created_at":   analysis_dir.stat().st_mtime,
        })
        if len(rows) >= limit:
            break

    return {"items": rows}


@app.post("/api/analyze")
def analyze(
    file:        UploadFile = File(...),
    range_mode:  str  = Form(default="all", alias="range"),
    days:        int  = Form(default=30),
    custom_from: str  = Form(default=""),
    custom_to:   str  = Form(default=""),
    granularity: str  = Form(default="day"),
    cumulative:  bool = Form(default=False),
) -> dict:
    # ── Validate file type ────────────────────────────────────────────────────
    filename  = file.filename or ""
    extension = Path(filename).suffix.lower()
    if extension not in ALLOWED_EXTENSIONS:
        raise HTTPException(status_code=400, detail="Unsupported file type. Upload a .csv file.")

    state = _parse_state(range_mode, days, custom_from, custom_to, granularity, cumulative)
    try:
        data = file.file.read()
    finally:
        file.file.close()

    return _analyze(data, state, filename)


@app.post("/api/merge")
def merge(
    time_entries_csv: UploadFile | None = File(default=None),
    incomes_csv:      UploadFile | None = File(default=None),
    projects_csv:     UploadFile | None = File(default=None),
    range_mode:  str  = Form(default="all", alias="range"),
    days:        int  = Form(default=30),
    custom_from: str  = Form(default=""),
    custom_to:   str  = Form(default=""),
    granularity: str  = Form(default="day"),
    cumulative:  bool = Form(default=False),
) -> dict:
    state = _parse_state(range_mode, days, custom_from, custom_to, granularity, cumulative)

    def _read(upload: UploadFile | None):
        if upload is None:
            return None
        try:
            return (upload.filename or "upload.csv", upload.file.read())
        finally:
            upload.file.close()

    client = get_merge_client()
    try:
        merged = client.merge(_read(time_entries_csv), _read(incomes_csv), _read(projects_csv))
    except MissingInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except MergeServiceError as exc:
        logger.warning("Merge service error %s: %s", exc.status_code, exc.body)
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except MergeError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    finally:
        client.close()

    extra = {
        "merge_stats": merged.stats,
        "merge_mode":  merged.mode,
        "preview_csv": merged.preview_csv[:8000],
    }
    return _analyze(merged.download_csv, state, "merged.csv", extra)


@app.get("/api/analyses/{analysis_id}/result")
def get_analysis_result(analysis_id: str) -> dict:
    _run_dir(analysis_id)
    result_path = _result_file_path(analysis_id)
    if not result_path.exists():
        raise HTTPException(status_code=404, detail="Analysis result not found.")
    try:
        with result_path.open("r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise HTTPException(status_code=500, detail=f"Failed to read result: {exc}") from exc


@app.post("/api/analyses/{analysis_id}/view")
def update_view(
    analysis_id: str,
    range_mode:  str  = Form(default="all", alias="range"),
    days:        int  = Form(default=30),
    custom_from: str  = Form(default=""),
    custom_to:   str  = Form(default=""),
    granularity: str  = Form(default="day"),
    cumulative:  bool = Form(default=False),
) -> dict:
    run_dir = _run_dir(analysis_id)
    state   = _parse_state(range_mode, days, custom_from, custom_to, granularity, cumulative)

    merged_path = run_dir / "tmp" / "merged.csv"
    if not merged_path.exists():
        raise HTTPException(status_code=404, detail="Merged CSV not found.")

    previous = {}
    result_path = _result_file_path(analysis_id)
    if result_path.exists():
        try:
            with result_path.open("r", encoding="utf-8") as f:
                previous = json.load(f)
        except (OSError, json.JSONDecodeError):
            logger.warning("Ignoring unreadable analysis result: %s", result_path)
            previous = {}

    try:
        result = run_analysis(
            merged_path.read_bytes(), run_dir, state=state,
            source_file=previous.get("source_file", ""), settings=SETTINGS,
        )
    except AnalysisError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    extra = {k: previous[k] for k in ("merge_stats", "merge_mode", "preview_csv") if k in previous}
    return _response_payload(analysis_id, result, extra)


@app.get("/api/analyses/{analysis_id}/charts/{chart_id}")
def get_chart(analysis_id: str, chart_id: str, download: bool = False) -> FileResponse:
    chart_path = _chart_file_path(_run_dir(analysis_id), chart_id)
    if not chart_path.exists():
        raise HTTPException(status_code=404, detail="Chart file not found.")

    headers = {}
    if download:
        headers["Content-Disposition"] = f'attachment; filename="chart_{chart_id}.png"'

    return FileResponse(path=str(chart_path), media_type="image/png", headers=headers)


@app.get("/api/analyses/{analysis_id}/hover")
def hover_chart(analysis_id: str, chart: str, x: float, y: float) -> dict:
    run_dir = _run_dir(analysis_id)
    if chart not in CHART_IDS:
        raise HTTPException(status_code=404, detail="Chart not found.")
    try:
        dashboard = load_dashboard(run_dir, settings=SETTINGS)
    except AnalysisError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"chart": chart, "x": x, "y": y, "hit": dashboard.hover(chart, x, y)}


@app.get("/api/analyses/{analysis_id}/export")
def get_export(analysis_id: str) -> FileResponse:
    export_path = _run_dir(analysis_id) / "output" / EXPORT_FILENAME
    if not export_path.exists():
        raise HTTPException(status_code=404, detail="Export not found.")
    return FileResponse(
        path=str(export_path),
        media_type="image/png",
        headers={"Content-Disposition": f'attachment; filename="autoweave_{analysis_id}.png"'},
    )


@app.post("/api/analyses/{analysis_id}/report")
def generate_report(analysis_id: str) -> dict:
    run_dir = _run_dir(analysis_id)
    try:
        report_path = run_report(run_dir, settings=SETTINGS)
    except AnalysisError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Report generation failed: {exc}") from exc

    return {
        "analysis_id": analysis_id,
        "report_url":  f"/api/analyses/{analysis_id}/report?download=true",
        "available":   report_path.exists(),
    }


@app.get("/api/analyses/{analysis_id}/report")
def get_report(analysis_id: str, download: bool = False):
    run_dir     = _run_dir(analysis_id)
    report_path = run_dir / "output" / REPORT_FILENAME
    if not report_path.exists():
        try:
            report_path = run_report(run_dir, settings=SETTINGS)
        except AnalysisError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    if download:
        return FileResponse(
            path=str(report_path),
            media_type="application/pdf",
            headers={"Content-Disposition": f'attachment; filename="report_{analysis_id}.pdf"'},
        )

    return {
        "analysis_id": analysis_id,
        "report_url":  f"/api/analyses/{analysis_id}/report?download=true",
        "available":   report_path.exists(),
    }
