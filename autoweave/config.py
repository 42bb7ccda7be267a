from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR         = Path(__file__).resolve().parent.parent
DEFAULT_API_BASE = "https://autoweave-backend.onrender.com"

load_dotenv(BASE_DIR / ".env", override=False)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    api_base:        str
    timeout_seconds: float
    runtime_dir:     Path
    token_file:      Path
    chart_width:     int
    chart_height:    int
    dpi:             int
    top_projects:    int
    stats_top_n:     int
    max_labels:      int

    @classmethod
    def from_env(cls) -> "Settings":
        runtime_dir = Path(os.getenv("AUTOWEAVE_RUNTIME_DIR") or BASE_DIR / "runtime")
        return cls(
            api_base=(os.getenv("AUTOWEAVE_API_BASE") or DEFAULT_API_BASE).rstrip("/"),
            timeout_seconds=_float_env("AUTOWEAVE_TIMEOUT_SECONDS", 60.0),
            runtime_dir=runtime_dir,
            token_file=Path(os.getenv("AUTOWEAVE_TOKEN_FILE") or runtime_dir / "session.json"),
            chart_width=_int_env("AUTOWEAVE_CHART_WIDTH", 800),
            chart_height=_int_env("AUTOWEAVE_CHART_HEIGHT", 220),
            dpi=_int_env("AUTOWEAVE_DPI", 100),
            top_projects=_int_env("AUTOWEAVE_TOP_PROJECTS", 6),
            stats_top_n=_int_env("AUTOWEAVE_STATS_TOP_N", 8),
            max_labels=_int_env("AUTOWEAVE_MAX_LABELS", 10),
        )


def get_settings() -> Settings:
    return Settings.from_env()
