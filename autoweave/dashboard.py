"""
dashboard.py — View state machine driving the three synchronized charts.

    idle ──load()──▶ loaded ──control change──▶ (dirty) ──view()──▶ recomputing ──▶ loaded
      ▲                                                                               │
      └─────────────────────────────── reset() ────────────────────────────────────────┘

Control changes only mark the view dirty; the derived series and layouts are
rebuilt once, on the next view()/render(), however many changes came in
between. A new load() replaces the dataset wholesale.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

import numpy as np

from .aggregate import Bucket, RawSeries, accumulate_raw, regroup
from .config import Settings, get_settings
from .csv_table import parse_csv
from .cumulative import cumulative
from .export import Panel, describe_state, export_png
from .layout import ChartLayout, compute_layout, hover
from .normalize import IncomeAccessor, NormalizedRecord, normalize_table
from .range_filter import RANGE_PRESETS, ChartState, filter_dates
from .render import render_chart
from .stats import QuickStats, compute_stats

logger = logging.getLogger(__name__)

IDLE        = "idle"
LOADED      = "loaded"
RECOMPUTING = "recomputing"

CHARTS = (
    ("income", "Total income by project"),
    ("duration", "Total time by project"),
    ("ratio", "Hourly rate by project"),
)
EXPORT_HEADER = "AutoWeave visualisations"


class SurfaceRegistry:
    """Memoized builder: one instance per stable key, created on first ensure()."""

    def __init__(self):
        self._items: dict[str, object] = {}

    def ensure(self, key: str, factory: Callable[[], object]):
        if key not in self._items:
            self._items[key] = factory()
        return self._items[key]

    def get(self, key: str):
        return self._items.get(key)

    def clear(self) -> None:
        self._items.clear()

    def __contains__(self, key: str) -> bool:
        return key in self._items

    def __len__(self) -> int:
        return len(self._items)


@dataclass
class ChartBlock:
    chart_id: str
    title:    str
    layout:   ChartLayout | None = None
    surface:  np.ndarray | None  = None


@dataclass
class DashboardView:
    state:        ChartState
    dates:        list[str]
    buckets:      list[Bucket]
    projects:     list[str]
    hidden_count: int
    layouts:      dict[str, ChartLayout] = field(default_factory=dict)


class Dashboard:
    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.blocks   = SurfaceRegistry()
        self._clear()

    def _clear(self) -> None:
        self.status:   str                    = IDLE
        self.state:    ChartState | None      = None
        self.records:  list[NormalizedRecord] = []
        self.accessor: IncomeAccessor | None  = None
        self.stats:    QuickStats | None      = None
        self.raw:      RawSeries              = {}
        self._view:    DashboardView | None   = None
        self._dirty    = False
        self._rendered = False
        self.recompute_count = 0

    # ── Lifecycle ────────────────────────────────────────────────────────────

    def load(self, csv_text: str, state: ChartState | None = None) -> QuickStats:
        """Replace the current dataset with `csv_text` and enter `loaded`."""
        self._clear()
        table = parse_csv(csv_text)
        self.records, self.accessor = normalize_table(table)
        self.stats = compute_stats(self.records, self.accessor, top_n=self.settings.stats_top_n)
        self.raw   = accumulate_raw(self.records)
        self.state = state or ChartState()
        self.status = LOADED
        self._dirty = True
        logger.info(
            "Loaded %d rows | %d projects | %d raw dates | income=%s",
            self.stats.row_count, len(self.stats.projects), len(self.raw), self.accessor.column,
        )
        return self.stats

    def reset(self) -> None:
        self._clear()
        self.blocks.clear()

    # ── Controls ─────────────────────────────────────────────────────────────

    def set_state(self, **changes) -> None:
        if self.status == IDLE or self.state is None:
            return
        new_state = self.state.update(**changes)
        if new_state != self.state:
            self.state  = new_state
            self._dirty = True

    def set_range(self, preset: str) -> None:
        if self.state is None:
            return
        if preset not in RANGE_PRESETS:
            raise ValueError(f"Unknown range preset: {preset!r}")
        mode, days = RANGE_PRESETS[preset]
        if days is None:
            self.set_state(range_mode=mode)
        else:
            self.set_state(range_mode=mode, days=days)

    def set_custom_range(self, custom_from: str, custom_to: str) -> None:
        self.set_state(range_mode="custom", custom_from=custom_from or "", custom_to=custom_to or "")

    def set_granularity(self, granularity: str) -> None:
        self.set_state(granularity=granularity)

    def set_cumulative(self, enabled: bool) -> None:
        self.set_state(cumulative=bool(enabled))

    # ── Derived series ───────────────────────────────────────────────────────

    @property
    def dirty(self) -> bool:
        return self._dirty

    def view(self) -> DashboardView | None:
        if self.status == IDLE:
            return None
        if self._dirty or self._view is None:
            self.status = RECOMPUTING
            try:
                self._view = self._recompute()
                self._dirty = False
                self._rendered = False
                self.recompute_count += 1
            finally:
                self.status = LOADED
        return self._view

    def _recompute(self) -> DashboardView:
        state = self.state
        chart_dates = [d for d in self.raw if d]
        dates   = filter_dates(chart_dates, state)
        buckets = regroup(self.raw, state.granularity, dates)
        if state.cumulative:
            buckets = cumulative(buckets)

        projects, hidden = self.stats.top_projects(self.settings.top_projects)
        layouts = {
            chart_id: compute_layout(
                buckets,
                projects,
                chart_id,
                self.settings.chart_width,
                self.settings.chart_height,
                max_labels=self.settings.max_labels,
                hidden_count=hidden,
            )
            for chart_id, _ in CHARTS
        }
        logger.debug(
            "Recomputed view | range=%s granularity=%s cumulative=%s | %d buckets",
            state.range_mode, state.granularity, state.cumulative, len(buckets),
        )
        return DashboardView(
            state=state,
            dates=dates,
            buckets=buckets,
            projects=projects,
            hidden_count=hidden,
            layouts=layouts,
        )

    # ── Rendering ────────────────────────────────────────────────────────────

    def render(self) -> dict[str, ChartBlock]:
        """Render all three charts into their (memoized) blocks."""
        view = self.view()
        blocks = {
            chart_id: self.blocks.ensure(chart_id, lambda c=chart_id, t=title: ChartBlock(c, t))
            for chart_id, title in CHARTS
        }
        if view is None:
            for block in blocks.values():
                block.layout, block.surface = None, None
            return blocks

        if not self._rendered:
            for chart_id, block in blocks.items():
                block.layout  = view.layouts[chart_id]
                block.surface = render_chart(block.layout, dpi=self.settings.dpi)
            self._rendered = True
        return blocks

    def hover(self, chart_id: str, x: float, y: float) -> dict | None:
        view = self.view()
        if view is None or chart_id not in view.layouts:
            return None
        return hover(view.layouts[chart_id], x, y)

    def panels(self) -> list[Panel]:
        return [
            Panel(title=block.title, surface=block.surface, legend=block.layout.legend)
            for block in self.render().values()
            if block.surface is not None
        ]

    def export(self, path: Path | str, header: str = EXPORT_HEADER) -> Path:
        view = self.view()
        metadata = describe_state(view.state) if view else "No data loaded"
        return export_png(self.panels(), header, metadata, path)
