"""
layout.py — Stacked-bar geometry, project colors and hover lookup.

compute_layout() turns buckets into pixel rectangles for one metric
(income, duration or ratio). The same rectangles serve as hit regions, so a
pointer position maps straight back to (bucket, project, value).

Coordinates follow image conventions: origin top-left, y grows downwards.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field

from .aggregate import Bucket

PROJECT_COLORS = [
    "#ff0000",
    "#ff6003",
    "#ffe600",
    "#1eff00",
    "#00ff9d",
    "#71ccc1",
    "#0400ff",
    "#f700ff",
    "#ff7c7c",
    "#ffb477",
    "#fbfd83",
    "#83ff83",
]

NO_DATA_MESSAGE = "No chart data available."
MIN_BAR_WIDTH   = 10.0
MIN_MAX_TOTAL   = 0.000001


@dataclass(frozen=True)
class Padding:
    left:   float = 10
    right:  float = 10
    top:    float = 8
    bottom: float = 34


@dataclass(frozen=True)
class Segment:
    x:          float
    y:          float
    w:          float
    h:          float
    bucket_key: str
    project:    str
    value:      float
    color:      str

    def contains(self, px: float, py: float) -> bool:
        return self.x <= px <= self.x + self.w and self.y <= py <= self.y + self.h


@dataclass
class ChartLayout:
    metric:    str
    width:     float
    height:    float
    padding:   Padding
    projects:  list[str]
    legend:    list[tuple[str, str | None]]     = field(default_factory=list)
    segments:  list[Segment]                    = field(default_factory=list)
    labels:    list[tuple[float, str]]          = field(default_factory=list)
    values:    dict[str, dict[str, float]]      = field(default_factory=dict)
    max_total: float = 0.0
    bar_width: float = 0.0
    message:   str | None = None

    @property
    def empty(self) -> bool:
        return self.message is not None

    @property
    def hit_regions(self) -> list[Segment]:
        return self.segments

    @property
    def baseline(self) -> float:
        return self.height - self.padding.bottom


# ---------------------------------------------------------------------------
# Colors
# ---------------------------------------------------------------------------

def color_for_project(name: str) -> str:
    """
    Fixed palette color for a project name.

    A 32-bit rolling hash over UTF-16 code units, modulo the palette size.
    Same name, same color, whatever the render order; with more projects
    than palette entries, colors collide.
    """
    data = str(name or "").encode("utf-16-le")
    h = 0
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        h = (h * 31 + unit) % 2**32
    return PROJECT_COLORS[h % len(PROJECT_COLORS)]


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------

def short_label(key: str) -> str:
    return key[5:] if len(key) >= 10 else key


def label_indices(count: int, max_labels: int = 10) -> list[int]:
    """Uniform stride so at most ~max_labels labels show; the last one always does."""
    if count <= 0:
        return []
    step = max(1, math.ceil(count / max(1, max_labels)))
    picked = list(range(0, count, step))
    if picked[-1] != count - 1:
        picked.append(count - 1)
    return picked


def compute_layout(
    buckets: list[Bucket],
    projects: list[str],
    metric: str,
    width: float,
    height: float,
    *,
    max_labels: int = 10,
    gap: float = 6,
    padding: Padding = Padding(),
    hidden_count: int = 0,
) -> ChartLayout:
    legend: list[tuple[str, str | None]] = [(p, color_for_project(p)) for p in projects]
    if hidden_count > 0:
        legend.append((f"+{hidden_count} more", None))

    layout = ChartLayout(
        metric=metric,
        width=width,
        height=height,
        padding=padding,
        projects=list(projects),
        legend=legend,
    )

    if not buckets or not projects:
        layout.message = NO_DATA_MESSAGE
        return layout

    w = width - padding.left - padding.right
    h = height - padding.top - padding.bottom

    for bucket in buckets:
        layout.values[bucket.key] = {p: bucket.value(metric, p) for p in projects}

    totals    = [sum(layout.values[b.key].values()) for b in buckets]
    max_total = max(*totals, MIN_MAX_TOTAL)
    bar_w     = max(MIN_BAR_WIDTH, (w - gap * (len(buckets) - 1)) / len(buckets))

    layout.max_total = max_total
    layout.bar_width = bar_w

    for i, bucket in enumerate(buckets):
        x = padding.left + i * (bar_w + gap)
        y_cursor = padding.top + h
        for project in projects:
            value = layout.values[bucket.key][project]
            if value <= 0:
                continue
            seg_h = (value / max_total) * h
            y_cursor -= seg_h
            layout.segments.append(Segment(
                x=x,
                y=y_cursor,
                w=bar_w,
                h=seg_h,
                bucket_key=bucket.key,
                project=project,
                value=value,
                color=color_for_project(project),
            ))

    for i in label_indices(len(buckets), max_labels):
        x = padding.left + i * (bar_w + gap)
        layout.labels.append((x + bar_w / 2, short_label(buckets[i].key)))

    return layout


# ---------------------------------------------------------------------------
# Hover
# ---------------------------------------------------------------------------

def hit_test(layout: ChartLayout, x: float, y: float) -> Segment | None:
    for segment in layout.segments:
        if segment.contains(x, y):
            return segment
    return None


def tooltip(layout: ChartLayout, bucket_key: str) -> dict:
    """Every visible project with a positive value for the bucket, largest first."""
    values = layout.values.get(bucket_key, {})
    lines = sorted(
        ((p, v) for p, v in values.items() if v > 0),
        key=lambda item: item[1],
        reverse=True,
    )
    return {
        "title": bucket_key,
        "lines": [
            {"project": p, "value": round(v, 2), "color": color_for_project(p)}
            for p, v in lines
        ],
    }


def hover(layout: ChartLayout, x: float, y: float) -> dict | None:
    segment = hit_test(layout, x, y)
    if segment is None:
        return None
    return {
        "bucket":  segment.bucket_key,
        "project": segment.project,
        "value":   segment.value,
        "tooltip": tooltip(layout, segment.bucket_key),
    }
