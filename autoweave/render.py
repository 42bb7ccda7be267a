"""
render.py — Draw a ChartLayout onto a pixel surface with matplotlib.

The axes fill the whole figure and the y axis is inverted, so one data unit
is one pixel and layout rectangles (and therefore hit regions) line up
exactly with the rendered image. Surfaces are RGBA numpy arrays; export.py
composes them without rescaling.
"""

from __future__ import annotations

from pathlib import Path

import matplotlib
matplotlib.use("Agg")
import matplotlib.patches as mpatches
import matplotlib.pyplot as plt
import numpy as np

from .layout import ChartLayout

# ── Design tokens (shared with export.py) ─────────────────────────────────────
BG      = "#0a0e1a"
SURFACE = "#111827"
TEXT    = "#f9fafb"
MUTED   = "#9ca3af"
BORDER  = "#1f2937"
DPI     = 100


def new_canvas(width: int, height: int, dpi: int = DPI, facecolor: str = SURFACE):
    # Agg truncates figsize*dpi to int; nudge up so the canvas is exactly width x height.
    fig = plt.figure(figsize=((width + 1e-3) / dpi, (height + 1e-3) / dpi), dpi=dpi)
    fig.patch.set_facecolor(facecolor)
    ax = fig.add_axes([0, 0, 1, 1])
    ax.set_xlim(0, width)
    ax.set_ylim(height, 0)
    ax.axis("off")
    return fig, ax


def to_surface(fig) -> np.ndarray:
    fig.canvas.draw()
    surface = np.asarray(fig.canvas.buffer_rgba()).copy()
    plt.close(fig)
    return surface


def draw_layout(ax, layout: ChartLayout) -> None:
    pad = layout.padding

    if layout.empty:
        ax.text(pad.left, pad.top + 16, layout.message, color=MUTED, fontsize=9, va="baseline")
        return

    baseline = layout.baseline
    ax.plot(
        [pad.left, layout.width - pad.right], [baseline, baseline],
        color=BORDER, linewidth=1,
    )

    for seg in layout.segments:
        ax.add_patch(mpatches.Rectangle(
            (seg.x, seg.y), seg.w, seg.h,
            facecolor=seg.color, edgecolor="none", linewidth=0,
        ))

    for x, text in layout.labels:
        ax.text(x, baseline + 18, text, ha="center", va="baseline", color=MUTED, fontsize=8)


def render_chart(layout: ChartLayout, dpi: int = DPI) -> np.ndarray:
    """Render `layout` and return its RGBA surface (height × width × 4)."""
    fig, ax = new_canvas(int(round(layout.width)), int(round(layout.height)), dpi)
    draw_layout(ax, layout)
    return to_surface(fig)


def save_surface(surface: np.ndarray, path: Path | str) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    plt.imsave(path, surface)
    return path
