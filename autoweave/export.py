"""
export.py — Composite chart export (PNG) and the PDF statistics report.

compose() stacks titled chart surfaces vertically under a header line and a
metadata line describing the active view. Surfaces are placed pixel for
pixel, so the composite is exactly:

    height = 2*margin + header + meta + Σ(title + surface) + spacing*(n-1)
    width  = 2*margin + widest surface

build_report() lays the quick statistics and the composite out as a PDF
with reportlab.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

import numpy as np
from reportlab.lib import colors
from reportlab.lib.pagesizes import LETTER
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Image, PageBreak, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from .range_filter import ChartState, parse_bound
from .render import BG, DPI, MUTED, TEXT, new_canvas, save_surface, to_surface
from .stats import ProjectStat, QuickStats

MARGIN        = 24
TITLE_HEIGHT  = 28
HEADER_HEIGHT = 36
META_HEIGHT   = 22
SPACING       = 12
LEGEND_OFFSET = 260
LEGEND_CHAR_W = 6

NAVY      = colors.HexColor("#0a0e1a")
WHITE     = colors.HexColor("#ffffff")
TEXT_DARK = colors.HexColor("#111827")
PDF_MUTED = colors.HexColor("#4b5563")
PDF_BORDER = colors.HexColor("#d1d5db")


@dataclass
class Panel:
    title:   str
    surface: np.ndarray
    legend:  list[tuple[str, str | None]] = field(default_factory=list)

    @property
    def width(self) -> int:
        return int(self.surface.shape[1])

    @property
    def height(self) -> int:
        return int(self.surface.shape[0])


# ---------------------------------------------------------------------------
# Metadata line
# ---------------------------------------------------------------------------

def describe_range(state: ChartState) -> str:
    if state.range_mode == "all":
        return "all dates"
    if state.range_mode == "lastN":
        return f"last {state.days} days"
    low, high = parse_bound(state.custom_from), parse_bound(state.custom_to)
    if low is None or high is None:
        return "custom (invalid bounds, showing all dates)"
    if low > high:
        low, high = high, low
    return f"{low.isoformat()} to {high.isoformat()}"


def describe_state(state: ChartState) -> str:
    return (
        f"Range: {describe_range(state)} · "
        f"Granularity: {state.granularity} · "
        f"Cumulative: {'on' if state.cumulative else 'off'}"
    )


# ---------------------------------------------------------------------------
# Composite image
# ---------------------------------------------------------------------------

def composite_height(
    surface_heights: list[int],
    *,
    margin: int = MARGIN,
    title_height: int = TITLE_HEIGHT,
    header_height: int = HEADER_HEIGHT,
    meta_height: int = META_HEIGHT,
    spacing: int = SPACING,
) -> int:
    gaps = spacing * max(0, len(surface_heights) - 1)
    return 2 * margin + header_height + meta_height + sum(title_height + h for h in surface_heights) + gaps


def compose(
    panels: list[Panel],
    header: str,
    metadata: str,
    *,
    margin: int = MARGIN,
    title_height: int = TITLE_HEIGHT,
    header_height: int = HEADER_HEIGHT,
    meta_height: int = META_HEIGHT,
    spacing: int = SPACING,
    dpi: int = DPI,
) -> np.ndarray:
    """Stack `panels` into one RGBA surface; panel surfaces are not rescaled."""
    width  = 2 * margin + max((p.width for p in panels), default=0)
    height = composite_height(
        [p.height for p in panels],
        margin=margin,
        title_height=title_height,
        header_height=header_height,
        meta_height=meta_height,
        spacing=spacing,
    )

    fig, ax = new_canvas(width, height, dpi, facecolor=BG)

    y = margin
    ax.text(margin, y + header_height * 0.7, header, color=TEXT, fontsize=13, fontweight="bold")
    y += header_height
    ax.text(margin, y + meta_height * 0.7, metadata, color=MUTED, fontsize=9)
    y += meta_height

    for i, panel in enumerate(panels):
        if i:
            y += spacing
        baseline = y + title_height * 0.7
        ax.text(margin, baseline, panel.title, color=TEXT, fontsize=10, fontweight="bold")

        x_cursor = margin + LEGEND_OFFSET
        for label, color in panel.legend:
            ax.text(x_cursor, baseline, "●" if color else "", color=color or MUTED, fontsize=8)
            ax.text(x_cursor + 12, baseline, label, color=MUTED, fontsize=8)
            x_cursor += 24 + LEGEND_CHAR_W * len(label)

        y += title_height
        # figimage offsets are measured from the bottom-left corner.
        fig.figimage(panel.surface, xo=margin, yo=height - y - panel.height, origin="upper")
        y += panel.height

    return to_surface(fig)


def export_png(panels: list[Panel], header: str, metadata: str, path: Path | str) -> Path:
    return save_surface(compose(panels, header, metadata), path)


# ---------------------------------------------------------------------------
# PDF report
# ---------------------------------------------------------------------------

def number(value: float, digits: int = 2) -> str:
    try:
        return f"{float(value):,.{digits}f}"
    except (TypeError, ValueError):
        return f"{0:.{digits}f}"


def style_pack():
    base = getSampleStyleSheet()
    return {
        "title": ParagraphStyle(
            "Title",
            parent=base["Title"],
            fontName="Helvetica-Bold",
            fontSize=26,
            leading=32,
            textColor=NAVY,
            spaceAfter=10,
        ),
        "subtitle": ParagraphStyle(
            "Subtitle",
            parent=base["Normal"],
            fontName="Helvetica",
            fontSize=11,
            leading=16,
            textColor=PDF_MUTED,
            spaceAfter=6,
        ),
        "body": ParagraphStyle(
            "Body",
            parent=base["Normal"],
            fontName="Helvetica",
            fontSize=11,
            leading=16,
            textColor=TEXT_DARK,
        ),
        "section_band": ParagraphStyle(
            "SectionBand",
            parent=base["Normal"],
            fontName="Helvetica-Bold",
            fontSize=16,
            leading=20,
            textColor=WHITE,
            alignment=1,
        ),
        "card_label": ParagraphStyle(
            "CardLabel",
            parent=base["Normal"],
            fontName="Helvetica-Bold",
            fontSize=10,
            leading=13,
            textColor=PDF_MUTED,
            alignment=1,
        ),
        "card_value": ParagraphStyle(
            "CardValue",
            parent=base["Normal"],
            fontName="Helvetica-Bold",
            fontSize=17,
            leading=22,
            textColor=NAVY,
            alignment=1,
        ),
    }


def section_header(title: str, styles: dict, width: float) -> Table:
    band = Table([[Paragraph(title, styles["section_band"])]], colWidths=[width])
    band.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, -1), NAVY),
                ("LEFTPADDING", (0, 0), (-1, -1), 10),
                ("RIGHTPADDING", (0, 0), (-1, -1), 10),
                ("TOPPADDING", (0, 0), (-1, -1), 8),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 8),
            ]
        )
    )
    return band


def page_cover(story: list, stats: QuickStats, state: ChartState, source_file: str, styles: dict, width: float):
    story.append(Paragraph("Time &amp; Income Report", styles["title"]))
    story.append(Paragraph("Merged time entries and incomes, grouped by project", styles["subtitle"]))
    story.append(Spacer(1, 0.2 * inch))

    meta_table = Table(
        [
            ["Generated", datetime.now().strftime("%Y-%m-%d %H:%M")],
            ["View", describe_state(state)],
            ["Source file", source_file or "N/A"],
        ],
        colWidths=[1.5 * inch, width - 1.5 * inch],
    )
    meta_table.setStyle(
        TableStyle(
            [
                ("GRID", (0, 0), (-1, -1), 0.6, PDF_BORDER),
                ("BACKGROUND", (0, 0), (0, -1), colors.HexColor("#f3f4f6")),
                ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
                ("FONTNAME", (1, 0), (1, -1), "Helvetica"),
                ("FONTSIZE", (0, 0), (-1, -1), 10),
                ("TEXTCOLOR", (0, 0), (-1, -1), TEXT_DARK),
                ("LEFTPADDING", (0, 0), (-1, -1), 8),
                ("RIGHTPADDING", (0, 0), (-1, -1), 8),
                ("TOPPADDING", (0, 0), (-1, -1), 6),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
            ]
        )
    )
    story.append(meta_table)
    story.append(Spacer(1, 0.35 * inch))

    cards = [
        [Paragraph("Row count", styles["card_label"]), Paragraph(f"{stats.row_count:,}", styles["card_value"])],
        [Paragraph("Total time (hours)", styles["card_label"]), Paragraph(number(stats.total_duration), styles["card_value"])],
        [Paragraph(f"Total income ({stats.income_label})", styles["card_label"]), Paragraph(number(stats.total_income), styles["card_value"])],
        [Paragraph("Hourly rate", styles["card_label"]), Paragraph(number(stats.overall_ratio), styles["card_value"])],
    ]
    card_table = Table(cards, colWidths=[width * 0.45, width * 0.55])
    card_table.setStyle(
        TableStyle(
            [
                ("GRID", (0, 0), (-1, -1), 0.6, PDF_BORDER),
                ("BACKGROUND", (0, 0), (-1, -1), colors.HexColor("#eef2ff")),
                ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
                ("LEFTPADDING", (0, 0), (-1, -1), 10),
                ("RIGHTPADDING", (0, 0), (-1, -1), 10),
                ("TOPPADDING", (0, 0), (-1, -1), 8),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 8),
            ]
        )
    )
    story.append(card_table)
    story.append(PageBreak())


def project_table(title: str, column: str, rows: list[ProjectStat], attr: str, styles: dict, width: float) -> list:
    flowables = [section_header(title, styles, width), Spacer(1, 0.15 * inch)]
    if not rows:
        flowables.append(Paragraph("No projects found in the merged data.", styles["body"]))
        return flowables

    data = [["Project", column]]
    data.extend([row.name, number(getattr(row, attr))] for row in rows)

    table = Table(data, colWidths=[width * 0.7, width * 0.3])
    table.setStyle(
        TableStyle(
            [
                ("GRID", (0, 0), (-1, -1), 0.5, PDF_BORDER),
                ("BACKGROUND", (0, 0), (-1, 0), NAVY),
                ("TEXTCOLOR", (0, 0), (-1, 0), WHITE),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("FONTNAME", (0, 1), (-1, -1), "Helvetica"),
                ("FONTSIZE", (0, 0), (-1, -1), 10),
                ("ALIGN", (1, 0), (1, -1), "RIGHT"),
                ("LEFTPADDING", (0, 0), (-1, -1), 7),
                ("RIGHTPADDING", (0, 0), (-1, -1), 7),
                ("TOPPADDING", (0, 0), (-1, -1), 5),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 5),
            ]
        )
    )
    flowables.extend([table, Spacer(1, 0.25 * inch)])
    return flowables


def safe_image(path: str | Path | None, width: float, height: float):
    if not path or not os.path.exists(path):
        return None
    image = Image(str(path))
    image._restrictSize(width, height)
    return image


def build_report(
    stats: QuickStats,
    state: ChartState,
    output_pdf: Path | str,
    composite_path: Path | str | None = None,
    source_file: str = "",
) -> Path:
    output_pdf = Path(output_pdf)
    output_pdf.parent.mkdir(parents=True, exist_ok=True)

    doc = SimpleDocTemplate(
        str(output_pdf),
        pagesize=LETTER,
        leftMargin=0.75 * inch,
        rightMargin=0.75 * inch,
        topMargin=0.75 * inch,
        bottomMargin=0.75 * inch,
        title="Time & Income Report",
    )

    styles = style_pack()
    story: list = []
    width = doc.width
    label = stats.income_label

    page_cover(story, stats, state, source_file, styles, width)
    story.extend(project_table(f"Income by project ({label})", "Amount", stats.by_income, "income", styles, width))
    story.extend(project_table("Time by project (hours)", "Hours", stats.by_duration, "duration", styles, width))
    story.extend(project_table(f"Hourly rate by project ({label}/hour)", "Rate", stats.by_ratio, "ratio", styles, width))
    story.append(PageBreak())

    story.append(section_header("Visualisations", styles, width))
    story.append(Spacer(1, 0.2 * inch))
    image = safe_image(composite_path, width, 8.0 * inch)
    if image:
        story.append(image)
    else:
        story.append(Paragraph("Chart export not found for this analysis.", styles["body"]))

    doc.build(story)
    return output_pdf
