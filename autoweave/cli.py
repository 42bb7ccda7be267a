"""
cli.py - Render the AutoWeave charts for a merged CSV from the command line.

Usage:
    python -m autoweave.cli \
        --input  merged.csv \
        --output-dir runs/latest \
        --range  last-30 \
        --granularity week \
        --cumulative \
        --report

    # or merge the raw exports first:
    python -m autoweave.cli \
        --time-entries time_entries.csv \
        --incomes incomes.csv \
        --projects projects.csv \
        --output-dir runs/latest
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from .aggregate import METRICS
from .calendar import GRANULARITIES
from .config import get_settings
from .merge_client import FileTokenStorage, MergeClient, MergeError, Session
from .pipeline import AnalysisError, run_analysis, run_report
from .range_filter import RANGE_MODES, RANGE_PRESETS, ChartState


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Aggregate a merged time/income CSV and render stacked project charts."
    )
    parser.add_argument("--input",        help="merged CSV (skips the merge service)")
    parser.add_argument("--time-entries", help="time entries export, merged remotely with --incomes")
    parser.add_argument("--incomes",      help="incomes export")
    parser.add_argument("--projects",     help="optional projects export")
    parser.add_argument("--output-dir",   default="runs/latest")
    parser.add_argument("--range",        default="all",
                        choices=sorted(set(RANGE_MODES) | set(RANGE_PRESETS)),
                        help="all, custom, lastN or one of the last-14/30/90 presets")
    parser.add_argument("--days",         type=int, default=30, help="window length for --range lastN")
    parser.add_argument("--from",         dest="custom_from", default="", help="custom range start (YYYY-MM-DD)")
    parser.add_argument("--to",           dest="custom_to",   default="", help="custom range end (YYYY-MM-DD)")
    parser.add_argument("--granularity",  default="day", choices=GRANULARITIES)
    parser.add_argument("--cumulative",   action="store_true")
    parser.add_argument("--report",       action="store_true", help="also build the PDF report")
    parser.add_argument("--verbose",      action="store_true")
    return parser


def state_from_args(args: argparse.Namespace) -> ChartState:
    overrides = {
        "custom_from": args.custom_from,
        "custom_to":   args.custom_to,
        "granularity": args.granularity,
        "cumulative":  args.cumulative,
    }
    if args.range.startswith("last-"):
        return ChartState.from_preset(args.range, **overrides)
    return ChartState(range_mode=args.range, days=args.days, **overrides)


def _read_csv(args: argparse.Namespace) -> tuple[str, str]:
    if args.input:
        path = Path(args.input)
        print(f"[autoweave] Loading merged CSV: {path}")
        return path.read_text(encoding="utf-8-sig"), path.name

    settings = get_settings()
    print(f"[autoweave] Merging exports via {settings.api_base}")
    client = MergeClient(session=Session(FileTokenStorage(settings.token_file)))
    try:
        result = client.merge(
            Path(args.time_entries) if args.time_entries else None,
            Path(args.incomes) if args.incomes else None,
            Path(args.projects) if args.projects else None,
        )
    finally:
        client.close()
    print(f"[autoweave] Merge mode: {result.mode or 'unknown'}")
    for key, value in result.stats.items():
        print(f"  {key:<20}: {value}")
    return result.download_csv, "merged.csv"


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        state = state_from_args(args)
        text, source = _read_csv(args)
        output_dir = Path(args.output_dir)
        result = run_analysis(text, output_dir, state=state, source_file=source)
    except (ValueError, OSError, MergeError, AnalysisError) as exc:
        print(f"[autoweave] ERROR: {exc}", file=sys.stderr)
        return 1

    stats = result.stats
    print(f"\n[autoweave] Done → {output_dir}")
    print(f"  Rows            : {stats.row_count:,}")
    print(f"  Projects        : {len(stats.projects)}")
    print(f"  Total income    : {stats.total_income:,.2f} ({stats.income_label})")
    print(f"  Total hours     : {stats.total_duration:,.2f}")
    print(f"  Hourly rate     : {stats.overall_ratio:,.2f}")
    print(f"  Buckets         : {len(result.charts_manifest['buckets'])}")
    for chart_id in METRICS:
        print(f"  chart_{chart_id:<9}: {result.charts[chart_id]}")
    print(f"  Export          : {result.export_path}")

    if args.report:
        try:
            report_path = run_report(output_dir)
        except AnalysisError as exc:
            print(f"[autoweave] ERROR: {exc}", file=sys.stderr)
            return 1
        print(f"  Report          : {report_path}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
