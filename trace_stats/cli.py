"""
cli.py

Print trace statistics for a decoded RTOS trace event stream (JSONL).

Usage:
    python3 -m trace_stats capture.jsonl
    python3 -m trace_stats capture.jsonl --no-events --json out/report.json
    python3 -m trace_stats capture.jsonl --user-events
    python3 -m trace_stats --help

Exit codes:
    0  - OK
    2  - CLI usage or configuration error
    70 - Fatal source error (unreadable file, malformed header)
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

import pandas as pd

from trace_stats.config import AnalyzerConfig
from trace_stats.engine import TraceStatsEngine
from trace_stats.errors import TraceSourceError
from trace_stats.event_source import JsonlEventSource
from trace_stats.events import EventType, StreamMetadata, TraceEvent
from trace_stats.report import TraceReport, build_report

EXIT_OK = 0
EXIT_USAGE = 2
EXIT_SOFTWARE = 70


def print_error_chain(err: BaseException) -> None:
    """Print an error followed by each 'Caused by:' link."""
    print(f"ERROR: {err}", file=sys.stderr)
    cause = err.__cause__ or err.__context__
    while cause is not None:
        print(f"Caused by: {cause}", file=sys.stderr)
        cause = cause.__cause__ or cause.__context__


def print_header(metadata: StreamMetadata) -> None:
    print(f"Protocol: {metadata.protocol}")
    print("Header")
    print(f"  - Kernel version: {metadata.kernel_version}")
    print(f"  - Kernel port: {metadata.kernel_port}")
    if metadata.num_cores is not None:
        print(f"  - Cores: {metadata.num_cores}")
    print("Timestamp Info")
    print(f"  - Timer type: {metadata.timer_type}")
    print(f"  - Timer frequency: {metadata.timer_frequency}")
    print(f"  - Timer wraparounds: {metadata.timer_wraparounds}")
    if metadata.os_tick_rate_hz is not None:
        print(f"  - OS tick rate Hz: {metadata.os_tick_rate_hz}")


def format_timestamp_prefix(event: TraceEvent, abs_tick: int, metadata: StreamMetadata, raw: bool) -> str:
    if raw:
        return f"[{event.timestamp}] "
    ns = metadata.ticks_to_ns(abs_tick)
    if ns is None:
        return ""
    secs, rem = divmod(ns, 1_000_000_000)
    return f"[{secs}.{rem // 1_000_000:03d}] "


def make_event_printer(args: argparse.Namespace):
    if args.no_events:
        return None

    def on_event(event: TraceEvent, abs_tick: int, metadata: StreamMetadata) -> None:
        if args.user_events and event.type is not EventType.USER:
            return
        prefix = format_timestamp_prefix(event, abs_tick, metadata, args.raw_timestamps)
        if args.user_events:
            print(f"{prefix}{event.describe()}")
        else:
            print(f"{prefix}{event.key.type_name} : {event.describe()} : {event.event_count}")

    return on_event


def print_table(df: pd.DataFrame) -> None:
    if df.empty:
        print("(none)")
    else:
        print(df.to_string(index=False))
    print()


def print_report(report: TraceReport) -> None:
    print()
    print_table(report.entries)
    print_table(report.event_types)
    print_table(report.runtime)
    print_table(report.durations)
    print_table(report.stacks)

    s = report.summary
    print(f"Total events: {s['total_events']}")
    print(f"Dropped events: {s['dropped_events']}")
    print(f"Trace restarts: {s['trace_restarts']}")
    print(f"Total time (ticks): {s['total_time_ticks']}")
    print(f"Running time (ticks): {s['running_ticks']}")
    print(f"Idle time (ticks): {s['idle_ticks']}")
    print(f"User events: {s['user_events']}")
    if "total_time_ns" in s:
        print(f"Total time (ns): {s['total_time_ns']}")
        print(f"Total time: {s['total_time']}")
    if report.diagnostics:
        print("Diagnostics: " + ", ".join(f"{k}={v}" for k, v in report.diagnostics.items()))


def build_config(args: argparse.Namespace) -> AnalyzerConfig:
    config = AnalyzerConfig.from_env()
    if args.max_interval_samples is not None:
        config.max_interval_samples = args.max_interval_samples
    if args.quiet:
        config.echo_diagnostics = False
    config.validate()
    return config


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="python3 -m trace_stats",
        description="Print RTOS trace statistics from a decoded streaming trace (JSONL)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Full listing and report
  python3 -m trace_stats capture.jsonl

  # Report only, also written as JSON
  python3 -m trace_stats capture.jsonl --no-events --json out/report.json
""",
    )
    parser.add_argument("path", type=Path, help="Path to decoded trace events (JSONL)")
    listing = parser.add_mutually_exclusive_group()
    listing.add_argument("--no-events", action="store_true", help="Don't print events")
    listing.add_argument("--user-events", action="store_true", help="Only print user event formatted strings")
    parser.add_argument(
        "--raw-timestamps", action="store_true", help="Only show the raw timestamp ticks on events"
    )
    parser.add_argument("--json", type=Path, default=None, help="Also write the report as JSON to this path")
    parser.add_argument(
        "--max-interval-samples",
        type=int,
        default=None,
        help="Keep at most N running-interval samples per context (oldest dropped; default unbounded)",
    )
    parser.add_argument("--quiet", action="store_true", help="Don't print diagnostics to stderr")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    try:
        config = build_config(args)
    except ValueError as e:
        print(f"ERROR: Invalid configuration: {e}", file=sys.stderr)
        return EXIT_USAGE

    engine = TraceStatsEngine(config, on_event=make_event_printer(args))

    try:
        with JsonlEventSource.open(args.path) as source:
            if not args.user_events:
                print_header(source.metadata)
            engine.run(source)
    except TraceSourceError as e:
        print_error_chain(e)
        return EXIT_SOFTWARE

    if args.user_events:
        return EXIT_OK

    report = build_report(engine)
    print_report(report)

    if args.json:
        args.json.parent.mkdir(parents=True, exist_ok=True)
        with args.json.open("w", encoding="utf-8") as fh:
            json.dump(report.to_dict(), fh, indent=2, default=str)
        print(f"Report written to: {args.json}", file=sys.stderr)

    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
