"""
report.py

Shapes the final engine state into report tables.

Nothing here keeps state; every function takes the engine state it needs plus
the symbol table and tick-to-nanosecond conversion. When the timer frequency
is unitless the physical-time columns are omitted.

Tables (pandas DataFrames):
- entries:    Handle, Address, Class, Symbol
- event types: Count, %, ID, Type            (ascending by count)
- runtime:    Handle, Symbol, Type, Prio, Stack LM Min/Max, Count, Ticks,
              [Nanos, Duration,] %          (ascending by cumulative ticks)
- durations:  Handle, Symbol, Type, Min, Max, Mean, Std Dev, P50, P95 (ticks)
              [+ *_ns columns]
- stacks:     Handle, Symbol, Min, Max, Samples
"""

from __future__ import annotations

import json
import math
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import pandas as pd

from trace_stats.contexts import ContextRuntimeAccumulator
from trace_stats.diagnostics import DiagnosticCollector
from trace_stats.events import SymbolTable
from trace_stats.stack import StackWatermarkTracker

TickConverter = Callable[[float], Optional[int]]

ENTRY_COLUMNS = ["Handle", "Address", "Class", "Symbol"]
EVENT_TYPE_COLUMNS = ["Count", "%", "ID", "Type"]
RUNTIME_COLUMNS = ["Handle", "Symbol", "Type", "Prio", "Stack LM Min/Max", "Count", "Ticks", "%"]
DURATION_COLUMNS = ["Handle", "Symbol", "Type", "Min", "Max", "Mean", "Std Dev", "P50", "P95"]


def format_duration(ns: Optional[int]) -> str:
    """Human readable duration, e.g. 1.500000s, 12.345ms, 800ns."""
    if ns is None:
        return ""
    if ns >= 1_000_000_000:
        return f"{ns / 1e9:.6f}s"
    if ns >= 1_000_000:
        return f"{ns / 1e6:.3f}ms"
    if ns >= 1_000:
        return f"{ns / 1e3:.3f}µs"
    return f"{ns}ns"


def percent(part: float, whole: float) -> float:
    if whole == 0:
        return float("nan")
    return 100.0 * part / whole


def entries_table(symbols: SymbolTable) -> pd.DataFrame:
    rows = [
        {
            "Handle": handle,
            "Address": f"0x{handle:08X}",
            "Class": entry.class_name or "",
            "Symbol": entry.symbol or "",
        }
        for handle, entry in symbols.entries()
    ]
    return pd.DataFrame(rows, columns=ENTRY_COLUMNS)


def event_type_table(counts: Counter, total: int) -> pd.DataFrame:
    """Histogram over EventTypeKey; events without a reported id get an empty ID."""
    items = sorted(
        counts.items(),
        key=lambda kv: (kv[1], -1 if kv[0].event_id is None else kv[0].event_id, kv[0].type_name),
    )
    rows = [
        {
            "Count": count,
            "%": round(percent(count, total), 1),
            "ID": "" if key.event_id is None else f"0x{key.event_id:03X}",
            "Type": key.type_name,
        }
        for key, count in items
    ]
    return pd.DataFrame(rows, columns=EVENT_TYPE_COLUMNS)


def runtime_table(
    contexts: ContextRuntimeAccumulator,
    stacks: StackWatermarkTracker,
    symbols: SymbolTable,
    total_ticks: int,
    ticks_to_ns: Optional[TickConverter] = None,
) -> pd.DataFrame:
    columns = list(RUNTIME_COLUMNS)
    if ticks_to_ns is not None:
        columns[7:7] = ["Nanos", "Duration"]

    rows: List[Dict[str, Any]] = []
    for ctx, rec in contexts.sorted_by_runtime():
        stack = stacks.record(ctx.handle)
        row: Dict[str, Any] = {
            "Handle": ctx.handle,
            "Symbol": symbols.symbol(ctx.handle) or "",
            "Type": ctx.kind.label,
            "Prio": ",".join(str(p) for p in sorted(rec.priorities)),
            "Stack LM Min/Max": stack.format() if stack is not None else "",
            "Count": rec.count,
            "Ticks": rec.total_ticks,
            "%": round(percent(rec.total_ticks, total_ticks), 2),
        }
        if ticks_to_ns is not None:
            ns = ticks_to_ns(rec.total_ticks) or 0
            row["Nanos"] = ns
            row["Duration"] = format_duration(ns)
        rows.append(row)
    return pd.DataFrame(rows, columns=columns)


def duration_table(
    contexts: ContextRuntimeAccumulator,
    symbols: SymbolTable,
    ticks_to_ns: Optional[TickConverter] = None,
) -> pd.DataFrame:
    stat_columns = ["Min", "Max", "Mean", "Std Dev", "P50", "P95"]
    columns = list(DURATION_COLUMNS)
    if ticks_to_ns is not None:
        columns += [f"{c}_ns" for c in stat_columns]

    rows: List[Dict[str, Any]] = []
    for ctx, rec in contexts.sorted_by_runtime():
        stats = rec.interval_stats()
        values = {
            "Min": stats.min,
            "Max": stats.max,
            "Mean": stats.mean,
            "Std Dev": stats.std,
            "P50": stats.p50,
            "P95": stats.p95,
        }
        row: Dict[str, Any] = {
            "Handle": ctx.handle,
            "Symbol": symbols.symbol(ctx.handle) or "",
            "Type": ctx.kind.label,
        }
        row.update(values)
        if ticks_to_ns is not None:
            for name, value in values.items():
                row[f"{name}_ns"] = ticks_to_ns(value) if not math.isnan(value) else None
        rows.append(row)
    return pd.DataFrame(rows, columns=columns)


@dataclass
class TraceReport:
    entries: pd.DataFrame
    event_types: pd.DataFrame
    runtime: pd.DataFrame
    durations: pd.DataFrame
    stacks: pd.DataFrame
    summary: Dict[str, Any]
    diagnostics: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-serialisable view (NaN -> None)."""

        def records(df: pd.DataFrame) -> List[Dict[str, Any]]:
            if df.empty:
                return []
            return json.loads(df.to_json(orient="records", force_ascii=False))

        return {
            "summary": self.summary,
            "diagnostics": self.diagnostics,
            "entries": records(self.entries),
            "event_types": records(self.event_types),
            "runtime": records(self.runtime),
            "durations": records(self.durations),
            "stacks": records(self.stacks),
        }


def build_summary(engine, ticks_to_ns: Optional[TickConverter]) -> Dict[str, Any]:
    total_ticks = engine.grand_total_ticks
    summary: Dict[str, Any] = {
        "total_events": engine.total_events,
        "dropped_events": engine.total_dropped,
        "trace_restarts": engine.restart_count,
        "total_time_ticks": total_ticks,
        "running_ticks": engine.contexts.total_running_ticks,
        "idle_ticks": engine.contexts.idle_ticks,
        "user_events": engine.user_event_count,
    }
    if ticks_to_ns is not None:
        total_ns = ticks_to_ns(total_ticks)
        summary["total_time_ns"] = total_ns
        summary["total_time"] = format_duration(total_ns)
    return summary


def build_report(engine) -> TraceReport:
    """Assemble every table from a finished TraceStatsEngine."""
    metadata = engine.metadata
    ticks_to_ns = None if metadata.timer_frequency.is_unitless else metadata.ticks_to_ns
    diagnostics: DiagnosticCollector = engine.diagnostics

    return TraceReport(
        entries=entries_table(metadata.symbols),
        event_types=event_type_table(engine.event_type_counts, engine.total_events),
        runtime=runtime_table(
            engine.contexts,
            engine.stacks,
            metadata.symbols,
            engine.grand_total_ticks,
            ticks_to_ns,
        ),
        durations=duration_table(engine.contexts, metadata.symbols, ticks_to_ns),
        stacks=stack_table(engine.stacks, metadata.symbols),
        summary=build_summary(engine, ticks_to_ns),
        diagnostics=diagnostics.summary(),
    )


def stack_table(stacks: StackWatermarkTracker, symbols: SymbolTable) -> pd.DataFrame:
    rows = [
        {
            "Handle": handle,
            "Symbol": symbols.symbol(handle) or "",
            "Min": rec.low_mark_min,
            "Max": rec.low_mark_max,
            "Samples": rec.samples,
        }
        for handle, rec in stacks.records()
    ]
    return pd.DataFrame(rows, columns=["Handle", "Symbol", "Min", "Max", "Samples"])
