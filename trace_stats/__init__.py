"""
trace_stats: streaming runtime statistics for RTOS kernel traces.

Consumes already-decoded trace events (task/ISR switches, unused-stack samples,
user events) and produces per-context runtime, interval-duration and stack
watermark statistics, along with dropped-event and restart signals.

Modules:
- wrapping: wraparound arithmetic helpers for narrow counters
- timestamps: monotonic AbsoluteTick reconstruction
- sequence: dropped-event detection
- contexts: per-context runtime accumulation
- stack: stack low-water-mark tracking
- session: stream-restart coordination
- engine: single-pass driver
- report: pandas report tables
- event_source: JSONL decoded-event reader
- cli: command-line interface

Usage:
    python3 -m trace_stats capture.jsonl --no-events
"""

from trace_stats.config import AnalyzerConfig
from trace_stats.contexts import (
    IDLE_CONTEXT,
    NO_TASK,
    ContextId,
    ContextKind,
    ContextRuntimeAccumulator,
    ContextRuntimeRecord,
)
from trace_stats.diagnostics import Diagnostic, DiagnosticCollector
from trace_stats.engine import TraceStatsEngine
from trace_stats.errors import (
    EventDecodeError,
    MalformedHeaderError,
    TraceRestartedError,
    TraceSourceError,
    TraceStatsError,
)
from trace_stats.event_source import JsonlEventSource
from trace_stats.events import EventType, StreamMetadata, SymbolTable, TimerFrequency, TraceEvent
from trace_stats.report import TraceReport, build_report
from trace_stats.sequence import SequenceTracker
from trace_stats.session import SessionCoordinator
from trace_stats.stack import StackWatermarkRecord, StackWatermarkTracker
from trace_stats.timestamps import MonotonicTimeReconstructor

__all__ = [
    # config
    "AnalyzerConfig",
    # contexts
    "IDLE_CONTEXT",
    "NO_TASK",
    "ContextId",
    "ContextKind",
    "ContextRuntimeAccumulator",
    "ContextRuntimeRecord",
    # diagnostics
    "Diagnostic",
    "DiagnosticCollector",
    # engine
    "TraceStatsEngine",
    # errors
    "EventDecodeError",
    "MalformedHeaderError",
    "TraceRestartedError",
    "TraceSourceError",
    "TraceStatsError",
    # events / source
    "EventType",
    "JsonlEventSource",
    "StreamMetadata",
    "SymbolTable",
    "TimerFrequency",
    "TraceEvent",
    # report
    "TraceReport",
    "build_report",
    # trackers
    "MonotonicTimeReconstructor",
    "SequenceTracker",
    "SessionCoordinator",
    "StackWatermarkRecord",
    "StackWatermarkTracker",
]
