"""
engine.py

Single-pass driver that folds a decoded event stream into trace statistics.

Control flow per event:
1. First event of a session establishes the tick origin and the initial
   sequence count (no loss signal); later events go through the sequence
   tracker (dropped events) and the time reconstructor (AbsoluteTick).
2. The event-type histogram (keyed by EventTypeKey) is updated; unknown
   kernel events are counted but otherwise not routed.
3. IsrBegin/IsrResume and TaskBegin/TaskResume/TaskActivate drive the context
   accumulator; UnusedStack drives the stack watermark tracker.

Source conditions:
- TraceRestartedError -> SessionCoordinator.on_restart_detected(), then the
  source's metadata is re-acquired and consumption continues.
- EventDecodeError -> diagnostic, event skipped.
- TraceSourceError -> propagated; the run is aborted.
"""

from __future__ import annotations

from collections import Counter
from typing import Callable, Optional

from trace_stats.config import AnalyzerConfig
from trace_stats.contexts import ContextId, ContextRuntimeAccumulator
from trace_stats.diagnostics import (
    DECODE_ERROR,
    DROPPED_EVENTS,
    WRAPAROUND_SUSPECT,
    DiagnosticCollector,
)
from trace_stats.errors import EventDecodeError, TraceRestartedError
from trace_stats.events import (
    ISR_SWITCH_TYPES,
    TASK_SWITCH_TYPES,
    EventType,
    StreamMetadata,
    TraceEvent,
)
from trace_stats.sequence import SequenceTracker
from trace_stats.session import SessionCoordinator
from trace_stats.stack import StackWatermarkTracker
from trace_stats.timestamps import MonotonicTimeReconstructor

EventObserver = Callable[[TraceEvent, int, StreamMetadata], None]


class TraceStatsEngine:
    def __init__(
        self,
        config: Optional[AnalyzerConfig] = None,
        diagnostics: Optional[DiagnosticCollector] = None,
        on_event: Optional[EventObserver] = None,
    ) -> None:
        self.config = config if config is not None else AnalyzerConfig()
        if diagnostics is None:
            diagnostics = DiagnosticCollector(
                max_items=self.config.max_diagnostics,
                echo=self.config.echo_diagnostics,
            )
        self.diagnostics = diagnostics
        self.on_event = on_event
        self.metadata = StreamMetadata()

        self.contexts = ContextRuntimeAccumulator(
            diagnostics=self.diagnostics,
            max_interval_samples=self.config.max_interval_samples,
        )
        self.stacks = StackWatermarkTracker()
        self.session = SessionCoordinator(
            time=MonotonicTimeReconstructor(self.config.tick_width_bits),
            sequence=SequenceTracker(self.config.sequence_width_bits),
            contexts=self.contexts,
            diagnostics=self.diagnostics,
        )

        self.event_type_counts: Counter = Counter()
        self.total_events = 0
        self.total_dropped = 0
        self.user_event_count = 0

    @property
    def time(self) -> MonotonicTimeReconstructor:
        return self.session.time

    @property
    def sequence(self) -> SequenceTracker:
        return self.session.sequence

    @property
    def restart_count(self) -> int:
        return self.session.restart_count

    @property
    def grand_total_ticks(self) -> int:
        return self.session.grand_total_ticks()

    def apply_metadata(self, metadata: StreamMetadata) -> None:
        """Install stream metadata for the session about to start."""
        self.metadata = metadata
        tick_width = metadata.tick_width_bits or self.config.tick_width_bits
        seq_width = metadata.sequence_width_bits or self.config.sequence_width_bits
        if tick_width != self.time.width_bits:
            self.session.time = MonotonicTimeReconstructor(tick_width)
        if seq_width != self.sequence.width_bits:
            self.session.sequence = SequenceTracker(seq_width)

    def run(self, source) -> "TraceStatsEngine":
        """Consume `source` to exhaustion, then close the final session."""
        self.apply_metadata(source.metadata)
        while True:
            try:
                event = source.read_event()
            except TraceRestartedError:
                self.restart(source.reacquire_metadata())
                continue
            except EventDecodeError as e:
                self.diagnostics.error(DECODE_ERROR, str(e), line=e.line_number)
                continue
            if event is None:
                break
            self.process_event(event)
        self.finish()
        return self

    def restart(self, metadata: Optional[StreamMetadata] = None) -> int:
        """Handle a stream restart; returns the recorded session boundary."""
        boundary = self.session.on_restart_detected()
        if metadata is not None:
            self.apply_metadata(metadata)
        return boundary

    def process_event(self, event: TraceEvent) -> int:
        """Fold one event into the statistics. Returns its AbsoluteTick."""
        if self.session.observe_first_event(event.timestamp, event.event_count, self.metadata.timer_wraparounds):
            dropped = 0
            timestamp = self.time.current
        else:
            dropped = self.sequence.update(event.event_count)
            timestamp = self.time.elapsed(event.timestamp)
            self._check_wraparound(timestamp)

        self.event_type_counts[event.key] += 1
        self.total_events += 1

        if dropped:
            self.diagnostics.warning(
                DROPPED_EVENTS,
                f"Dropped events detected: {dropped} (event_count={event.event_count})",
                tick=timestamp,
                event_count=event.event_count,
                dropped_events=dropped,
            )
            self.total_dropped += dropped

        if event.type in ISR_SWITCH_TYPES:
            self.contexts.on_switch(ContextId.isr(event.handle), timestamp, event.priority)
        elif event.type in TASK_SWITCH_TYPES:
            self.contexts.on_switch(ContextId.task(event.handle), timestamp, event.priority)
        elif event.type is EventType.UNUSED_STACK:
            self.stacks.observe(event.handle, event.low_mark)
        elif event.type is EventType.USER:
            self.user_event_count += 1

        if self.on_event is not None:
            self.on_event(event, timestamp, self.metadata)
        return timestamp

    def finish(self) -> int:
        """Close the running interval of the last session. Returns the grand total."""
        return self.session.finish()

    def _check_wraparound(self, timestamp: int) -> None:
        threshold = self.config.wraparound_warn_fraction * self.time.modulus
        step = self.time.last_delta
        if step > threshold:
            self.diagnostics.warning(
                WRAPAROUND_SUSPECT,
                f"Timestamp advanced {step} ticks in one event (threshold {int(threshold)}); "
                f"additional counter wraparounds may have been missed",
                tick=timestamp,
                step=step,
            )
