"""
session.py

Stream-restart handling.

A capture using a ring buffer can restart: raw ticks start again from zero and
object handles are no longer guaranteed to refer to the same objects. Each
contiguous span between restarts is a session. Per-session timestamp origins
are never summed; instead the final AbsoluteTick of each session is recorded as
a SessionBoundary and the grand total is the sum of those boundaries plus the
terminal tick of the last session.

Context records survive restarts with their cumulative totals; the running
interval that was open at the restart is closed at the session's final tick
and is not carried into the next session.
"""

from __future__ import annotations

from typing import List

from trace_stats.contexts import ContextRuntimeAccumulator
from trace_stats.diagnostics import TRACE_RESTART, DiagnosticCollector
from trace_stats.sequence import SequenceTracker
from trace_stats.timestamps import MonotonicTimeReconstructor


class SessionCoordinator:
    def __init__(
        self,
        time: MonotonicTimeReconstructor,
        sequence: SequenceTracker,
        contexts: ContextRuntimeAccumulator,
        diagnostics: DiagnosticCollector,
    ) -> None:
        self.time = time
        self.sequence = sequence
        self.contexts = contexts
        self.diagnostics = diagnostics
        self.boundaries: List[int] = []
        self.restart_count = 0
        self.first_event_observed = False
        self._closed = False

    @property
    def session_count(self) -> int:
        return self.restart_count + 1

    @property
    def terminal_tick(self) -> int:
        """Final AbsoluteTick of the current session (0 if it saw no events)."""
        return self.time.current if self.first_event_observed else 0

    def observe_first_event(self, raw_tick: int, seq: int, wraparound_count: int) -> bool:
        """
        Latch the session origin on its first event.

        Returns True when this call established the origin.
        """
        if self.first_event_observed:
            return False
        self.time.initialize(raw_tick, wraparound_count)
        self.sequence.set_initial_count(seq)
        self.contexts.begin_session(self.time.current)
        self.first_event_observed = True
        self._closed = False
        return True

    def on_restart_detected(self) -> int:
        """Record the boundary and reset transient state. Returns the boundary tick."""
        boundary = self.terminal_tick
        self._close_session()
        self.boundaries.append(boundary)

        self.time.on_session_reset()
        self.sequence.reset()
        self.first_event_observed = False

        self.contexts.reset_session()

        self.restart_count += 1
        self.diagnostics.warning(
            TRACE_RESTART,
            "Detected a restarted trace stream",
            tick=boundary,
            restart_count=self.restart_count,
        )
        return boundary

    def finish(self) -> int:
        """Close the last session at end of stream. Returns the grand total."""
        self._close_session()
        return self.grand_total_ticks()

    def grand_total_ticks(self) -> int:
        return sum(self.boundaries) + self.terminal_tick

    def _close_session(self) -> None:
        if self.first_event_observed and not self._closed:
            self.contexts.close_active(self.time.current)
            self._closed = True
