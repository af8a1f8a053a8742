"""
contexts.py

Per-execution-context runtime accounting driven by switch-in edges.

A context is a task or an ISR, identified by (kind, object handle). Only the
incoming edge is reported by the kernel trace; the outgoing context is implied
by the single active-context pointer. Each switch closes the running interval
of the outgoing context and opens one for the incoming context.

Accounting rules:
- Cumulative running ticks only grow, and only on a switch-out whose timestamp
  is not earlier than the record's last switch-in. A backwards timestamp
  discards the update and is reported as a diagnostic.
- Before the first switch (and after a restart) the idle identity
  ContextId(TASK, NO_TASK) is active. Time spent there without a record is
  counted in `idle_ticks`, so the per-session sum of all cumulative ticks
  plus idle ticks equals the session's elapsed ticks.
- Interval duration statistics (min/max/mean/std) are kept as running moments
  so they stay exact when the stored interval samples are capped.
"""

from __future__ import annotations

import math
from collections import deque
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Deque, Dict, Iterator, List, Optional, Set, Tuple

import numpy as np

from trace_stats.diagnostics import BACKWARDS_TIMESTAMP, DiagnosticCollector

NO_TASK = 0


class ContextKind(IntEnum):
    TASK = 0
    ISR = 1

    @property
    def label(self) -> str:
        return "Task" if self is ContextKind.TASK else "ISR"


@dataclass(frozen=True, order=True)
class ContextId:
    """Tagged execution-context identity; equality and ordering on (kind, handle)."""

    kind: ContextKind
    handle: int

    @classmethod
    def task(cls, handle: int) -> "ContextId":
        return cls(ContextKind.TASK, handle)

    @classmethod
    def isr(cls, handle: int) -> "ContextId":
        return cls(ContextKind.ISR, handle)

    @property
    def is_idle(self) -> bool:
        return self == IDLE_CONTEXT

    def __str__(self) -> str:
        return f"{self.kind.label}({self.handle})"


IDLE_CONTEXT = ContextId(ContextKind.TASK, NO_TASK)


@dataclass
class IntervalStats:
    count: int
    min: float
    max: float
    mean: float
    std: float  # sample standard deviation (ddof=1), NaN below two samples
    p50: float
    p95: float


@dataclass
class ContextRuntimeRecord:
    """Runtime state for one execution context."""

    # Priorities observed on switch-in
    priorities: Set[int] = field(default_factory=set)

    # Timestamp of the last switch-in (None until switched in this session)
    last_switch_in: Optional[int] = None

    # Total ticks spent running, across all sessions
    total_ticks: int = 0

    # Durations of the retained running instances, oldest first
    intervals: Deque[int] = field(default_factory=deque)

    # Number of switch-ins
    count: int = 0

    # Running moments over every closed interval
    n_intervals: int = 0
    _mean: float = 0.0
    _m2: float = 0.0
    _min: Optional[int] = None
    _max: Optional[int] = None
    discarded_samples: int = 0

    @classmethod
    def with_cap(cls, max_interval_samples: Optional[int]) -> "ContextRuntimeRecord":
        return cls(intervals=deque(maxlen=max_interval_samples))

    def switch_in(self, timestamp: int, priority: Optional[int]) -> None:
        self.last_switch_in = timestamp
        self.count += 1
        if priority is not None:
            self.priorities.add(priority)

    def switch_out(self, timestamp: int) -> Optional[int]:
        """
        Close the running interval at `timestamp`.

        Returns the interval length, or None when the update was discarded
        (backwards timestamp, or no open interval).
        """
        if self.last_switch_in is None:
            return None
        if timestamp < self.last_switch_in:
            return None
        delta = timestamp - self.last_switch_in
        self.total_ticks += delta
        self.last_switch_in = timestamp
        self._push_interval(delta)
        return delta

    def _push_interval(self, delta: int) -> None:
        if self.intervals.maxlen is not None and len(self.intervals) == self.intervals.maxlen:
            self.discarded_samples += 1
        self.intervals.append(delta)

        # Welford
        self.n_intervals += 1
        d1 = delta - self._mean
        self._mean += d1 / self.n_intervals
        self._m2 += d1 * (delta - self._mean)
        self._min = delta if self._min is None else min(self._min, delta)
        self._max = delta if self._max is None else max(self._max, delta)

    def reset_session(self) -> None:
        """Forget per-session state; cumulative totals and moments survive."""
        self.last_switch_in = None
        self.intervals.clear()

    def interval_stats(self) -> IntervalStats:
        nan = float("nan")
        if self.n_intervals == 0:
            return IntervalStats(0, nan, nan, nan, nan, nan, nan)
        std = math.sqrt(self._m2 / (self.n_intervals - 1)) if self.n_intervals > 1 else nan
        if self.intervals:
            samples = np.fromiter(self.intervals, dtype=np.float64, count=len(self.intervals))
            p50, p95 = (float(v) for v in np.percentile(samples, [50, 95]))
        else:
            p50 = p95 = nan
        return IntervalStats(
            count=self.n_intervals,
            min=float(self._min),
            max=float(self._max),
            mean=self._mean,
            std=std,
            p50=p50,
            p95=p95,
        )


class ContextRuntimeAccumulator:
    """Owns every ContextRuntimeRecord and the active-context pointer."""

    def __init__(
        self,
        diagnostics: Optional[DiagnosticCollector] = None,
        max_interval_samples: Optional[int] = None,
    ) -> None:
        if max_interval_samples is not None and max_interval_samples <= 0:
            raise ValueError(f"max_interval_samples must be > 0, got {max_interval_samples}")
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticCollector()
        self.max_interval_samples = max_interval_samples
        self._records: Dict[ContextId, ContextRuntimeRecord] = {}
        self.active: ContextId = IDLE_CONTEXT
        self.idle_ticks = 0
        self._idle_since: Optional[int] = None

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, ctx: ContextId) -> bool:
        return ctx in self._records

    def record(self, ctx: ContextId) -> Optional[ContextRuntimeRecord]:
        return self._records.get(ctx)

    def items(self) -> Iterator[Tuple[ContextId, ContextRuntimeRecord]]:
        return iter(self._records.items())

    def sorted_by_runtime(self) -> List[Tuple[ContextId, ContextRuntimeRecord]]:
        """Records ascending by cumulative runtime, ties broken by context id."""
        return sorted(self._records.items(), key=lambda kv: (kv[1].total_ticks, kv[0]))

    @property
    def total_running_ticks(self) -> int:
        return sum(r.total_ticks for r in self._records.values())

    def begin_session(self, origin_tick: int) -> None:
        self.active = IDLE_CONTEXT
        self._idle_since = origin_tick

    def on_switch(self, target: ContextId, timestamp: int, priority: Optional[int]) -> bool:
        """
        Handle a begin/resume/activate edge for `target`.

        Returns True when the active context changed.
        """
        if target == self.active:
            return False

        self._switch_out(self.active, timestamp)

        rec = self._records.get(target)
        if rec is None:
            rec = ContextRuntimeRecord.with_cap(self.max_interval_samples)
            self._records[target] = rec
        rec.switch_in(timestamp, priority)

        self.active = target
        return True

    def close_active(self, timestamp: int) -> None:
        """Close the active context's running interval at a session end."""
        self._switch_out(self.active, timestamp)

    def reset_session(self) -> None:
        self.active = IDLE_CONTEXT
        self._idle_since = None
        for rec in self._records.values():
            rec.reset_session()

    def _switch_out(self, ctx: ContextId, timestamp: int) -> None:
        if ctx.is_idle and self._idle_since is not None:
            # Implicit idle at session start, before any switch-in
            if timestamp >= self._idle_since:
                self.idle_ticks += timestamp - self._idle_since
                self._idle_since = None
            else:
                self._backwards(ctx, timestamp, self._idle_since)
            return

        rec = self._records.get(ctx)
        if rec is None:
            return
        if rec.last_switch_in is not None and timestamp < rec.last_switch_in:
            self._backwards(ctx, timestamp, rec.last_switch_in)
            return
        rec.switch_out(timestamp)

    def _backwards(self, ctx: ContextId, timestamp: int, last: int) -> None:
        self.diagnostics.warning(
            BACKWARDS_TIMESTAMP,
            f"Stats timestamp went backwards for {ctx}: {timestamp} < {last}",
            tick=timestamp,
            context=str(ctx),
            last_switch_in=last,
        )
