"""
timestamps.py

Monotonic absolute-tick reconstruction from a narrow wrapping hardware counter.

The hardware timestamp is a `width_bits` counter sampled once per event. The
reconstructor keeps the last raw value plus a running wrap adjustment; a raw
value lower than the previous one means the counter wrapped exactly once.

Known limitation: more than one wrap between two consecutive events cannot be
seen from the raw values alone. Callers can compare `last_delta` against a
threshold (see TraceStatsEngine) to flag suspicious steps.
"""

from __future__ import annotations

from typing import Optional

from trace_stats.errors import TimestampOriginError
from trace_stats.wrapping import counter_modulus, wrap_corrected


class MonotonicTimeReconstructor:
    """Turns per-event raw ticks into a non-decreasing AbsoluteTick."""

    def __init__(self, width_bits: int = 32) -> None:
        self.width_bits = width_bits
        self.modulus = counter_modulus(width_bits)
        self._last_raw: Optional[int] = None
        self._wraps = 0
        self._origin: Optional[int] = None
        self._current = 0
        self._last_delta = 0

    @property
    def is_initialized(self) -> bool:
        return self._origin is not None

    @property
    def origin(self) -> int:
        if self._origin is None:
            raise TimestampOriginError("session origin has not been established")
        return self._origin

    @property
    def current(self) -> int:
        """Last AbsoluteTick produced in this session (0 before initialization)."""
        return self._current

    @property
    def last_delta(self) -> int:
        """Ticks between the two most recent observations."""
        return self._last_delta

    @property
    def wraps(self) -> int:
        return self._wraps

    def initialize(self, first_raw_tick: int, wraparound_count: int = 0) -> int:
        """Establish the session origin from the first event and the header wrap count."""
        raw = first_raw_tick & (self.modulus - 1)
        self._wraps = wraparound_count
        self._last_raw = raw
        self._current = wrap_corrected(raw, wraparound_count, self.width_bits)
        self._origin = self._current
        self._last_delta = 0
        return self._current

    def elapsed(self, raw_tick: int) -> int:
        """Return the AbsoluteTick for a raw tick observed after initialization."""
        if self._last_raw is None:
            raise TimestampOriginError("elapsed() called before initialize()")
        raw = raw_tick & (self.modulus - 1)
        if raw < self._last_raw:
            self._wraps += 1
        self._last_raw = raw
        now = wrap_corrected(raw, self._wraps, self.width_bits)
        self._last_delta = now - self._current
        self._current = now
        return now

    def relative(self, absolute_tick: int) -> int:
        """Ticks since the session origin."""
        return absolute_tick - self.origin

    def on_session_reset(self) -> None:
        """Forget the origin; the next event re-initializes the session."""
        self._last_raw = None
        self._wraps = 0
        self._origin = None
        self._current = 0
        self._last_delta = 0
