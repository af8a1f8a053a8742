"""
sequence.py

Dropped-event detection from the per-event wrapping sequence counter.
"""

from __future__ import annotations

from typing import Optional

from trace_stats.errors import SequenceOriginError
from trace_stats.wrapping import counter_modulus, skipped_between


class SequenceTracker:
    """Counts events skipped between consecutive sequence observations."""

    def __init__(self, width_bits: int = 16) -> None:
        self.width_bits = width_bits
        self.modulus = counter_modulus(width_bits)
        self._previous: Optional[int] = None
        self.total_skipped = 0

    @property
    def previous(self) -> Optional[int]:
        return self._previous

    def set_initial_count(self, seq: int) -> None:
        self._previous = seq & (self.modulus - 1)

    def update(self, seq: int) -> int:
        """Return how many events were skipped since the previous call (>= 0)."""
        if self._previous is None:
            raise SequenceOriginError("update() called before set_initial_count()")
        current = seq & (self.modulus - 1)
        skipped = skipped_between(self._previous, current, self.width_bits)
        self._previous = current
        self.total_skipped += skipped
        return skipped

    def reset(self) -> None:
        self._previous = None
