"""
stack.py

Unused-stack low-water-mark tracking per task/ISR object handle.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterator, Optional, Tuple


@dataclass
class StackWatermarkRecord:
    low_mark_min: int
    low_mark_max: int
    samples: int = 1

    def update(self, low_mark: int) -> None:
        self.low_mark_min = min(self.low_mark_min, low_mark)
        self.low_mark_max = max(self.low_mark_max, low_mark)
        self.samples += 1

    def format(self) -> str:
        return f"{self.low_mark_min}/{self.low_mark_max}"


class StackWatermarkTracker:
    """Historical min/max of the low-water-mark samples, keyed by object handle."""

    def __init__(self) -> None:
        self._records: Dict[int, StackWatermarkRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def observe(self, handle: int, low_mark: int) -> StackWatermarkRecord:
        rec = self._records.get(handle)
        if rec is None:
            rec = StackWatermarkRecord(low_mark_min=low_mark, low_mark_max=low_mark)
            self._records[handle] = rec
        else:
            rec.update(low_mark)
        return rec

    def record(self, handle: int) -> Optional[StackWatermarkRecord]:
        """Current min/max for `handle`, or None if it was never sampled."""
        return self._records.get(handle)

    def records(self) -> Iterator[Tuple[int, StackWatermarkRecord]]:
        return iter(sorted(self._records.items()))
