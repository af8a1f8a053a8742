"""
errors.py

Exception hierarchy for trace statistics.

Taxonomy:
- TraceSourceError: fatal. Source I/O failure or malformed header; aborts the run.
- EventDecodeError: a single event could not be decoded; it is skipped.
- TraceRestartedError: the capture restarted; not a failure, a state transition.
- TimestampOriginError / SequenceOriginError: a tracker was used before its
  origin was established (caller bug).
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional


class TraceStatsError(Exception):
    """Base exception for trace statistics errors."""

    pass


class TraceSourceError(TraceStatsError):
    """Raised when the event source cannot be read. Fatal."""

    pass


@dataclass
class MalformedHeaderError(TraceSourceError):
    """Raised when a stream header is missing or invalid."""

    path: Optional[Path]
    line_number: int
    reason: str
    message: str = ""

    def __post_init__(self):
        if not self.message:
            self.message = (
                f"Malformed stream header.\n"
                f"  File: {self.path}\n"
                f"  Line: {self.line_number}\n"
                f"  Reason: {self.reason}"
            )

    def __str__(self) -> str:
        return self.message


@dataclass
class EventDecodeError(TraceStatsError):
    """Raised when one event record cannot be decoded. Recoverable."""

    line_number: int
    reason: str
    message: str = ""

    def __post_init__(self):
        if not self.message:
            self.message = f"Failed to decode event at line {self.line_number}: {self.reason}"

    def __str__(self) -> str:
        return self.message


@dataclass
class TraceRestartedError(TraceStatsError):
    """Raised by a source when the underlying capture restarted."""

    line_number: int
    message: str = ""

    def __post_init__(self):
        if not self.message:
            self.message = f"Trace stream restarted at line {self.line_number}"

    def __str__(self) -> str:
        return self.message


class TimestampOriginError(TraceStatsError):
    """Raised when an absolute tick is requested before the session origin is set."""

    pass


class SequenceOriginError(TraceStatsError):
    """Raised when a sequence update arrives before the initial count is set."""

    pass
