"""
diagnostics.py

Non-fatal conditions detected while analyzing a trace.

Diagnostics never interrupt the analysis. They are collected (bounded) for the
final report and, when echo is enabled, printed to stderr as
"WARNING: ..." / "ERROR: ..." lines as they happen.
"""

from __future__ import annotations

import sys
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, TextIO

WARNING = "WARNING"
ERROR = "ERROR"

# Diagnostic kinds
DROPPED_EVENTS = "dropped_events"
BACKWARDS_TIMESTAMP = "backwards_timestamp"
DECODE_ERROR = "decode_error"
TRACE_RESTART = "trace_restart"
WRAPAROUND_SUSPECT = "wraparound_suspect"


@dataclass
class Diagnostic:
    kind: str
    severity: str  # WARNING / ERROR
    message: str
    tick: Optional[int] = None
    evidence: Dict[str, Any] = field(default_factory=dict)

    def format(self) -> str:
        return f"{self.severity}: {self.message}"


class DiagnosticCollector:
    """Bounded diagnostic buffer; counts every kind even past the cap."""

    def __init__(
        self,
        max_items: int = 5000,
        echo: bool = False,
        stream: Optional[TextIO] = None,
    ) -> None:
        self.items: List[Diagnostic] = []
        self.max_items = max_items
        self.counts: Counter = Counter()
        self.echo = echo
        self._stream = stream

    def add(
        self,
        kind: str,
        severity: str,
        message: str,
        tick: Optional[int] = None,
        evidence: Optional[Dict[str, Any]] = None,
    ) -> Diagnostic:
        diag = Diagnostic(kind=kind, severity=severity, message=message, tick=tick, evidence=evidence or {})
        self.counts[kind] += 1
        if len(self.items) < self.max_items:
            self.items.append(diag)
        if self.echo:
            stream = self._stream if self._stream is not None else sys.stderr
            print(diag.format(), file=stream)
        return diag

    def warning(self, kind: str, message: str, tick: Optional[int] = None, **evidence: Any) -> Diagnostic:
        return self.add(kind, WARNING, message, tick=tick, evidence=evidence)

    def error(self, kind: str, message: str, tick: Optional[int] = None, **evidence: Any) -> Diagnostic:
        return self.add(kind, ERROR, message, tick=tick, evidence=evidence)

    def by_kind(self, kind: str) -> List[Diagnostic]:
        return [d for d in self.items if d.kind == kind]

    def summary(self) -> Dict[str, int]:
        return dict(sorted(self.counts.items()))
