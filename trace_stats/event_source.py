"""
event_source.py

JSON-lines source of already-decoded trace events.

The binary PSF container and event decoding happen upstream; this adapter reads
their decoded output, one JSON object per line:

    {"kind": "header", "timer_frequency": 1000000, "timer_wraparounds": 0,
     "tick_width_bits": 32, "sequence_width_bits": 16,
     "symbols": [{"handle": 2, "class": "Task", "symbol": "main"}]}
    {"kind": "event", "type": "TaskBegin", "timestamp": 120, "event_count": 7,
     "handle": 2, "priority": 3}
    {"kind": "restart"}

Rules:
- The first non-blank line must be a header; otherwise the source is unusable
  (MalformedHeaderError, fatal). Counter widths outside [1, 64] are malformed.
- Event types without dedicated handling decode as EventType.UNKNOWN with
  their reported `type` name and `id`; they are counted like any other event.
- A restart line raises TraceRestartedError; the caller then calls
  reacquire_metadata(), which reads the header that must follow.
- A line that cannot be decoded raises EventDecodeError and is skipped by the
  caller. `kind` defaults to "event".
- I/O failures are wrapped in TraceSourceError (fatal), chained to the cause.
"""

from __future__ import annotations

import json
import math
from pathlib import Path
from typing import Any, Dict, Optional, TextIO, Union

from trace_stats.errors import (
    EventDecodeError,
    MalformedHeaderError,
    TraceRestartedError,
    TraceSourceError,
)
from trace_stats.events import (
    ISR_SWITCH_TYPES,
    TASK_SWITCH_TYPES,
    EventType,
    StreamMetadata,
    SymbolTable,
    TimerFrequency,
    TraceEvent,
)

# Keys consumed by the decoder; anything else lands in TraceEvent.fields
_EVENT_KEYS = frozenset(
    {"kind", "type", "id", "timestamp", "event_count", "handle", "priority", "low_mark", "message", "channel"}
)


def safe_int(v: Any) -> Optional[int]:
    if isinstance(v, int) and not isinstance(v, bool):
        return v
    if isinstance(v, float) and v.is_integer() and math.isfinite(v):
        return int(v)
    return None


def _require_uint(rec: Dict[str, Any], key: str) -> int:
    value = safe_int(rec.get(key))
    if value is None:
        raise ValueError(f"field '{key}' missing or not an integer")
    if value < 0:
        raise ValueError(f"field '{key}' must be >= 0, got {value}")
    return value


def _optional_uint(rec: Dict[str, Any], key: str) -> Optional[int]:
    if rec.get(key) is None:
        return None
    return _require_uint(rec, key)


def parse_symbols(raw: Any) -> SymbolTable:
    """Accept either a list of {handle, class, symbol} or a {handle: {...}} mapping."""
    table = SymbolTable()
    if raw is None:
        return table
    if isinstance(raw, dict):
        items = []
        for handle, entry in raw.items():
            entry = dict(entry) if isinstance(entry, dict) else {"symbol": entry}
            entry["handle"] = int(handle, 0) if isinstance(handle, str) else handle
            items.append(entry)
    elif isinstance(raw, list):
        items = raw
    else:
        raise ValueError(f"'symbols' must be a list or object, got {type(raw).__name__}")

    for entry in items:
        if not isinstance(entry, dict):
            raise ValueError(f"symbol entry must be an object, got {type(entry).__name__}")
        handle = _require_uint(entry, "handle")
        table.insert(handle, class_name=entry.get("class"), symbol=entry.get("symbol"))
    return table


def _optional_width(rec: Dict[str, Any], key: str) -> Optional[int]:
    value = _optional_uint(rec, key)
    if value is not None and not (1 <= value <= 64):
        raise ValueError(f"field '{key}' must be in [1, 64], got {value}")
    return value


def parse_header(rec: Dict[str, Any]) -> StreamMetadata:
    """Build StreamMetadata from a header record. Raises ValueError on bad fields."""
    if rec.get("kind") != "header":
        raise ValueError(f"expected a header record, got kind={rec.get('kind')!r}")
    return StreamMetadata(
        timer_frequency=TimerFrequency(_optional_uint(rec, "timer_frequency") or 0),
        timer_wraparounds=_optional_uint(rec, "timer_wraparounds") or 0,
        tick_width_bits=_optional_width(rec, "tick_width_bits"),
        sequence_width_bits=_optional_width(rec, "sequence_width_bits"),
        symbols=parse_symbols(rec.get("symbols")),
        protocol=str(rec.get("protocol", "")),
        kernel_version=str(rec.get("kernel_version", "")),
        kernel_port=str(rec.get("kernel_port", "")),
        timer_type=str(rec.get("timer_type", "")),
        os_tick_rate_hz=_optional_uint(rec, "os_tick_rate_hz"),
        num_cores=_optional_uint(rec, "num_cores"),
    )


def parse_event(rec: Dict[str, Any]) -> TraceEvent:
    """
    Build a TraceEvent from an event record. Raises ValueError on bad fields.

    Types the analysis does not route decode as EventType.UNKNOWN, keeping the
    reported name and id.
    """
    event_id = None
    if "id" in rec:
        event_id = _require_uint(rec, "id")
    type_name = None
    if "type" in rec:
        type_name = str(rec["type"])
        try:
            event_type = EventType.from_name(type_name)
        except ValueError:
            event_type = EventType.UNKNOWN
    elif event_id is not None:
        try:
            event_type = EventType.from_id(event_id)
        except ValueError:
            event_type = EventType.UNKNOWN
    else:
        raise ValueError("event record has neither 'type' nor 'id'")
    if event_type is not EventType.UNKNOWN:
        type_name = event_id = None

    event = TraceEvent(
        type=event_type,
        timestamp=_require_uint(rec, "timestamp"),
        event_count=_require_uint(rec, "event_count"),
        handle=_optional_uint(rec, "handle"),
        priority=_optional_uint(rec, "priority"),
        low_mark=_optional_uint(rec, "low_mark"),
        message=rec.get("message"),
        channel=rec.get("channel"),
        type_name=type_name,
        event_id=event_id,
        fields={k: v for k, v in rec.items() if k not in _EVENT_KEYS},
    )

    if event_type in TASK_SWITCH_TYPES or event_type in ISR_SWITCH_TYPES:
        if event.handle is None:
            raise ValueError(f"{event_type} event requires 'handle'")
    elif event_type is EventType.UNUSED_STACK:
        if event.handle is None or event.low_mark is None:
            raise ValueError("UnusedStack event requires 'handle' and 'low_mark'")
    elif event_type is EventType.USER:
        if event.message is not None and not isinstance(event.message, str):
            raise ValueError("User event 'message' must be a string")
    return event


class JsonlEventSource:
    """Sequential, blocking reader of decoded events from a JSONL stream."""

    def __init__(self, stream: TextIO, path: Optional[Path] = None) -> None:
        self._stream = stream
        self.path = path
        self.line_number = 0
        self.metadata: StreamMetadata = self._read_header()

    @classmethod
    def open(cls, path: Union[str, Path]) -> "JsonlEventSource":
        path = Path(path)
        try:
            fh = path.open("r", encoding="utf-8")
        except OSError as e:
            raise TraceSourceError(f"Cannot open trace file: {path}") from e
        try:
            return cls(fh, path)
        except BaseException:
            fh.close()
            raise

    def close(self) -> None:
        self._stream.close()

    def __enter__(self) -> "JsonlEventSource":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _readline(self) -> Optional[str]:
        """Next non-blank line, or None at end of stream."""
        while True:
            try:
                line = self._stream.readline()
            except (OSError, UnicodeDecodeError) as e:
                raise TraceSourceError(
                    f"Failed reading trace stream {self.path or '<stream>'} after line {self.line_number}"
                ) from e
            if not line:
                return None
            self.line_number += 1
            line = line.strip()
            if line:
                return line

    def _read_header(self) -> StreamMetadata:
        line = self._readline()
        if line is None:
            raise MalformedHeaderError(self.path, self.line_number, "stream ended before a header record")
        try:
            rec = json.loads(line)
        except json.JSONDecodeError as e:
            raise MalformedHeaderError(self.path, self.line_number, f"invalid JSON: {e}") from e
        if not isinstance(rec, dict):
            raise MalformedHeaderError(self.path, self.line_number, "header is not a JSON object")
        try:
            return parse_header(rec)
        except ValueError as e:
            raise MalformedHeaderError(self.path, self.line_number, str(e)) from e

    def reacquire_metadata(self) -> StreamMetadata:
        """Read the header that follows a restart marker."""
        self.metadata = self._read_header()
        return self.metadata

    def read_event(self) -> Optional[TraceEvent]:
        """
        Return the next event, or None at end of stream.

        Raises:
            TraceRestartedError: a restart marker was read
            EventDecodeError: the line could not be decoded
            TraceSourceError: the stream could not be read
        """
        line = self._readline()
        if line is None:
            return None

        try:
            rec = json.loads(line)
        except json.JSONDecodeError as e:
            raise EventDecodeError(self.line_number, f"invalid JSON: {e}") from e
        if not isinstance(rec, dict):
            raise EventDecodeError(self.line_number, "record is not a JSON object")

        kind = rec.get("kind", "event")
        if kind == "restart":
            raise TraceRestartedError(self.line_number)
        if kind != "event":
            raise EventDecodeError(self.line_number, f"unexpected record kind {kind!r}")

        try:
            return parse_event(rec)
        except ValueError as e:
            raise EventDecodeError(self.line_number, str(e)) from e
