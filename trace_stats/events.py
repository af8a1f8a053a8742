"""
events.py

Typed, already-decoded trace events and stream-level metadata.

Event ids follow the Percepio TraceRecorder streaming (PSF) event codes for the
kernel events the analysis routes. Every other kernel event decodes as
EventType.UNKNOWN and keeps its own name and id, so it is still counted (and
its sequence number still seen by the loss tracker).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, NamedTuple, Optional, Tuple

ONE_SECOND_NS = 1_000_000_000


class EventTypeKey(NamedTuple):
    """Event-type histogram key."""

    event_id: Optional[int]
    type_name: str


class EventType(Enum):
    TRACE_START = ("TraceStart", 0x01)
    TS_CONFIG = ("TsConfig", 0x02)
    OBJECT_NAME = ("ObjectName", 0x03)
    TASK_PRIORITY = ("TaskPriority", 0x04)
    ISR_DEFINE = ("IsrDefine", 0x07)
    TASK_CREATE = ("TaskCreate", 0x10)
    TASK_READY = ("TaskReady", 0x30)
    ISR_BEGIN = ("IsrBegin", 0x33)
    ISR_RESUME = ("IsrResume", 0x34)
    TASK_BEGIN = ("TaskBegin", 0x35)
    TASK_RESUME = ("TaskResume", 0x36)
    TASK_ACTIVATE = ("TaskActivate", 0x37)
    MEMORY_ALLOC = ("MemoryAlloc", 0x38)
    MEMORY_FREE = ("MemoryFree", 0x39)
    USER = ("User", 0x90)
    UNUSED_STACK = ("UnusedStack", 0xEA)
    UNKNOWN = ("Unknown", None)

    def __init__(self, type_name: str, event_id: Optional[int]) -> None:
        self.type_name = type_name
        self.event_id = event_id

    def __str__(self) -> str:
        return self.type_name

    @property
    def key(self) -> EventTypeKey:
        return EventTypeKey(self.event_id, self.type_name)

    @classmethod
    def from_name(cls, name: str) -> "EventType":
        for member in cls:
            if member.type_name == name or member.name == name:
                return member
        raise ValueError(f"unknown event type: {name!r}")

    @classmethod
    def from_id(cls, event_id: int) -> "EventType":
        for member in cls:
            if member.event_id == event_id:
                return member
        raise ValueError(f"unknown event id: 0x{event_id:03X}")


TASK_SWITCH_TYPES = frozenset({EventType.TASK_BEGIN, EventType.TASK_RESUME, EventType.TASK_ACTIVATE})
ISR_SWITCH_TYPES = frozenset({EventType.ISR_BEGIN, EventType.ISR_RESUME})


@dataclass
class TraceEvent:
    """
    One decoded event.

    Payload fields are populated depending on type:
    - context events: handle, priority
    - UnusedStack: handle, low_mark
    - User: message (formatted string), channel
    - Unknown: type_name and/or event_id as reported by the decoder
    """

    type: EventType
    timestamp: int  # raw hardware ticks
    event_count: int  # narrow per-event sequence counter
    handle: Optional[int] = None
    priority: Optional[int] = None
    low_mark: Optional[int] = None
    message: Optional[str] = None
    channel: Optional[str] = None
    type_name: Optional[str] = None
    event_id: Optional[int] = None
    fields: Dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> EventTypeKey:
        if self.type is not EventType.UNKNOWN:
            return self.type.key
        return EventTypeKey(self.event_id, self.type_name or self.type.type_name)

    def describe(self) -> str:
        if self.type is EventType.USER:
            prefix = f"[{self.channel}] " if self.channel else ""
            return f"{prefix}{self.message or ''}"
        parts = []
        if self.handle is not None:
            parts.append(f"handle={self.handle}")
        if self.priority is not None:
            parts.append(f"priority={self.priority}")
        if self.low_mark is not None:
            parts.append(f"low_mark={self.low_mark}")
        for k, v in sorted(self.fields.items()):
            parts.append(f"{k}={v}")
        return " ".join(parts) if parts else self.key.type_name


@dataclass(frozen=True)
class TimerFrequency:
    """Tick frequency in Hz; 0 means unitless (no physical time available)."""

    hz: int

    @property
    def is_unitless(self) -> bool:
        return self.hz == 0

    def __str__(self) -> str:
        return "unitless" if self.is_unitless else f"{self.hz} Hz"


@dataclass
class SymbolEntry:
    class_name: Optional[str] = None
    symbol: Optional[str] = None


class SymbolTable:
    """Object handle -> optional class/name."""

    def __init__(self, entries: Optional[Dict[int, SymbolEntry]] = None) -> None:
        self._entries: Dict[int, SymbolEntry] = dict(entries or {})

    def __len__(self) -> int:
        return len(self._entries)

    def insert(self, handle: int, class_name: Optional[str] = None, symbol: Optional[str] = None) -> None:
        self._entries[handle] = SymbolEntry(class_name=class_name, symbol=symbol)

    def symbol(self, handle: int) -> Optional[str]:
        entry = self._entries.get(handle)
        return entry.symbol if entry is not None else None

    def entries(self) -> Iterator[Tuple[int, SymbolEntry]]:
        return iter(sorted(self._entries.items()))


@dataclass
class StreamMetadata:
    """Header information available before the first event of each session."""

    timer_frequency: TimerFrequency = field(default_factory=lambda: TimerFrequency(0))
    timer_wraparounds: int = 0
    tick_width_bits: Optional[int] = None
    sequence_width_bits: Optional[int] = None
    symbols: SymbolTable = field(default_factory=SymbolTable)
    protocol: str = ""
    kernel_version: str = ""
    kernel_port: str = ""
    timer_type: str = ""
    os_tick_rate_hz: Optional[int] = None
    num_cores: Optional[int] = None

    def ticks_to_ns(self, ticks: float) -> Optional[int]:
        """Convert ticks to nanoseconds, or None when the frequency is unitless."""
        if self.timer_frequency.is_unitless:
            return None
        if ticks != ticks:  # NaN
            return None
        if isinstance(ticks, float):
            return int(round(ticks * ONE_SECOND_NS / self.timer_frequency.hz))
        return int(ticks) * ONE_SECOND_NS // self.timer_frequency.hz
