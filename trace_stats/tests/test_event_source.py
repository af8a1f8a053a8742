"""
Tests for the JSON-lines event source.

Tests:
- header parsing, including both symbol table layouts
- malformed or missing headers are fatal and chained to their cause
- undecodable lines raise EventDecodeError with the line number
- restart markers and header re-acquisition
- unreadable paths raise TraceSourceError
"""

import io
import json
import tempfile
import unittest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parents[2]))

from trace_stats.errors import (
    EventDecodeError,
    MalformedHeaderError,
    TraceRestartedError,
    TraceSourceError,
)
from trace_stats.event_source import JsonlEventSource, parse_event, parse_symbols
from trace_stats.events import EventType, EventTypeKey


def jsonl(*records):
    return io.StringIO("\n".join(r if isinstance(r, str) else json.dumps(r) for r in records) + "\n")


HEADER = {
    "kind": "header",
    "timer_frequency": 1000000,
    "timer_wraparounds": 2,
    "tick_width_bits": 24,
    "symbols": [
        {"handle": 2, "class": "Task", "symbol": "main"},
        {"handle": 5, "class": "ISR", "symbol": "uart_rx"},
    ],
}


class TestHeader(unittest.TestCase):
    """Tests for stream header handling."""

    def test_header_fields(self):
        source = JsonlEventSource(jsonl(HEADER))
        md = source.metadata
        self.assertEqual(md.timer_frequency.hz, 1000000)
        self.assertEqual(md.timer_wraparounds, 2)
        self.assertEqual(md.tick_width_bits, 24)
        self.assertIsNone(md.sequence_width_bits)
        self.assertEqual(md.symbols.symbol(2), "main")
        self.assertEqual(md.symbols.symbol(5), "uart_rx")
        self.assertIsNone(md.symbols.symbol(9))

    def test_header_defaults_to_unitless(self):
        source = JsonlEventSource(jsonl({"kind": "header"}))
        self.assertTrue(source.metadata.timer_frequency.is_unitless)
        self.assertIsNone(source.metadata.ticks_to_ns(100))

    def test_symbols_mapping_layout(self):
        table = parse_symbols({"0x10": {"class": "Queue", "symbol": "rxq"}, "3": "idle"})
        entries = dict(table.entries())
        self.assertEqual(entries[16].class_name, "Queue")
        self.assertEqual(entries[16].symbol, "rxq")
        self.assertEqual(entries[3].symbol, "idle")

    def test_blank_lines_before_header(self):
        source = JsonlEventSource(io.StringIO("\n\n" + json.dumps(HEADER) + "\n"))
        self.assertEqual(source.line_number, 3)

    def test_empty_stream(self):
        with self.assertRaises(MalformedHeaderError) as ctx:
            JsonlEventSource(io.StringIO(""))
        self.assertIn("stream ended", str(ctx.exception))

    def test_invalid_json_header(self):
        with self.assertRaises(MalformedHeaderError) as ctx:
            JsonlEventSource(io.StringIO("{not json\n"))
        self.assertIsInstance(ctx.exception.__cause__, json.JSONDecodeError)
        self.assertEqual(ctx.exception.line_number, 1)

    def test_first_record_not_a_header(self):
        with self.assertRaises(MalformedHeaderError):
            JsonlEventSource(jsonl({"kind": "event", "type": "TaskReady", "timestamp": 0, "event_count": 0}))

    def test_bad_header_field(self):
        with self.assertRaises(MalformedHeaderError) as ctx:
            JsonlEventSource(jsonl({"kind": "header", "timer_frequency": -5}))
        self.assertIsInstance(ctx.exception.__cause__, ValueError)
        self.assertIsInstance(ctx.exception, TraceSourceError)

    def test_counter_width_out_of_range(self):
        for key, value in (("tick_width_bits", 128), ("sequence_width_bits", 0)):
            with self.assertRaises(MalformedHeaderError) as ctx:
                JsonlEventSource(jsonl({"kind": "header", key: value}))
            self.assertIn(key, str(ctx.exception))
            self.assertIsInstance(ctx.exception.__cause__, ValueError)

    def test_restart_header_width_out_of_range(self):
        source = JsonlEventSource(jsonl(HEADER, {"kind": "restart"}, {"kind": "header", "tick_width_bits": 65}))
        with self.assertRaises(TraceRestartedError):
            source.read_event()
        with self.assertRaises(MalformedHeaderError):
            source.reacquire_metadata()


class TestReadEvent(unittest.TestCase):
    """Tests for event records."""

    def test_events_then_end_of_stream(self):
        source = JsonlEventSource(jsonl(
            HEADER,
            {"kind": "event", "type": "TaskBegin", "timestamp": 120, "event_count": 7, "handle": 2, "priority": 3},
            {"type": "UnusedStack", "timestamp": 130, "event_count": 8, "handle": 2, "low_mark": 96},
        ))
        first = source.read_event()
        self.assertEqual(first.type, EventType.TASK_BEGIN)
        self.assertEqual((first.timestamp, first.event_count, first.handle, first.priority), (120, 7, 2, 3))

        second = source.read_event()
        self.assertEqual(second.type, EventType.UNUSED_STACK)
        self.assertEqual(second.low_mark, 96)

        self.assertIsNone(source.read_event())
        self.assertIsNone(source.read_event())

    def test_decode_error_carries_line_number(self):
        source = JsonlEventSource(jsonl(
            HEADER,
            "this is not json",
            {"type": "TaskBegin", "timestamp": 1, "event_count": 1},
            {"type": "TaskReady", "timestamp": 2, "event_count": 2, "handle": 1},
        ))
        with self.assertRaises(EventDecodeError) as ctx:
            source.read_event()
        self.assertEqual(ctx.exception.line_number, 2)

        # Missing handle on a switch event
        with self.assertRaises(EventDecodeError) as ctx:
            source.read_event()
        self.assertEqual(ctx.exception.line_number, 3)
        self.assertIn("handle", str(ctx.exception))

        # The stream is still usable afterwards
        self.assertEqual(source.read_event().type, EventType.TASK_READY)

    def test_unknown_kind_is_decode_error(self):
        source = JsonlEventSource(jsonl(HEADER, {"kind": "gossip"}))
        with self.assertRaises(EventDecodeError):
            source.read_event()

    def test_restart_and_reacquire(self):
        source = JsonlEventSource(jsonl(
            HEADER,
            {"type": "TaskReady", "timestamp": 5, "event_count": 1, "handle": 2},
            {"kind": "restart"},
            {"kind": "header", "timer_frequency": 2000},
            {"type": "TaskReady", "timestamp": 0, "event_count": 0, "handle": 2},
        ))
        source.read_event()
        with self.assertRaises(TraceRestartedError) as ctx:
            source.read_event()
        self.assertEqual(ctx.exception.line_number, 3)

        md = source.reacquire_metadata()
        self.assertEqual(md.timer_frequency.hz, 2000)
        self.assertIs(source.metadata, md)
        self.assertEqual(source.read_event().timestamp, 0)

    def test_event_by_id_and_extra_fields(self):
        event = parse_event({"id": 0x38, "timestamp": 3, "event_count": 4, "address": 4096, "size": 64})
        self.assertEqual(event.type, EventType.MEMORY_ALLOC)
        self.assertEqual(event.fields, {"address": 4096, "size": 64})
        self.assertEqual(event.describe(), "address=4096 size=64")

    def test_user_event(self):
        event = parse_event({"type": "User", "timestamp": 3, "event_count": 4, "message": "boot ok", "channel": "app"})
        self.assertEqual(event.describe(), "[app] boot ok")

    def test_unrouted_type_decodes_as_unknown(self):
        event = parse_event({"type": "QueueSend", "id": 0x50, "timestamp": 0, "event_count": 2, "handle": 9})
        self.assertIs(event.type, EventType.UNKNOWN)
        self.assertEqual(event.key, EventTypeKey(0x50, "QueueSend"))
        self.assertEqual(event.handle, 9)

    def test_unrouted_id_decodes_as_unknown(self):
        event = parse_event({"id": 0x62, "timestamp": 0, "event_count": 2})
        self.assertIs(event.type, EventType.UNKNOWN)
        self.assertEqual(event.key, EventTypeKey(0x62, "Unknown"))

    def test_known_type_key_ignores_reported_id(self):
        event = parse_event({"type": "TaskReady", "id": 0x30, "timestamp": 0, "event_count": 0, "handle": 1})
        self.assertEqual(event.key, EventType.TASK_READY.key)

    def test_float_integers_accepted(self):
        event = parse_event({"type": "TaskReady", "timestamp": 10.0, "event_count": 1, "handle": 1})
        self.assertEqual(event.timestamp, 10)


class TestOpen(unittest.TestCase):
    """Tests for opening sources from paths."""

    def test_missing_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(TraceSourceError) as ctx:
                JsonlEventSource.open(Path(tmp) / "missing.jsonl")
        self.assertIsInstance(ctx.exception.__cause__, FileNotFoundError)

    def test_open_and_close(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "trace.jsonl"
            path.write_text(json.dumps(HEADER) + "\n", encoding="utf-8")
            with JsonlEventSource.open(path) as source:
                self.assertEqual(source.path, path)
                self.assertIsNone(source.read_event())

    def test_malformed_header_mentions_path(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "trace.jsonl"
            path.write_text("[]\n", encoding="utf-8")
            with self.assertRaises(MalformedHeaderError) as ctx:
                JsonlEventSource.open(path)
        self.assertIn(str(path), str(ctx.exception))


if __name__ == "__main__":
    unittest.main()
