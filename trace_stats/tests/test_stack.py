"""
Tests for stack low-water-mark tracking.
"""

import unittest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parents[2]))

from trace_stats.stack import StackWatermarkTracker


class TestStackWatermarkTracker(unittest.TestCase):

    def test_descending_then_ascending(self):
        """Samples [100, 80, 95] give min=80, max=100."""
        tracker = StackWatermarkTracker()
        for low_mark in (100, 80, 95):
            tracker.observe(7, low_mark)

        rec = tracker.record(7)
        self.assertEqual(rec.low_mark_min, 80)
        self.assertEqual(rec.low_mark_max, 100)
        self.assertEqual(rec.samples, 3)
        self.assertEqual(rec.format(), "80/100")

    def test_repeated_samples_are_idempotent(self):
        tracker = StackWatermarkTracker()
        for _ in range(5):
            tracker.observe(1, 256)
        rec = tracker.record(1)
        self.assertEqual((rec.low_mark_min, rec.low_mark_max), (256, 256))

    def test_unobserved_handle(self):
        tracker = StackWatermarkTracker()
        tracker.observe(1, 10)
        self.assertIsNone(tracker.record(2))
        self.assertEqual(len(tracker), 1)

    def test_records_sorted_by_handle(self):
        tracker = StackWatermarkTracker()
        tracker.observe(9, 1)
        tracker.observe(3, 1)
        self.assertEqual([h for h, _ in tracker.records()], [3, 9])


if __name__ == "__main__":
    unittest.main()
