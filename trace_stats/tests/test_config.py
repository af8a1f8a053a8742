"""
Tests for AnalyzerConfig.
"""

import unittest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parents[2]))

from trace_stats.config import AnalyzerConfig


class TestAnalyzerConfig(unittest.TestCase):

    def test_defaults(self):
        config = AnalyzerConfig.from_env({})
        self.assertEqual(config.tick_width_bits, 32)
        self.assertEqual(config.sequence_width_bits, 16)
        self.assertIsNone(config.max_interval_samples)
        self.assertTrue(config.echo_diagnostics)

    def test_from_env(self):
        config = AnalyzerConfig.from_env({
            "TRACE_STATS_TICK_WIDTH_BITS": "24",
            "TRACE_STATS_SEQUENCE_WIDTH_BITS": "0x8",
            "TRACE_STATS_MAX_INTERVAL_SAMPLES": "1000",
            "TRACE_STATS_WRAPAROUND_WARN_FRACTION": "0.25",
            "TRACE_STATS_QUIET": "true",
            "UNRELATED": "x",
        })
        self.assertEqual(config.tick_width_bits, 24)
        self.assertEqual(config.sequence_width_bits, 8)
        self.assertEqual(config.max_interval_samples, 1000)
        self.assertEqual(config.wraparound_warn_fraction, 0.25)
        self.assertFalse(config.echo_diagnostics)

    def test_blank_values_ignored(self):
        config = AnalyzerConfig.from_env({"TRACE_STATS_TICK_WIDTH_BITS": "  "})
        self.assertEqual(config.tick_width_bits, 32)

    def test_non_integer_env_value(self):
        with self.assertRaises(ValueError) as ctx:
            AnalyzerConfig.from_env({"TRACE_STATS_TICK_WIDTH_BITS": "wide"})
        self.assertIn("TRACE_STATS_TICK_WIDTH_BITS", str(ctx.exception))

    def test_out_of_range_values(self):
        with self.assertRaises(ValueError):
            AnalyzerConfig(tick_width_bits=0)
        with self.assertRaises(ValueError):
            AnalyzerConfig(sequence_width_bits=65)
        with self.assertRaises(ValueError):
            AnalyzerConfig(max_interval_samples=0)
        with self.assertRaises(ValueError):
            AnalyzerConfig(wraparound_warn_fraction=1.5)


if __name__ == "__main__":
    unittest.main()
