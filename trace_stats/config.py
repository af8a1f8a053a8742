"""
config.py

Analyzer configuration.

Precedence (lowest to highest): dataclass defaults, TRACE_STATS_* environment
variables, CLI flags. Counter widths reported by the stream header override the
configured widths for that session.

Environment variables:
    TRACE_STATS_TICK_WIDTH_BITS           hardware tick counter width (default 32)
    TRACE_STATS_SEQUENCE_WIDTH_BITS       per-event sequence counter width (default 16)
    TRACE_STATS_MAX_INTERVAL_SAMPLES      cap on stored running-interval samples
                                          per context (unset = unbounded)
    TRACE_STATS_WRAPAROUND_WARN_FRACTION  flag a tick step larger than this fraction
                                          of the counter range (default 0.5)
    TRACE_STATS_MAX_DIAGNOSTICS           diagnostics kept for the report (default 5000)
    TRACE_STATS_QUIET                     "1"/"true" disables stderr diagnostics
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

ENV_PREFIX = "TRACE_STATS_"

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})


@dataclass
class AnalyzerConfig:
    tick_width_bits: int = 32
    sequence_width_bits: int = 16
    max_interval_samples: Optional[int] = None
    wraparound_warn_fraction: float = 0.5
    max_diagnostics: int = 5000
    echo_diagnostics: bool = True

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        for name in ("tick_width_bits", "sequence_width_bits"):
            value = getattr(self, name)
            if not (1 <= value <= 64):
                raise ValueError(f"{name} must be in [1, 64], got {value}")
        if self.max_interval_samples is not None and self.max_interval_samples <= 0:
            raise ValueError(f"max_interval_samples must be > 0, got {self.max_interval_samples}")
        if not (0.0 < self.wraparound_warn_fraction <= 1.0):
            raise ValueError(f"wraparound_warn_fraction must be in (0, 1], got {self.wraparound_warn_fraction}")
        if self.max_diagnostics < 0:
            raise ValueError(f"max_diagnostics must be >= 0, got {self.max_diagnostics}")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AnalyzerConfig":
        """Build a config from TRACE_STATS_* variables (os.environ by default)."""
        env = os.environ if environ is None else environ

        def get(key: str) -> Optional[str]:
            value = env.get(ENV_PREFIX + key)
            if value is None or not value.strip():
                return None
            return value.strip()

        def get_int(key: str) -> Optional[int]:
            value = get(key)
            if value is None:
                return None
            try:
                return int(value, 0)
            except ValueError as e:
                raise ValueError(f"{ENV_PREFIX}{key} must be an integer, got {value!r}") from e

        kwargs = {}
        for key, attr in (
            ("TICK_WIDTH_BITS", "tick_width_bits"),
            ("SEQUENCE_WIDTH_BITS", "sequence_width_bits"),
            ("MAX_INTERVAL_SAMPLES", "max_interval_samples"),
            ("MAX_DIAGNOSTICS", "max_diagnostics"),
        ):
            value = get_int(key)
            if value is not None:
                kwargs[attr] = value

        fraction = get("WRAPAROUND_WARN_FRACTION")
        if fraction is not None:
            try:
                kwargs["wraparound_warn_fraction"] = float(fraction)
            except ValueError as e:
                raise ValueError(f"{ENV_PREFIX}WRAPAROUND_WARN_FRACTION must be a number, got {fraction!r}") from e

        quiet = get("QUIET")
        if quiet is not None:
            kwargs["echo_diagnostics"] = quiet.lower() not in _TRUE_VALUES

        return cls(**kwargs)
