"""
wrapping.py

Arithmetic helpers for narrow wrapping counters.

Every function takes the counter width explicitly so the helpers stay
independent of any tracker state.
"""

from __future__ import annotations


def counter_modulus(width_bits: int) -> int:
    """Return 2**width_bits, validating the width."""
    if width_bits <= 0 or width_bits > 64:
        raise ValueError(f"width_bits must be in [1, 64], got {width_bits}")
    return 1 << width_bits


def wrapping_distance(previous: int, current: int, width_bits: int) -> int:
    """
    Forward distance from previous to current on a counter of width_bits.

    Always in [0, 2**width_bits).

    Examples:
        >>> wrapping_distance(254, 1, 8)
        3
        >>> wrapping_distance(10, 10, 8)
        0
    """
    modulus = counter_modulus(width_bits)
    return (current - previous) % modulus


def skipped_between(previous: int, current: int, width_bits: int) -> int:
    """
    Number of counter values skipped between two consecutive observations.

    A step of exactly +1 means nothing was skipped. The result is computed
    modulo the counter width, so it is never negative; an unchanged value
    maps to 2**width_bits - 1.

    Examples:
        >>> skipped_between(254, 1, 8)  # 254 -> 255 -> 0 -> 1
        2
        >>> skipped_between(7, 8, 8)
        0
    """
    modulus = counter_modulus(width_bits)
    return (current - previous - 1) % modulus


def wrap_corrected(raw: int, wraps: int, width_bits: int) -> int:
    """Combine a raw counter value with a wrap count into a wide value."""
    modulus = counter_modulus(width_bits)
    if raw < 0 or raw >= modulus:
        raise ValueError(f"raw value {raw} does not fit in {width_bits} bits")
    if wraps < 0:
        raise ValueError(f"wraps must be >= 0, got {wraps}")
    return wraps * modulus + raw
