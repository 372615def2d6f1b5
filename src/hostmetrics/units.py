"""Unit conversions for raw OS counters.

All scalings go through :class:`fractions.Fraction` so the only rounding
happens once, when the exact quotient is turned into a float.
"""

from __future__ import annotations

import time
from fractions import Fraction

NANOS_PER_SECOND = 10**9
MILLIS_PER_SECOND = 10**3
# Performance counters report durations in 100-nanosecond ticks.
TICKS_PER_SECOND = 10**7


def _scale_down(value: int | float, divisor: int) -> float:
    return float(Fraction(value) / divisor)


def millis_to_seconds(millis: int | float) -> float:
    """Convert a millisecond counter to seconds."""
    return _scale_down(millis, MILLIS_PER_SECOND)


def ticks_to_seconds(ticks: int | float) -> float:
    """Convert 100-ns performance-counter ticks to seconds."""
    return _scale_down(ticks, TICKS_PER_SECOND)


def nanos_to_seconds(nanos: int) -> float:
    return _scale_down(nanos, NANOS_PER_SECOND)


def seconds_to_nanos(seconds: int | float) -> int:
    """Convert epoch seconds (e.g. the boot time) to integer nanoseconds."""
    return int(Fraction(seconds) * NANOS_PER_SECOND)


def now_unix_nano() -> int:
    return time.time_ns()
