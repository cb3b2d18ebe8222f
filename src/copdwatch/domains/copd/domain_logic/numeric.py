"""Small numeric helpers shared by the scoring and synthesis code."""

from __future__ import annotations

import math


def clamp(value: float, lo: float = 0.0, hi: float = 100.0) -> float:
    """Clamp a value to [lo, hi]."""
    return max(lo, min(hi, value))


def round_half_up(value: float) -> int:
    """Round to the nearest integer, with .5 always rounding up.

    ``round()`` uses banker's rounding, which would turn a 42.5-point score
    into 42 instead of 43.
    """
    return int(math.floor(value + 0.5))
