"""Quantity rounding helpers used by position sizing."""

from __future__ import annotations
import math


def round_quantity(qty: float, min_qty: float, step_size: float) -> float:
    """Round down to step size; return 0 if below min_qty."""
    if qty <= 0:
        return 0.0
    # small epsilon so 0.3 / 0.1 does not floor to 2
    rounded = math.floor(qty / step_size + 1e-9) * step_size
    if rounded < min_qty:
        return 0.0
    return round(rounded, 8)
