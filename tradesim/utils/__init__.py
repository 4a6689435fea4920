"""Utils: timeframes, quantity rounding."""

from tradesim.utils.timeframes import timeframe_minutes, timeframe_delta
from tradesim.utils.quantities import round_quantity

__all__ = ["timeframe_minutes", "timeframe_delta", "round_quantity"]
