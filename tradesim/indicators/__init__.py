"""Indicators: incremental EMA, ATR, RSI, MACD, Supertrend and the per-symbol engine."""

from tradesim.indicators.base import Indicator, IndicatorSnapshot
from tradesim.indicators.trend import EMA, MACD, MACDValue
from tradesim.indicators.momentum import RSI
from tradesim.indicators.volatility import ATR, Supertrend, SupertrendValue
from tradesim.indicators.engine import IndicatorEngine

__all__ = [
    "Indicator",
    "IndicatorSnapshot",
    "EMA",
    "MACD",
    "MACDValue",
    "RSI",
    "ATR",
    "Supertrend",
    "SupertrendValue",
    "IndicatorEngine",
]
