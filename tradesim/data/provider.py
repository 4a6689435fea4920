"""
Bar sources. The simulation only needs `get_bars(symbol)`; fetching happens
before a symbol's run starts. Bars are passed through in file order so that
ordering problems surface as DataError in the engine instead of being hidden.
"""

from __future__ import annotations
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Mapping, Optional, Sequence

import pandas as pd

from tradesim.core.errors import DataError
from tradesim.core.types import Bar

logger = logging.getLogger("tradesim.data")

REQUIRED_COLUMNS = ("open", "high", "low", "close")
TIME_COLUMNS = ("time", "timestamp", "date", "open_time")


class DataProvider(ABC):

    @abstractmethod
    def get_bars(self, symbol: str) -> list[Bar]:
        """Ordered bars for symbol. Raises DataError when none are available."""
        pass


def bars_from_dataframe(df: pd.DataFrame, symbol: str) -> list[Bar]:
    """OHLCV DataFrame (time/timestamp column + open, high, low, close[, volume]) to Bars."""
    if df is None or df.empty:
        raise DataError(f"No bars for {symbol}", symbol=symbol)
    columns = {c.lower(): c for c in df.columns}
    missing = [c for c in REQUIRED_COLUMNS if c not in columns]
    time_col = next((columns[c] for c in TIME_COLUMNS if c in columns), None)
    if missing or time_col is None:
        raise DataError(
            f"{symbol}: missing columns {missing + ([] if time_col else ['time'])}",
            symbol=symbol,
        )
    times = df[time_col]
    try:
        if pd.api.types.is_numeric_dtype(times):
            # exchange klines: epoch milliseconds
            stamps = pd.to_datetime(times, unit="ms", utc=True)
        else:
            stamps = pd.to_datetime(times, utc=True)
    except (ValueError, TypeError) as e:
        raise DataError(f"{symbol}: unparseable timestamps ({e})", symbol=symbol) from e
    volume = df[columns["volume"]] if "volume" in columns else pd.Series(0.0, index=df.index)
    try:
        ohlc = df[[columns[c] for c in REQUIRED_COLUMNS]].astype(float)
    except ValueError as e:
        raise DataError(f"{symbol}: non-numeric OHLC data ({e})", symbol=symbol) from e
    if ohlc.isna().any().any():
        raise DataError(f"{symbol}: NaN in OHLC data", symbol=symbol)
    return [
        Bar(
            symbol=symbol,
            timestamp=ts.to_pydatetime(),
            open=float(o),
            high=float(h),
            low=float(lo),
            close=float(c),
            volume=float(v),
        )
        for ts, o, h, lo, c, v in zip(stamps, *(ohlc[col] for col in ohlc.columns), volume.fillna(0.0))
    ]


class DataFrameDataProvider(DataProvider):
    """In-memory DataFrames keyed by symbol."""

    def __init__(self, frames: Mapping[str, pd.DataFrame]):
        self.frames = dict(frames)

    def get_bars(self, symbol: str) -> list[Bar]:
        if symbol not in self.frames:
            raise DataError(f"No data for {symbol}", symbol=symbol)
        return bars_from_dataframe(self.frames[symbol], symbol)


class StaticDataProvider(DataProvider):
    """Prebuilt bar lists keyed by symbol."""

    def __init__(self, bars: Mapping[str, Sequence[Bar]]):
        self.bars = {k: list(v) for k, v in bars.items()}

    def get_bars(self, symbol: str) -> list[Bar]:
        bars = self.bars.get(symbol)
        if not bars:
            raise DataError(f"No data for {symbol}", symbol=symbol)
        return list(bars)


class CsvDataProvider(DataProvider):
    """Reads <data_dir>/<SYMBOL>.csv (pattern configurable)."""

    def __init__(self, data_dir: Path, pattern: str = "{symbol}.csv"):
        self.data_dir = Path(data_dir)
        self.pattern = pattern

    def path_for(self, symbol: str) -> Path:
        return self.data_dir / self.pattern.format(symbol=symbol)

    def get_bars(self, symbol: str) -> list[Bar]:
        path = self.path_for(symbol)
        if not path.exists():
            raise DataError(f"No data file for {symbol}: {path}", symbol=symbol)
        try:
            df = pd.read_csv(path)
        except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
            raise DataError(f"{symbol}: unreadable CSV {path}: {e}", symbol=symbol) from e
        bars = bars_from_dataframe(df, symbol)
        logger.info("Loaded %d bars for %s from %s", len(bars), symbol, path)
        return bars


def load_bars(
    provider: DataProvider,
    symbol: str,
    limit: Optional[int] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> list[Bar]:
    """
    Bars from a provider inside [start, end] (both inclusive, either optional),
    then optionally only the last `limit`. An empty window is a DataError.
    """
    bars = provider.get_bars(symbol)
    if start is not None or end is not None:
        bars = [
            b for b in bars
            if (start is None or b.timestamp >= start) and (end is None or b.timestamp <= end)
        ]
        if not bars:
            raise DataError(
                f"No bars for {symbol} between {start or '-'} and {end or '-'}",
                symbol=symbol,
                details={"start": str(start), "end": str(end)},
            )
        logger.debug("%s: %d bars in window %s .. %s", symbol, len(bars), start, end)
    return bars[-limit:] if limit else bars
