"""Data: bar providers (CSV, DataFrame, in-memory)."""

from tradesim.data.provider import (
    DataProvider,
    CsvDataProvider,
    DataFrameDataProvider,
    StaticDataProvider,
    bars_from_dataframe,
    load_bars,
)

__all__ = [
    "DataProvider",
    "CsvDataProvider",
    "DataFrameDataProvider",
    "StaticDataProvider",
    "bars_from_dataframe",
    "load_bars",
]
