"""
Logging setup for simulation runs. Console plus optional file.

Records carry the symbol whose run is active on the emitting thread, so the
interleaved output of a multi-symbol run stays attributable.
"""

from __future__ import annotations
import logging
import sys
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

LOGGER_NAME = "tradesim"
NO_SYMBOL = "-"

_active = threading.local()


def current_symbol() -> str:
    return getattr(_active, "symbol", NO_SYMBOL)


@contextmanager
def symbol_context(symbol: str) -> Iterator[None]:
    """Tag log records from this thread with `symbol` until the block exits."""
    previous = current_symbol()
    _active.symbol = symbol
    try:
        yield
    finally:
        _active.symbol = previous


class SymbolFilter(logging.Filter):
    """Adds `record.symbol` for the format string. Never drops a record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "symbol"):
            record.symbol = current_symbol()
        return True


def setup_logging(
    level: str = "INFO",
    log_dir: Optional[Path] = None,
    log_file: Optional[str] = None,
) -> logging.Logger:
    """
    Configure the package logger: console and optional file, both stamped
    with the active symbol. Calling it again replaces the handlers.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger(LOGGER_NAME)
    root.setLevel(log_level)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    fmt = "%(asctime)s | %(levelname)-8s | %(symbol)-10s | %(name)s | %(message)s"
    date_fmt = "%Y-%m-%d %H:%M:%S"
    formatter = logging.Formatter(fmt, datefmt=date_fmt)
    symbol_filter = SymbolFilter()

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_dir and log_file:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_dir / log_file, encoding="utf-8"))
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(symbol_filter)
        root.addHandler(handler)

    return root
