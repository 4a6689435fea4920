"""Tests for symbol-tagged logging."""

import logging
import threading

import pytest

from tradesim.core.logger import LOGGER_NAME, NO_SYMBOL, current_symbol, setup_logging, symbol_context


@pytest.fixture
def log_file(tmp_path):
    setup_logging("DEBUG", log_dir=tmp_path, log_file="run.log")
    yield tmp_path / "run.log"
    root = logging.getLogger(LOGGER_NAME)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()


def lines(path):
    for handler in logging.getLogger(LOGGER_NAME).handlers:
        handler.flush()
    return path.read_text(encoding="utf-8").splitlines()


def test_records_carry_active_symbol(log_file):
    log = logging.getLogger("tradesim.backtest")
    log.info("before")
    with symbol_context("ETHUSDT"):
        log.info("inside")
        with symbol_context("BTCUSDT"):
            log.info("nested")
        log.info("restored")
    log.info("after")

    by_message = {line.rsplit("| ", 1)[-1]: line for line in lines(log_file)}
    assert "| ETHUSDT " in by_message["inside"]
    assert "| BTCUSDT " in by_message["nested"]
    assert "| ETHUSDT " in by_message["restored"]
    assert f"| {NO_SYMBOL} " in by_message["before"]
    assert f"| {NO_SYMBOL} " in by_message["after"]
    assert current_symbol() == NO_SYMBOL


def test_each_thread_tags_its_own_symbol(log_file):
    log = logging.getLogger("tradesim.backtest")
    barrier = threading.Barrier(2, timeout=10)

    def worker(symbol):
        with symbol_context(symbol):
            barrier.wait()
            for i in range(20):
                log.info("bar %d of %s", i, symbol)

    threads = [threading.Thread(target=worker, args=(s,)) for s in ("AAA", "BBB")]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    records = [line for line in lines(log_file) if " of " in line]
    assert len(records) == 40
    for line in records:
        owner = line.rsplit(" of ", 1)[-1]
        assert f"| {owner} " in line


def test_setup_logging_replaces_handlers(tmp_path):
    setup_logging("INFO", log_dir=tmp_path, log_file="a.log")
    root = setup_logging("WARNING", log_dir=tmp_path, log_file="b.log")
    try:
        assert len(root.handlers) == 2
        assert root.level == logging.WARNING
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
