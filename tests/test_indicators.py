"""Unit tests for indicators."""

import pytest

from conftest import make_bar, make_bars, random_walk
from tradesim.core.errors import IndicatorNotReadyError
from tradesim.indicators import ATR, EMA, MACD, RSI, IndicatorEngine, Supertrend


def feed(indicator, bars):
    return [indicator.update(b) for b in bars]


def test_ema_seed_and_smoothing():
    ema = EMA(3)
    values = feed(ema, make_bars([1.0, 2.0, 3.0, 4.0]))
    assert values[:2] == [None, None]
    assert values[2] == pytest.approx(2.0)
    assert values[3] == pytest.approx(3.0)  # 2 + 0.5 * (4 - 2)


def test_ema_invalid_period():
    with pytest.raises(ValueError):
        EMA(0)


def test_atr_wilder():
    bars = [
        make_bar(0, 9.0, high=10.0, low=8.0),
        make_bar(1, 10.0, high=11.0, low=9.0),
        make_bar(2, 12.0, high=13.0, low=10.0),
    ]
    atr = ATR(2)
    values = feed(atr, bars)
    assert values[0] is None
    assert values[1] == pytest.approx(2.0)
    assert values[2] == pytest.approx(2.5)
    assert atr.warmup == 2


def test_rsi_warmup_and_value():
    rsi = RSI(2)
    values = feed(rsi, make_bars([10.0, 11.0, 10.0, 12.0]))
    assert values[:2] == [None, None]
    assert values[2] == pytest.approx(50.0)
    assert values[3] == pytest.approx(100.0 - 100.0 / 6.0)
    assert rsi.warmup == 3


def test_rsi_edge_cases():
    rising = RSI(3)
    feed(rising, make_bars([1.0, 2.0, 3.0, 4.0, 5.0]))
    assert rising.value == 100.0

    flat = RSI(3)
    feed(flat, make_bars([5.0] * 6))
    assert flat.value == 50.0


def test_macd_warmup_and_flat_series():
    macd = MACD(2, 3, 2)
    values = feed(macd, make_bars([10.0] * 5))
    assert macd.warmup == 4
    assert values[2] is None
    assert values[3] is not None
    assert values[4].macd == pytest.approx(0.0)
    assert values[4].histogram == pytest.approx(0.0)


def test_macd_rejects_bad_periods():
    with pytest.raises(ValueError):
        MACD(26, 12, 9)


def test_supertrend_flips_on_breakdown():
    closes = [10.0 + i for i in range(11)] + [5.0]
    st = Supertrend(3, 1.0)
    values = feed(st, make_bars(closes))
    assert values[1] is None
    ready = [v for v in values if v is not None]
    assert all(v.direction == 1 for v in ready[:-1])
    assert not any(v.flipped for v in ready[:-1])
    assert ready[-1].direction == -1
    assert ready[-1].flipped
    assert ready[-1].value == ready[-1].upper


def test_engine_snapshot_gating():
    engine = IndicatorEngine([EMA(3, name="ema"), ATR(2, name="atr")])
    snaps = [engine.update(b) for b in make_bars([1.0, 2.0, 3.0])]
    assert snaps[0].bar_index == 1
    assert engine.warmup == 3
    assert snaps[1].is_ready(["atr"])
    assert not snaps[1].is_ready()
    with pytest.raises(IndicatorNotReadyError):
        snaps[1]["ema"]
    with pytest.raises(KeyError):
        snaps[2]["missing"]
    assert snaps[2]["ema"] == pytest.approx(2.0)
    assert snaps[1].get("ema", -1.0) == -1.0


def test_engine_rejects_duplicates_and_late_adds():
    with pytest.raises(ValueError):
        IndicatorEngine([EMA(3, name="x"), EMA(5, name="x")])
    engine = IndicatorEngine([EMA(3, name="ema")])
    engine.update(make_bar(0, 1.0))
    with pytest.raises(RuntimeError):
        engine.add(ATR(2))


def test_engine_is_deterministic():
    bars = random_walk(120)

    def run():
        engine = IndicatorEngine([EMA(9, name="ema"), RSI(14), ATR(14), MACD(), Supertrend()])
        return [engine.update(b).values for b in bars]

    assert run() == run()
