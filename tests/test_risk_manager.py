"""Unit tests for risk.manager."""

import threading
from datetime import datetime, timedelta, timezone

import pytest

from tradesim.core.config import RiskConfig, SizingMode
from tradesim.core.types import ClosedTrade, Direction, ExitReason
from tradesim.risk.manager import RiskManager

T = datetime(2024, 1, 1, tzinfo=timezone.utc)


def trade(pnl, symbol="TEST"):
    return ClosedTrade(
        symbol=symbol,
        direction=Direction.LONG,
        quantity=1.0,
        entry_price=100.0,
        exit_price=100.0 + pnl,
        pnl=pnl,
        pnl_pct=pnl,
        entry_time=T,
        exit_time=T,
        exit_reason=ExitReason.SIGNAL,
    )


def aggressive(**kw):
    return RiskConfig(position_sizing_mode=SizingMode.AGGRESSIVE, **kw)


def test_loss_streak_vetoes_until_a_win():
    rm = RiskManager(aggressive(max_consecutive_losses=2), initial_balance=100000.0)
    rm.record_trade(trade(-1.0))
    assert rm.evaluate("TEST", 1.0, 100.0).allowed is True
    rm.record_trade(trade(-1.0))
    r = rm.evaluate("TEST", 1.0, 100.0)
    assert r.allowed is False
    assert "consecutive losses 2 >= 2" in r.reason
    assert rm.state().trading_halted
    assert rm.state().halt_reason == "loss_streak"

    rm.record_trade(trade(5.0))
    assert rm.state().consecutive_losses == 0
    assert rm.evaluate("TEST", 1.0, 100.0).allowed is True


def test_loss_streak_cooldown_resets_after_bars():
    rm = RiskManager(aggressive(max_consecutive_losses=1, loss_streak_cooldown_bars=2), initial_balance=1000.0)
    rm.record_trade(trade(-1.0))
    assert not rm.evaluate("TEST", 1.0, 1.0).allowed
    rm.mark_to_market("TEST", -1.0)
    assert not rm.evaluate("TEST", 1.0, 1.0).allowed
    rm.mark_to_market("TEST", -1.0)
    assert rm.evaluate("TEST", 1.0, 1.0).allowed


def test_cooldown_counts_bar_times_not_calls():
    rm = RiskManager(aggressive(max_consecutive_losses=1, loss_streak_cooldown_bars=2), initial_balance=1000.0)
    bar = [T + timedelta(minutes=15 * i) for i in range(3)]
    rm.mark_to_market("AAA", 0.0, bar[0])
    rm.record_trade(trade(-1.0, "AAA"))
    # a second symbol and a repeated mark on the same bar time do not advance it
    rm.mark_to_market("BBB", 0.0, bar[0])
    rm.mark_to_market("AAA", -1.0, bar[0])
    rm.mark_to_market("AAA", -1.0, bar[1])
    rm.mark_to_market("BBB", 0.0, bar[1])
    assert not rm.evaluate("AAA", 1.0, 1.0).allowed
    # a lagging symbol reporting an older bar does not either
    rm.mark_to_market("BBB", 0.0, bar[0])
    assert not rm.evaluate("AAA", 1.0, 1.0).allowed
    rm.mark_to_market("BBB", 0.0, bar[2])
    assert rm.evaluate("AAA", 1.0, 1.0).allowed


def test_release_symbol_drops_reservations_and_pnl():
    rm = RiskManager(aggressive(), 1000.0, max_concurrent_positions=1)
    assert rm.evaluate("AAA", 1.0, 10.0, lot_id=1).allowed
    rm.mark_to_market("AAA", -5.0, T)
    rm.mark_to_market("BBB", 2.0, T)
    assert not rm.evaluate("BBB", 1.0, 10.0, lot_id=1).allowed

    rm.release_symbol("AAA")
    state = rm.state()
    assert state.open_positions == 0
    assert state.open_notional == 0.0
    assert state.current_equity == pytest.approx(1002.0)
    assert rm.evaluate("BBB", 1.0, 10.0, lot_id=1).allowed
    # releasing an unknown symbol is a no-op
    rm.release_symbol("CCC")
    assert rm.state().open_positions == 1


def test_drawdown_stop():
    rm = RiskManager(aggressive(max_drawdown_stop=0.10), initial_balance=100000.0)
    rm.mark_to_market("TEST", 10000.0)
    rm.mark_to_market("TEST", -1000.0)
    # peak 110000, equity 99000 -> 10%
    r = rm.evaluate("TEST", 1.0, 100.0)
    assert r.allowed is False
    assert "drawdown" in r.reason
    assert rm.state().current_drawdown == pytest.approx(0.1)


def test_conservative_sizing_shrinks_with_streak():
    rm = RiskManager(RiskConfig(max_consecutive_losses=3), initial_balance=100000.0)
    assert rm.evaluate("TEST", 1.0, 100.0).quantity == pytest.approx(1.0)
    rm.record_trade(trade(-1.0))
    assert rm.evaluate("TEST", 1.0, 100.0).quantity == pytest.approx(0.5)
    rm.record_trade(trade(-1.0))
    assert rm.evaluate("TEST", 1.0, 100.0).quantity == pytest.approx(0.3333)


def test_conservative_size_rounding_to_zero_is_a_veto():
    rm = RiskManager(RiskConfig(min_quantity=0.6, quantity_step=0.1), initial_balance=100000.0)
    rm.record_trade(trade(-1.0))
    r = rm.evaluate("TEST", 1.0, 100.0)
    assert r.allowed is False
    assert "rounds to zero" in r.reason


def test_custom_sizing_fn():
    seen = []

    def half_on_drawdown(qty, state):
        seen.append(state)
        return qty / 2 if state.current_drawdown > 0 else qty

    rm = RiskManager(RiskConfig(position_sizing_mode=SizingMode.CUSTOM), 1000.0, sizing_fn=half_on_drawdown)
    assert rm.evaluate("TEST", 2.0, 10.0).quantity == 2.0
    rm.mark_to_market("TEST", -10.0)
    assert rm.evaluate("TEST", 2.0, 10.0).quantity == 1.0
    assert len(seen) == 2


def test_concurrent_positions_cap():
    rm = RiskManager(aggressive(), 1000.0, max_concurrent_positions=1)
    assert rm.evaluate("AAA", 1.0, 10.0, lot_id=1).allowed
    r = rm.evaluate("BBB", 1.0, 10.0, lot_id=1)
    assert r.allowed is False
    assert "concurrent positions" in r.reason
    # pyramiding the symbol already open is not a new position
    assert rm.evaluate("AAA", 1.0, 10.0, lot_id=2).allowed
    rm.register_close("AAA", 1)
    rm.register_close("AAA", 2)
    assert rm.evaluate("BBB", 1.0, 10.0).allowed


def test_total_risk_cap():
    rm = RiskManager(aggressive(), 1000.0, max_total_risk=0.5)
    rm.register_open("AAA", 1, 400.0)
    r = rm.evaluate("BBB", 2.0, 100.0)
    assert r.allowed is False
    assert "total risk" in r.reason
    assert rm.evaluate("BBB", 1.0, 100.0).allowed


def test_reservation_is_released_on_close():
    rm = RiskManager(aggressive(), 1000.0, max_total_risk=0.5)
    assert rm.evaluate("AAA", 4.0, 100.0, lot_id=7).allowed
    assert rm.state().open_notional == pytest.approx(400.0)
    rm.register_close("AAA", 7)
    assert rm.state().open_notional == 0.0
    assert rm.state().open_positions == 0


def test_shared_manager_is_thread_safe():
    rm = RiskManager(aggressive(max_consecutive_losses=10000), 100000.0, max_concurrent_positions=8)

    def worker(symbol):
        for i in range(200):
            rm.evaluate(symbol, 1.0, 10.0, lot_id=i)
            rm.register_open(symbol, i, 10.0)
            rm.mark_to_market(symbol, float(i % 3))
            rm.register_close(symbol, i)

    threads = [threading.Thread(target=worker, args=(f"S{n}",)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    state = rm.state()
    assert state.open_positions == 0
    assert state.open_notional == 0.0
