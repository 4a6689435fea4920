"""Tests for the multi-symbol orchestrator."""

import threading

import pytest

from conftest import ScriptedStrategy, make_bars, random_walk, sim_config, ts
from tradesim.backtesting import MultiSymbolOrchestrator
from tradesim.core.config import PortfolioConfig
from tradesim.core.errors import ConfigError, DataError, InvariantViolation
from tradesim.core.types import Direction, ExitReason, SignalKind, SignalStatus
from tradesim.data import StaticDataProvider

E, X = SignalKind.ENTRY, SignalKind.EXIT
L = Direction.LONG


def portfolio(symbols, **kw):
    return PortfolioConfig(symbols=tuple(sim_config(symbol=s) for s in symbols), **kw)


def scripted(script, on_evaluate=None):
    return lambda cfg: ScriptedStrategy(script, on_evaluate=on_evaluate)


def test_results_in_config_order_and_merged_ledger():
    closes = [100.0 + i for i in range(10)]
    provider = StaticDataProvider({s: make_bars(closes, symbol=s) for s in ("CCC", "AAA", "BBB")})
    orch = MultiSymbolOrchestrator(
        portfolio(["CCC", "AAA", "BBB"]),
        provider,
        strategy_factory=scripted({2: [(E, L)], 5: [(X, L)]}),
    )
    result = orch.run()
    assert [r.symbol for r in result.symbol_results] == ["CCC", "AAA", "BBB"]
    assert result.failed_symbols == []
    assert len(result.trades) == 3
    # same exit time: ties broken by symbol
    assert [t.symbol for t in result.trades] == ["AAA", "BBB", "CCC"]
    assert result.metrics.total_trades == 3
    assert result.metrics.total_pnl == pytest.approx(3 * 3.0)
    assert result.equity_curve[-1].equity == pytest.approx(30000.0 + 9.0)
    assert result.cross_symbol.symbols == ("CCC", "AAA", "BBB")
    assert result.limits.peak_concurrent_positions == 3


def test_data_error_isolated_to_its_symbol():
    good = make_bars([100.0 + i for i in range(10)], symbol="GOOD")
    broken = make_bars([100.0, 101.0, 102.0], symbol="BROKEN")
    provider = StaticDataProvider({"GOOD": good, "BROKEN": [broken[0], broken[2], broken[1]]})
    result = MultiSymbolOrchestrator(
        portfolio(["GOOD", "BROKEN", "MISSING"]),
        provider,
        strategy_factory=scripted({2: [(E, L)]}),
    ).run()
    by_symbol = result.by_symbol
    assert by_symbol["GOOD"].ok
    assert isinstance(by_symbol["BROKEN"].error, DataError)
    assert isinstance(by_symbol["MISSING"].error, DataError)
    assert result.failed_symbols == ["BROKEN", "MISSING"]
    assert [t.symbol for t in result.trades] == ["GOOD"]


def test_default_strategies_from_config():
    provider = StaticDataProvider({s: random_walk(150, seed=n, symbol=s) for n, s in enumerate(["AAA", "BBB"])})
    result = MultiSymbolOrchestrator(portfolio(["AAA", "BBB"]), provider).run()
    assert all(r.ok for r in result.symbol_results)
    total = sum(r.result.total_pnl for r in result.symbol_results)
    assert result.metrics.final_equity == pytest.approx(20000.0 + total)


def test_config_errors_surface_before_any_bar():
    bad = PortfolioConfig(symbols=(sim_config(symbol="AAA"), sim_config(symbol="AAA")))
    with pytest.raises(ConfigError):
        MultiSymbolOrchestrator(bad, StaticDataProvider({}))
    invalid = PortfolioConfig(symbols=(sim_config(symbol="AAA", position={"max_lots": 0}),))
    with pytest.raises(ConfigError):
        MultiSymbolOrchestrator(invalid, StaticDataProvider({}))


def test_invariant_violation_aborts_the_run():
    def explode(ctx):
        if ctx.symbol == "BAD" and ctx.snapshot.bar_index == 3:
            raise InvariantViolation("boom", {"symbol": ctx.symbol})

    provider = StaticDataProvider({s: make_bars([100.0] * 50, symbol=s) for s in ("OK", "BAD")})
    orch = MultiSymbolOrchestrator(
        portfolio(["OK", "BAD"]),
        provider,
        strategy_factory=scripted({}, on_evaluate=explode),
    )
    with pytest.raises(InvariantViolation):
        orch.run()


def test_advisory_limits_reported_without_shared_risk():
    closes = [100.0] * 10
    provider = StaticDataProvider({s: make_bars(closes, symbol=s) for s in ("AAA", "BBB")})
    result = MultiSymbolOrchestrator(
        portfolio(["AAA", "BBB"], max_concurrent_positions=1),
        provider,
        strategy_factory=scripted({2: [(E, L)]}),
    ).run()
    assert len(result.trades) == 2
    assert not result.limits.within_limits
    assert result.limits.breaches[0].limit == "max_concurrent_positions"


def test_shared_risk_manager_enforces_concurrent_cap():
    barrier = threading.Barrier(2, timeout=10)

    def sync(ctx):
        if ctx.snapshot.bar_index == 2:
            barrier.wait()

    closes = [100.0] * 10
    provider = StaticDataProvider({s: make_bars(closes, symbol=s) for s in ("AAA", "BBB")})
    orch = MultiSymbolOrchestrator(
        portfolio(["AAA", "BBB"], max_concurrent_positions=1, share_risk_manager=True, max_workers=2),
        provider,
        strategy_factory=scripted({2: [(E, L)]}, on_evaluate=sync),
    )
    assert orch.shared_risk is not None
    assert orch.shared_risk.initial_balance == 20000.0
    result = orch.run()
    outcomes = [o for r in result.symbol_results for o in r.result.signals]
    assert sorted(o.status.value for o in outcomes) == ["ACCEPTED", "VETOED"]
    vetoed = next(o for o in outcomes if o.status is SignalStatus.VETOED)
    assert "concurrent positions" in vetoed.reason
    assert len(result.trades) == 1
    assert result.limits.within_limits
    assert orch.shared_risk.state().open_positions == 0


def test_failed_symbol_frees_shared_risk_for_siblings():
    # one worker: AAA runs (and fails) before BBB starts
    aaa = make_bars([100.0, 101.0, 102.0, 103.0, 104.0, 105.0], symbol="AAA")
    provider = StaticDataProvider({
        "AAA": [aaa[0], aaa[1], aaa[2], aaa[4], aaa[3], aaa[5]],
        "BBB": make_bars([100.0] * 8, symbol="BBB"),
    })
    orch = MultiSymbolOrchestrator(
        portfolio(["AAA", "BBB"], max_concurrent_positions=1, share_risk_manager=True, max_workers=1),
        provider,
        strategy_factory=scripted({2: [(E, L)]}),
    )
    result = orch.run()
    assert result.failed_symbols == ["AAA"]
    bbb = result.by_symbol["BBB"].result
    assert [o.status for o in bbb.signals] == [SignalStatus.ACCEPTED]
    assert [t.symbol for t in result.trades] == ["BBB"]
    assert orch.shared_risk.state().open_positions == 0


def test_cancelled_run_settles_shared_risk():
    barrier = threading.Barrier(2, timeout=10)
    cancel = threading.Event()

    def sync_then_cancel(ctx):
        if ctx.snapshot.bar_index == 2:
            barrier.wait()
        if ctx.symbol == "AAA" and ctx.snapshot.bar_index == 5:
            cancel.set()

    provider = StaticDataProvider({s: make_bars([100.0] * 50, symbol=s) for s in ("AAA", "BBB")})
    orch = MultiSymbolOrchestrator(
        portfolio(["AAA", "BBB"], share_risk_manager=True, max_workers=2),
        provider,
        strategy_factory=scripted({2: [(E, L)]}, on_evaluate=sync_then_cancel),
    )
    result = orch.run(cancel)
    assert result.cancelled
    assert result.by_symbol["AAA"].result.cancelled
    assert len(result.trades) == 2
    assert result.by_symbol["AAA"].result.trades[0].exit_reason is ExitReason.CANCELLED
    assert orch.shared_risk.state().open_positions == 0


def test_per_symbol_date_window():
    closes = [100.0 + i for i in range(10)]
    provider = StaticDataProvider({s: make_bars(closes, symbol=s) for s in ("AAA", "BBB")})
    cfg = PortfolioConfig(symbols=(
        sim_config(symbol="AAA", start_date=ts(2).isoformat(), end_date=ts(6).isoformat()),
        sim_config(symbol="BBB"),
    ))
    result = MultiSymbolOrchestrator(cfg, provider, strategy_factory=scripted({})).run()
    aaa = result.by_symbol["AAA"].result
    assert aaa.bars_processed == 5
    assert aaa.equity_curve[0].timestamp == ts(2)
    assert aaa.equity_curve[-1].timestamp == ts(6)
    assert result.by_symbol["BBB"].result.bars_processed == 10


def test_empty_date_window_fails_only_that_symbol():
    provider = StaticDataProvider({s: make_bars([100.0] * 5, symbol=s) for s in ("AAA", "BBB")})
    cfg = PortfolioConfig(symbols=(
        sim_config(symbol="AAA", start_date="2030-01-01"),
        sim_config(symbol="BBB"),
    ))
    result = MultiSymbolOrchestrator(cfg, provider, strategy_factory=scripted({})).run()
    assert result.failed_symbols == ["AAA"]
    assert isinstance(result.by_symbol["AAA"].error, DataError)
