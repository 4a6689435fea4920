"""Tests for config loading and validation."""

from datetime import datetime, timezone
from pathlib import Path

import pytest

from tradesim.core.config import (
    ExitMode,
    SimulationConfig,
    SizingMode,
    StrategyKind,
    TrailingType,
    load_config,
)
from tradesim.core.errors import ConfigError

ENV_KEYS = (
    "SYMBOL", "TIMEFRAME", "INITIAL_BALANCE", "COMMISSION_BPS", "SLIPPAGE_BPS",
    "STRATEGY_KIND", "EXIT_MODE", "MAX_LOTS", "LOG_LEVEL", "DATA_DIR", "START_DATE", "END_DATE",
)

CONFIG_YAML = """
simulation:
  symbol: btcusdt
  timeframe: 1h
  initial_balance: 50000
  commission_bps: 10
strategy:
  kind: volatility_regime
  atr_decline_threshold: 0.08
position:
  max_lots: 4
  exit_mode: lifo
trailing_stop:
  enabled: true
  type: percentage
risk:
  max_consecutive_losses: 3
  position_sizing_mode: conservative
symbols:
  - BTCUSDT
  - symbol: ethusdt
    position:
      position_size: 2.0
    strategy:
      kind: crossover
portfolio:
  max_concurrent_positions: 2
  share_risk_manager: true
logging:
  level: DEBUG
data_dir: candles
"""


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def write_config(tmp_path: Path, text: str = CONFIG_YAML) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_load_config_from_yaml(tmp_path):
    cfg = load_config(write_config(tmp_path), project_root=tmp_path)
    sim = cfg.simulation
    assert sim.symbol == "BTCUSDT"
    assert sim.timeframe_minutes == 60
    assert sim.initial_balance == 50000.0
    assert sim.strategy.kind is StrategyKind.VOLATILITY_REGIME
    assert sim.strategy.atr_decline_threshold == 0.08
    assert sim.position.exit_mode is ExitMode.LIFO
    assert sim.trailing_stop.type is TrailingType.PERCENTAGE
    assert sim.risk.position_sizing_mode is SizingMode.CONSERVATIVE
    assert cfg.log_level == "DEBUG"
    assert cfg.data_dir == Path("candles")


def test_symbol_entries_override_base(tmp_path):
    cfg = load_config(write_config(tmp_path), project_root=tmp_path)
    btc, eth = cfg.portfolio.symbols
    assert btc.symbol == "BTCUSDT"
    assert btc.position.position_size == 1.0
    assert eth.symbol == "ETHUSDT"
    assert eth.position.position_size == 2.0
    assert eth.position.max_lots == 4
    assert eth.strategy.kind is StrategyKind.CROSSOVER
    assert eth.trailing_stop.enabled
    assert cfg.portfolio.max_concurrent_positions == 2
    assert cfg.portfolio.share_risk_manager
    assert cfg.portfolio.total_initial_balance == 100000.0


def test_env_overrides_yaml(tmp_path, monkeypatch):
    monkeypatch.setenv("SYMBOL", "solusdt")
    monkeypatch.setenv("EXIT_MODE", "FIFO")
    monkeypatch.setenv("MAX_LOTS", "2")
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    cfg = load_config(write_config(tmp_path), project_root=tmp_path)
    assert cfg.simulation.symbol == "SOLUSDT"
    assert cfg.simulation.position.exit_mode is ExitMode.FIFO
    assert cfg.simulation.position.max_lots == 2
    assert cfg.log_level == "WARNING"


def test_dotenv_file_is_loaded(tmp_path):
    (tmp_path / ".env").write_text("STRATEGY_KIND=crossover\n", encoding="utf-8")
    cfg = load_config(write_config(tmp_path), project_root=tmp_path)
    assert cfg.simulation.strategy.kind is StrategyKind.CROSSOVER


def test_defaults_without_config_file(tmp_path):
    cfg = load_config(project_root=tmp_path)
    assert cfg.simulation.symbol == "BTCUSDT"
    assert cfg.simulation.position.exit_mode is ExitMode.FIFO
    assert cfg.portfolio.symbols == (cfg.simulation,)


def test_missing_explicit_config_file(tmp_path):
    with pytest.raises(ConfigError):
        load_config(tmp_path / "nope.yaml", project_root=tmp_path)


def test_unknown_option_is_an_error(tmp_path):
    with pytest.raises(ConfigError) as e:
        load_config(write_config(tmp_path, "risk:\n  max_loss: 3\n"), project_root=tmp_path)
    assert "max_loss" in e.value.message


def test_unknown_enum_value(tmp_path):
    with pytest.raises(ConfigError):
        load_config(write_config(tmp_path, "position:\n  exit_mode: RANDOM\n"), project_root=tmp_path)


@pytest.mark.parametrize("overrides", [
    {"position": {"max_lots": 0}},
    {"position": {"max_lots": 1, "pyramiding_enabled": True}},
    {"position": {"position_size": 0}},
    {"strategy": {"ema_fast": 21, "ema_slow": 9}},
    {"strategy": {"crossover_pair": "sma"}},
    {"strategy": {"gap_entry_threshold": 0.1, "gap_unwind_threshold": 0.2}},
    {"strategy": {"rsi_long_threshold": 120}},
    {"risk": {"max_drawdown_stop": 0.0}},
    {"risk": {"max_consecutive_losses": 0}},
    {"trailing_stop": {"enabled": True, "type": "PERCENTAGE", "percentage": 1.5}},
    {"timeframe": "15x"},
    {"initial_balance": -1},
    {"max_gap_bars": 0},
    {"start_date": "2024-02-01", "end_date": "2024-01-01"},
    {"start_date": "2024-01-01", "end_date": "2024-01-01"},
    {"start_date": "last tuesday"},
])
def test_validation_errors(overrides):
    with pytest.raises(ConfigError):
        SimulationConfig.from_dict(overrides).validate()


def test_validation_error_names_symbol():
    with pytest.raises(ConfigError) as e:
        SimulationConfig.from_dict({"symbol": "ETHUSDT", "position": {"max_lots": 0}}).validate()
    assert e.value.message.startswith("[ETHUSDT]")
    assert e.value.details["symbol"] == "ETHUSDT"


def test_with_overrides_merges_sections():
    base = SimulationConfig.from_dict({"position": {"max_lots": 4, "exit_mode": "LIFO"}})
    child = base.with_overrides({"position": {"position_size": 3.0}})
    assert child.position.max_lots == 4
    assert child.position.exit_mode is ExitMode.LIFO
    assert child.position.position_size == 3.0
    assert base.position.position_size == 1.0


DATED_YAML = """
simulation:
  symbol: btcusdt
  start_date: 2024-01-01
  end_date: "2024-03-01T12:00:00Z"
symbols:
  - BTCUSDT
  - symbol: ethusdt
    start_date: 2024-02-01
"""


def test_date_window_from_yaml(tmp_path):
    cfg = load_config(write_config(tmp_path, DATED_YAML), project_root=tmp_path)
    sim = cfg.simulation
    assert sim.start_date == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert sim.end_date == datetime(2024, 3, 1, 12, tzinfo=timezone.utc)
    btc, eth = cfg.portfolio.symbols
    assert btc.start_date == sim.start_date
    assert eth.start_date == datetime(2024, 2, 1, tzinfo=timezone.utc)
    assert eth.end_date == sim.end_date


def test_date_window_from_env(tmp_path, monkeypatch):
    monkeypatch.setenv("START_DATE", "2024-01-15T06:00:00+02:00")
    cfg = load_config(write_config(tmp_path, DATED_YAML), project_root=tmp_path)
    assert cfg.simulation.start_date == datetime(2024, 1, 15, 4, tzinfo=timezone.utc)


def test_no_date_window_by_default():
    cfg = SimulationConfig.from_dict({"start_date": "", "end_date": None}).validate()
    assert cfg.start_date is None
    assert cfg.end_date is None


def test_inverted_date_window_error_details():
    with pytest.raises(ConfigError) as e:
        SimulationConfig.from_dict({"start_date": "2024-02-01", "end_date": "2024-01-01"}).validate()
    assert "start_date must be before end_date" in e.value.message
    assert e.value.to_dict()["error_type"] == "ConfigError"
