"""
Load run configuration from config.yaml and .env.

Everything is resolved once into frozen dataclasses with explicit defaults.
Per-symbol entries under `symbols:` are applied on top of the base simulation
config, so every symbol gets a fully specified SimulationConfig.
"""

from __future__ import annotations
import os
from dataclasses import dataclass, field, fields, replace
from datetime import date, datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv

from tradesim.core.errors import ConfigError
from tradesim.utils.timeframes import timeframe_minutes


class StrategyKind(str, Enum):
    CROSSOVER = "crossover"
    VOLATILITY_REGIME = "volatility_regime"


class ExitMode(str, Enum):
    FIFO = "FIFO"
    LIFO = "LIFO"


class TrailingType(str, Enum):
    ATR = "ATR"
    PERCENTAGE = "PERCENTAGE"


class SizingMode(str, Enum):
    CONSERVATIVE = "CONSERVATIVE"
    AGGRESSIVE = "AGGRESSIVE"
    CUSTOM = "CUSTOM"


# Fields parsed from strings into enums when loading from yaml/env/dicts
_ENUM_FIELDS: dict[str, type] = {
    "kind": StrategyKind,
    "exit_mode": ExitMode,
    "type": TrailingType,
    "position_sizing_mode": SizingMode,
}

# Backtest window bounds, inclusive, UTC
_DATE_FIELDS = ("start_date", "end_date")


def _parse_date(key: str, value: Any) -> Optional[datetime]:
    """None, date, datetime or ISO string to an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        try:
            parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError:
            raise ConfigError(f"{key}: not an ISO date {value!r}") from None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass(frozen=True)
class StrategyParams:
    """Strategy identifier plus indicator periods and rule thresholds."""
    kind: StrategyKind = StrategyKind.CROSSOVER
    ema_fast: int = 9
    ema_slow: int = 21
    atr_period: int = 14
    rsi_period: int = 14
    macd_fast: int = 12
    macd_slow: int = 26
    macd_signal: int = 9
    supertrend_period: int = 10
    supertrend_multiplier: float = 3.0
    crossover_pair: str = "ema"  # "ema" | "macd"
    gap_entry_threshold: float = 0.3
    gap_unwind_threshold: float = 0.1
    pyramid_gap_step: float = 0.5
    rsi_long_threshold: float = 50.0
    rsi_short_threshold: float = 50.0
    rsi_exit_long: float = 30.0
    rsi_exit_short: float = 70.0
    atr_expansion_threshold: float = 0.1
    atr_decline_threshold: float = 0.1
    atr_required_for_entry: bool = True
    flatten_on_reversal: bool = False

    def validate(self) -> None:
        for name in ("ema_fast", "ema_slow", "atr_period", "rsi_period", "macd_fast",
                     "macd_slow", "macd_signal", "supertrend_period"):
            if int(getattr(self, name)) < 1:
                raise ConfigError(f"strategy.{name} must be >= 1", {name: getattr(self, name)})
        if self.ema_fast >= self.ema_slow:
            raise ConfigError(
                "strategy.ema_fast must be < strategy.ema_slow",
                {"ema_fast": self.ema_fast, "ema_slow": self.ema_slow},
            )
        if self.macd_fast >= self.macd_slow:
            raise ConfigError(
                "strategy.macd_fast must be < strategy.macd_slow",
                {"macd_fast": self.macd_fast, "macd_slow": self.macd_slow},
            )
        if self.crossover_pair not in ("ema", "macd"):
            raise ConfigError(f"strategy.crossover_pair must be 'ema' or 'macd', got {self.crossover_pair!r}")
        if self.supertrend_multiplier <= 0:
            raise ConfigError("strategy.supertrend_multiplier must be > 0")
        if self.gap_entry_threshold < 0 or self.gap_unwind_threshold < 0 or self.pyramid_gap_step < 0:
            raise ConfigError("strategy gap thresholds must be >= 0")
        if self.gap_unwind_threshold > self.gap_entry_threshold:
            raise ConfigError(
                "strategy.gap_unwind_threshold must not exceed strategy.gap_entry_threshold",
                {"gap_unwind_threshold": self.gap_unwind_threshold,
                 "gap_entry_threshold": self.gap_entry_threshold},
            )
        for name in ("rsi_long_threshold", "rsi_short_threshold", "rsi_exit_long", "rsi_exit_short"):
            value = getattr(self, name)
            if not 0.0 <= value <= 100.0:
                raise ConfigError(f"strategy.{name} must be within [0, 100]", {name: value})
        for name in ("atr_expansion_threshold", "atr_decline_threshold"):
            value = getattr(self, name)
            if not 0.0 <= value < 1.0:
                raise ConfigError(f"strategy.{name} must be within [0, 1)", {name: value})


@dataclass(frozen=True)
class PositionConfig:
    max_lots: int = 3
    pyramiding_enabled: bool = True
    exit_mode: ExitMode = ExitMode.FIFO
    position_size: float = 1.0  # quantity requested per lot

    def validate(self) -> None:
        if self.max_lots < 1:
            raise ConfigError("position.max_lots must be >= 1", {"max_lots": self.max_lots})
        if self.pyramiding_enabled and self.max_lots < 2:
            raise ConfigError(
                "position.pyramiding_enabled requires max_lots >= 2",
                {"max_lots": self.max_lots},
            )
        if self.position_size <= 0:
            raise ConfigError("position.position_size must be > 0", {"position_size": self.position_size})


@dataclass(frozen=True)
class TrailingStopConfig:
    enabled: bool = False
    type: TrailingType = TrailingType.ATR
    atr_multiplier: float = 2.0
    percentage: float = 0.02
    activation_profit: float = 0.01  # fraction of entry price

    def validate(self) -> None:
        if not self.enabled:
            return
        if self.type is TrailingType.ATR and self.atr_multiplier <= 0:
            raise ConfigError("trailing_stop.atr_multiplier must be > 0")
        if self.type is TrailingType.PERCENTAGE and not 0.0 < self.percentage < 1.0:
            raise ConfigError("trailing_stop.percentage must be within (0, 1)")
        if self.activation_profit < 0:
            raise ConfigError("trailing_stop.activation_profit must be >= 0")


@dataclass(frozen=True)
class RiskConfig:
    max_consecutive_losses: int = 3
    max_drawdown_stop: float = 0.10
    position_sizing_mode: SizingMode = SizingMode.CONSERVATIVE
    min_quantity: float = 0.0001
    quantity_step: float = 0.0001
    loss_streak_cooldown_bars: int = 0  # 0 = halt until the next winning trade

    def validate(self) -> None:
        if self.max_consecutive_losses < 1:
            raise ConfigError("risk.max_consecutive_losses must be >= 1")
        if not 0.0 < self.max_drawdown_stop <= 1.0:
            raise ConfigError(
                "risk.max_drawdown_stop must be within (0, 1]",
                {"max_drawdown_stop": self.max_drawdown_stop},
            )
        if self.min_quantity < 0 or self.quantity_step <= 0:
            raise ConfigError("risk.min_quantity must be >= 0 and risk.quantity_step > 0")
        if self.loss_streak_cooldown_bars < 0:
            raise ConfigError("risk.loss_streak_cooldown_bars must be >= 0")


_SECTIONS: dict[str, type] = {
    "strategy": StrategyParams,
    "position": PositionConfig,
    "trailing_stop": TrailingStopConfig,
    "risk": RiskConfig,
}


def _coerce(key: str, value: Any, section: str) -> Any:
    if key in _DATE_FIELDS:
        return _parse_date(key, value)
    enum_cls = _ENUM_FIELDS.get(key)
    if enum_cls is None or isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower() if enum_cls is StrategyKind else str(value).strip().upper())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ConfigError(f"{section}.{key}: unknown value {value!r} (allowed: {allowed})") from None


def _apply(instance: Any, data: Optional[dict], section: str) -> Any:
    """Return `instance` with keys from `data` replaced. Unknown keys are errors."""
    if not data:
        return instance
    if not isinstance(data, dict):
        raise ConfigError(f"{section} must be a mapping, got {type(data).__name__}")
    known = {f.name for f in fields(instance)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown {section} option(s): {', '.join(unknown)}")
    return replace(instance, **{k: _coerce(k, v, section) for k, v in data.items()})


@dataclass(frozen=True)
class SimulationConfig:
    """Fully resolved configuration for one symbol's run."""
    symbol: str = "BTCUSDT"
    timeframe: str = "15m"
    initial_balance: float = 100000.0
    commission_bps: float = 0.0
    slippage_bps: float = 0.0
    max_gap_bars: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    strategy: StrategyParams = field(default_factory=StrategyParams)
    position: PositionConfig = field(default_factory=PositionConfig)
    trailing_stop: TrailingStopConfig = field(default_factory=TrailingStopConfig)
    risk: RiskConfig = field(default_factory=RiskConfig)

    @classmethod
    def from_dict(cls, data: Optional[dict] = None) -> "SimulationConfig":
        return cls().with_overrides(data or {})

    def with_overrides(self, overrides: dict) -> "SimulationConfig":
        """New config with scalar keys replaced and section keys merged."""
        top: dict[str, Any] = {}
        for key, value in overrides.items():
            if key in _SECTIONS:
                top[key] = _apply(getattr(self, key), value, key)
            else:
                top[key] = value
        return _apply(self, top, "simulation")

    @property
    def timeframe_minutes(self) -> int:
        return timeframe_minutes(self.timeframe)

    def validate(self) -> "SimulationConfig":
        if not self.symbol:
            raise ConfigError("symbol is required")
        try:
            timeframe_minutes(self.timeframe)
        except ValueError as e:
            raise ConfigError(str(e), {"symbol": self.symbol}) from e
        if self.initial_balance <= 0:
            raise ConfigError("initial_balance must be > 0", {"symbol": self.symbol})
        if self.commission_bps < 0 or self.slippage_bps < 0:
            raise ConfigError("commission_bps and slippage_bps must be >= 0", {"symbol": self.symbol})
        if self.max_gap_bars is not None and self.max_gap_bars < 1:
            raise ConfigError("max_gap_bars must be >= 1 when set", {"symbol": self.symbol})
        if self.start_date and self.end_date and self.start_date >= self.end_date:
            raise ConfigError(
                f"[{self.symbol}] start_date must be before end_date",
                {"symbol": self.symbol, "start_date": str(self.start_date), "end_date": str(self.end_date)},
            )
        for section in (self.strategy, self.position, self.trailing_stop, self.risk):
            try:
                section.validate()
            except ConfigError as e:
                raise ConfigError(f"[{self.symbol}] {e.message}", {**e.details, "symbol": self.symbol}) from e
        return self


@dataclass(frozen=True)
class PortfolioConfig:
    """Multi-symbol run: per-symbol configs plus global advisory limits."""
    symbols: tuple[SimulationConfig, ...] = ()
    max_concurrent_positions: Optional[int] = None
    max_total_risk: Optional[float] = None  # open entry notional / total initial capital
    share_risk_manager: bool = False
    max_workers: int = 4

    def validate(self) -> "PortfolioConfig":
        if not self.symbols:
            raise ConfigError("portfolio needs at least one symbol")
        names = [s.symbol for s in self.symbols]
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            raise ConfigError(f"duplicate symbols in portfolio: {', '.join(dupes)}")
        if self.max_concurrent_positions is not None and self.max_concurrent_positions < 1:
            raise ConfigError("portfolio.max_concurrent_positions must be >= 1 when set")
        if self.max_total_risk is not None and self.max_total_risk <= 0:
            raise ConfigError("portfolio.max_total_risk must be > 0 when set")
        if self.max_workers < 1:
            raise ConfigError("portfolio.max_workers must be >= 1")
        for cfg in self.symbols:
            cfg.validate()
        return self

    @property
    def total_initial_balance(self) -> float:
        return sum(s.initial_balance for s in self.symbols)


@dataclass(frozen=True)
class Config:
    """Unified configuration. Immutable after load."""
    simulation: SimulationConfig = field(default_factory=SimulationConfig)
    portfolio: PortfolioConfig = field(default_factory=PortfolioConfig)
    log_level: str = "INFO"
    log_dir: Path = Path("logs")
    log_file: str = "tradesim.log"
    data_dir: Path = Path("data")


def _env_path(project_root: Optional[Path] = None) -> Path:
    root = project_root or Path(__file__).resolve().parents[2]
    return root / ".env"


def load_dotenv_if_exists(project_root: Optional[Path] = None) -> None:
    """Load .env from project root if present."""
    path = _env_path(project_root)
    if path.exists():
        load_dotenv(path)


def load_config(config_path: Optional[Path] = None, project_root: Optional[Path] = None) -> Config:
    """Load config.yaml and overlay with env. Raises ConfigError on invalid values."""
    load_dotenv_if_exists(project_root)
    root = project_root or Path(__file__).resolve().parents[2]
    path = config_path or root / "config.yaml"
    data: dict[str, Any] = {}
    if path.exists():
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    elif config_path is not None:
        raise ConfigError(f"Config file not found: {path}")

    def env(key: str, default: str = "") -> str:
        return os.getenv(key, default).strip()

    def env_int(key: str, default: int = 0) -> int:
        try:
            return int(os.getenv(key, str(default)))
        except ValueError:
            return default

    def env_float(key: str, default: float = 0.0) -> float:
        try:
            return float(os.getenv(key, str(default)))
        except ValueError:
            return default

    sim = data.get("simulation", {}) or {}
    strategy = dict(data.get("strategy", {}) or {})
    position = dict(data.get("position", {}) or {})
    logging_cfg = data.get("logging", {}) or {}
    portfolio = data.get("portfolio", {}) or {}

    strategy["kind"] = env("STRATEGY_KIND", str(strategy.get("kind", StrategyKind.CROSSOVER.value)))
    position["exit_mode"] = env("EXIT_MODE", str(position.get("exit_mode", ExitMode.FIFO.value)))
    position["max_lots"] = env_int("MAX_LOTS", position.get("max_lots", PositionConfig.max_lots))

    base = SimulationConfig().with_overrides({
        "symbol": env("SYMBOL", sim.get("symbol", SimulationConfig.symbol)).upper(),
        "timeframe": env("TIMEFRAME", sim.get("timeframe", SimulationConfig.timeframe)),
        "initial_balance": env_float("INITIAL_BALANCE", sim.get("initial_balance", SimulationConfig.initial_balance)),
        "commission_bps": env_float("COMMISSION_BPS", sim.get("commission_bps", 0.0)),
        "slippage_bps": env_float("SLIPPAGE_BPS", sim.get("slippage_bps", 0.0)),
        "max_gap_bars": sim.get("max_gap_bars"),
        "start_date": env("START_DATE") or sim.get("start_date"),
        "end_date": env("END_DATE") or sim.get("end_date"),
        "strategy": strategy,
        "position": position,
        "trailing_stop": data.get("trailing_stop", {}) or {},
        "risk": data.get("risk", {}) or {},
    })
    base.validate()

    symbol_cfgs = []
    for entry in data.get("symbols", []) or []:
        if isinstance(entry, str):
            entry = {"symbol": entry}
        entry = dict(entry)
        if "symbol" not in entry:
            raise ConfigError("every symbols entry needs a symbol")
        entry["symbol"] = str(entry["symbol"]).upper()
        symbol_cfgs.append(base.with_overrides(entry))

    portfolio_cfg = PortfolioConfig(
        symbols=tuple(symbol_cfgs) or (base,),
        max_concurrent_positions=portfolio.get("max_concurrent_positions"),
        max_total_risk=portfolio.get("max_total_risk"),
        share_risk_manager=bool(portfolio.get("share_risk_manager", False)),
        max_workers=int(portfolio.get("max_workers", 4)),
    ).validate()

    return Config(
        simulation=base,
        portfolio=portfolio_cfg,
        log_level=env("LOG_LEVEL", logging_cfg.get("level", "INFO")),
        log_dir=Path(logging_cfg.get("log_dir", "logs")),
        log_file=logging_cfg.get("log_file", "tradesim.log"),
        data_dir=Path(env("DATA_DIR", str(data.get("data_dir", "data")))),
    )
