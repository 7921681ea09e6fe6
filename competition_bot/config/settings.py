"""Typed session configuration loaded from YAML."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping

import yaml

from competition_bot.config import constants
from competition_bot.errors import ConfigError


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise ConfigError(message)


@dataclass(frozen=True)
class MomentumParams:
    short_window: int = 5
    long_window: int = 20
    momentum_threshold: float = 0.02
    volume_multiplier: float = 1.5
    base_amount: float = 100.0

    def __post_init__(self) -> None:
        _require(self.short_window > 0, "momentum.short_window must be > 0")
        _require(self.long_window >= self.short_window, "momentum.long_window must be >= short_window")
        _require(self.momentum_threshold >= 0, "momentum.momentum_threshold must be >= 0")
        _require(self.volume_multiplier >= 0, "momentum.volume_multiplier must be >= 0")
        _require(self.base_amount >= 0, "momentum.base_amount must be >= 0")


@dataclass(frozen=True)
class MeanReversionParams:
    mean_window: int = 20
    rsi_window: int = 14
    std_dev_multiplier: float = 2.0
    oversold_threshold: float = 30.0
    overbought_threshold: float = 70.0
    min_volume_ratio: float = 0.8
    base_amount: float = 150.0

    def __post_init__(self) -> None:
        _require(self.mean_window > 1, "mean_reversion.mean_window must be > 1")
        _require(self.rsi_window > 0, "mean_reversion.rsi_window must be > 0")
        _require(self.std_dev_multiplier > 0, "mean_reversion.std_dev_multiplier must be > 0")
        _require(
            0 <= self.oversold_threshold < self.overbought_threshold <= 100,
            "mean_reversion thresholds must satisfy 0 <= oversold < overbought <= 100",
        )
        _require(self.min_volume_ratio >= 0, "mean_reversion.min_volume_ratio must be >= 0")
        _require(self.base_amount >= 0, "mean_reversion.base_amount must be >= 0")


@dataclass(frozen=True)
class ArbitrageParams:
    venues: tuple[str, ...] = ("uniswap", "sushiswap", "curve")
    min_profit_threshold: float = 0.003
    gas_price_gwei: float = 20.0
    eth_price_usd: float = 2000.0
    max_notional: float = 1000.0
    max_slippage: float = 0.01

    def __post_init__(self) -> None:
        object.__setattr__(self, "venues", tuple(self.venues))
        _require(len(set(self.venues)) == len(self.venues), "arbitrage.venues must be unique")
        _require(self.min_profit_threshold >= 0, "arbitrage.min_profit_threshold must be >= 0")
        _require(self.gas_price_gwei >= 0, "arbitrage.gas_price_gwei must be >= 0")
        _require(self.eth_price_usd > 0, "arbitrage.eth_price_usd must be > 0")
        _require(self.max_notional >= 0, "arbitrage.max_notional must be >= 0")
        _require(0 < self.max_slippage < 1, "arbitrage.max_slippage must be within (0, 1)")


PARAM_TYPES: dict[str, type] = {
    "momentum": MomentumParams,
    "mean_reversion": MeanReversionParams,
    "arbitrage": ArbitrageParams,
}

_NAME_ALIASES = {
    "meanReversion": "mean_reversion",
    "mean-reversion": "mean_reversion",
}


def canonical_strategy_name(name: str) -> str:
    """Map the accepted spellings of a strategy name onto its registry key."""
    return _NAME_ALIASES.get(name, name)


def build_params(kind: str, raw: Mapping[str, Any] | None) -> Any:
    """Build the typed parameter object for one strategy kind."""
    param_type = PARAM_TYPES.get(kind)
    if param_type is None:
        raise ConfigError(f"unknown strategy: {kind}")
    raw = dict(raw or {})
    known = {f.name for f in fields(param_type)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ConfigError(f"unknown {kind} params: {', '.join(unknown)}")
    try:
        return param_type(**raw)
    except TypeError as exc:
        raise ConfigError(f"invalid {kind} params: {exc}") from exc


@dataclass(frozen=True)
class StrategyConfig:
    """Allocation and parameters for one strategy instance."""

    name: str
    allocation: float
    risk_level: str = "MEDIUM"
    enabled: bool = True
    kind: str = ""
    params: Any = None

    def __post_init__(self) -> None:
        kind = canonical_strategy_name(self.kind or self.name)
        object.__setattr__(self, "kind", kind)
        _require(kind in PARAM_TYPES, f"unknown strategy: {self.name}")
        _require(0 <= self.allocation <= 100, f"{self.name}.allocation must be within [0, 100]")
        _require(isinstance(self.enabled, bool), f"{self.name}.enabled must be true or false, got {self.enabled!r}")
        _require(
            self.risk_level in constants.RISK_LEVEL_MULTIPLIERS,
            f"{self.name}.risk_level must be one of {sorted(constants.RISK_LEVEL_MULTIPLIERS)}",
        )
        if self.params is None:
            object.__setattr__(self, "params", PARAM_TYPES[kind]())
        elif isinstance(self.params, Mapping):
            object.__setattr__(self, "params", build_params(kind, self.params))
        else:
            _require(isinstance(self.params, PARAM_TYPES[kind]), f"{self.name}.params has the wrong type")

    @property
    def risk_multiplier(self) -> float:
        return constants.RISK_LEVEL_MULTIPLIERS[self.risk_level]

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "StrategyConfig":
        if "name" not in raw or "allocation" not in raw:
            raise ConfigError("strategy entries need 'name' and 'allocation'")
        return cls(
            name=str(raw["name"]),
            allocation=float(raw["allocation"]),
            risk_level=str(raw.get("risk_level", "MEDIUM")).upper(),
            enabled=raw.get("enabled", True),
            kind=str(raw.get("kind", "")),
            params=raw.get("params"),
        )


def validate_allocations(strategies: tuple[StrategyConfig, ...] | list[StrategyConfig]) -> None:
    """Reject strategy sets whose enabled allocations do not add up to 100."""
    enabled = [s for s in strategies if s.enabled]
    if not enabled:
        raise ConfigError("at least one strategy must be enabled")
    names = [s.name for s in enabled]
    if len(set(names)) != len(names):
        raise ConfigError("strategy names must be unique")
    total = sum(s.allocation for s in enabled)
    if abs(total - 100.0) > 1e-6:
        raise ConfigError(f"strategy allocations must sum to 100, got {total:g}")


@dataclass(frozen=True)
class RiskLimits:
    max_drawdown: float = 0.15
    max_position_size: float = 0.10
    max_daily_loss: float = 0.05
    risk_per_trade: float = 0.05
    stop_loss: float | None = 0.02
    min_confidence: float = 0.3
    min_notional: float = 10.0
    cash_buffer: float = 0.05
    max_volatility: float = 0.25
    max_concentration: float = 0.30

    def __post_init__(self) -> None:
        for name in ("max_drawdown", "max_position_size", "max_daily_loss", "risk_per_trade"):
            value = getattr(self, name)
            _require(0 < value <= 1, f"risk.{name} must be within (0, 1]")
        _require(self.stop_loss is None or 0 < self.stop_loss < 1, "risk.stop_loss must be within (0, 1)")
        _require(0 <= self.min_confidence <= 1, "risk.min_confidence must be within [0, 1]")
        _require(self.min_notional >= 0, "risk.min_notional must be >= 0")
        _require(0 <= self.cash_buffer < 1, "risk.cash_buffer must be within [0, 1)")
        _require(self.max_volatility > 0, "risk.max_volatility must be > 0")
        _require(0 < self.max_concentration <= 1, "risk.max_concentration must be within (0, 1]")


@dataclass(frozen=True)
class ExecutionSettings:
    submit_timeout_seconds: float = constants.DEFAULT_SUBMIT_TIMEOUT_SECONDS
    max_retries: int = constants.DEFAULT_MAX_SUBMIT_RETRIES
    retry_backoff_seconds: float = 0.5
    fee_rate: float = 0.003
    slippage_bps: float = 25.0
    failure_probability: float = 0.05
    partial_fill_probability: float = 0.0
    min_partial_fill_ratio: float = 0.5
    max_partial_fill_ratio: float = 0.9
    min_latency_seconds: float = 0.5
    max_latency_seconds: float = 2.5

    def __post_init__(self) -> None:
        _require(self.submit_timeout_seconds > 0, "execution.submit_timeout_seconds must be > 0")
        _require(self.max_retries >= 0, "execution.max_retries must be >= 0")
        _require(self.retry_backoff_seconds >= 0, "execution.retry_backoff_seconds must be >= 0")
        _require(0 <= self.failure_probability <= 1, "execution.failure_probability must be within [0, 1]")
        _require(0 <= self.partial_fill_probability <= 1, "execution.partial_fill_probability must be within [0, 1]")
        _require(
            0 < self.min_partial_fill_ratio <= self.max_partial_fill_ratio <= 1,
            "execution partial fill ratios must satisfy 0 < min <= max <= 1",
        )
        _require(
            0 <= self.min_latency_seconds <= self.max_latency_seconds,
            "execution latency bounds must satisfy 0 <= min <= max",
        )


@dataclass(frozen=True)
class MonitorSettings:
    metrics_interval_seconds: float = constants.METRICS_INTERVAL_SECONDS
    health_check_interval_seconds: float = constants.HEALTH_CHECK_INTERVAL_SECONDS
    memory_warning_mb: float = constants.MEMORY_WARNING_MB
    log_dir: str | None = None


def _default_strategies() -> tuple[StrategyConfig, ...]:
    return (
        StrategyConfig(name="momentum", allocation=40, risk_level="MEDIUM"),
        StrategyConfig(name="arbitrage", allocation=35, risk_level="LOW"),
        StrategyConfig(name="meanReversion", allocation=25, risk_level="HIGH"),
    )


@dataclass(frozen=True)
class TraderConfig:
    """Immutable configuration for one trading session."""

    strategies: tuple[StrategyConfig, ...] = field(default_factory=_default_strategies)
    risk: RiskLimits = field(default_factory=RiskLimits)
    trading_pairs: tuple[str, ...] = constants.DEFAULT_TRADING_PAIRS
    tick_seconds: float = constants.DEFAULT_TICK_SECONDS
    duration_hours: float = constants.DEFAULT_DURATION_HOURS
    initial_balance: float = constants.DEFAULT_INITIAL_BALANCE
    history_size: int = constants.DEFAULT_HISTORY_SIZE
    min_trade_interval_seconds: float = constants.MIN_TRADE_INTERVAL_SECONDS
    max_trades_per_day: int = 500
    seed: int = 42
    execution: ExecutionSettings = field(default_factory=ExecutionSettings)
    monitor: MonitorSettings = field(default_factory=MonitorSettings)

    def __post_init__(self) -> None:
        object.__setattr__(self, "strategies", tuple(self.strategies))
        object.__setattr__(self, "trading_pairs", tuple(self.trading_pairs))
        validate_allocations(self.strategies)
        _require(len(self.trading_pairs) > 0, "trading_pairs cannot be empty")
        _require(self.tick_seconds > 0, "tick_seconds must be > 0")
        _require(self.duration_hours > 0, "duration_hours must be > 0")
        _require(self.initial_balance > 0, "initial_balance must be > 0")
        _require(self.history_size > 0, "history_size must be > 0")
        _require(self.min_trade_interval_seconds >= 0, "min_trade_interval_seconds must be >= 0")
        _require(self.max_trades_per_day > 0, "max_trades_per_day must be > 0")

    @property
    def duration_seconds(self) -> float:
        return self.duration_hours * 3600.0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TraderConfig":
        data = dict(data or {})
        kwargs: dict[str, Any] = {}
        if "strategies" in data:
            kwargs["strategies"] = tuple(StrategyConfig.from_dict(s) for s in data.pop("strategies"))
        if "risk" in data:
            kwargs["risk"] = _section(RiskLimits, data.pop("risk"), "risk")
        if "execution" in data:
            kwargs["execution"] = _section(ExecutionSettings, data.pop("execution"), "execution")
        if "monitor" in data:
            kwargs["monitor"] = _section(MonitorSettings, data.pop("monitor"), "monitor")
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"unknown config keys: {', '.join(unknown)}")
        kwargs.update(data)
        try:
            return cls(**kwargs)
        except TypeError as exc:
            raise ConfigError(str(exc)) from exc

    @classmethod
    def from_yaml(cls, path: str | Path) -> "TraderConfig":
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        if data is not None and not isinstance(data, Mapping):
            raise ConfigError(f"{path}: top-level YAML must be a mapping")
        return cls.from_dict(data or {})


def _section(section_type: type, raw: Mapping[str, Any] | None, label: str) -> Any:
    raw = dict(raw or {})
    known = {f.name for f in fields(section_type)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ConfigError(f"unknown {label} keys: {', '.join(unknown)}")
    return section_type(**raw)
