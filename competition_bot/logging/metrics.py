"""Metrics summary helpers."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from statistics import mean, pstdev
from typing import Any, Sequence

from competition_bot.accounting.pnl_tracker import PnLTracker
from competition_bot.config.constants import VAR_MIN_SAMPLES, VAR_PERCENTILE


@dataclass(frozen=True)
class MetricsSnapshot:
    """Point-in-time session metrics. Percent fields are 0-100."""

    timestamp: datetime
    uptime_seconds: float
    current_balance: float
    total_trades: int
    successful_trades: int
    failed_trades: int
    total_volume: float
    average_trade_size: float
    total_pnl: float
    total_pnl_pct: float
    win_rate: float
    max_drawdown_pct: float
    current_drawdown_pct: float
    trades_per_hour: float
    sharpe_ratio: float
    value_at_risk: float
    profit_factor: float
    largest_win: float
    largest_loss: float
    max_consecutive_wins: int
    max_consecutive_losses: int
    strategy_performance: dict[str, dict[str, float]] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


def value_at_risk(
    returns: Sequence[float],
    balance: float,
    percentile: float = VAR_PERCENTILE,
    min_samples: int = VAR_MIN_SAMPLES,
) -> float:
    """Historical VaR in USD: the ``percentile`` worst return scaled by ``balance``.

    Returns 0.0 until more than ``min_samples`` returns are available.
    """
    if len(returns) <= min_samples:
        return 0.0
    ordered = sorted(returns)
    index = int(len(ordered) * percentile)
    return abs(ordered[index]) * balance


def sharpe_ratio(returns: Sequence[float]) -> float:
    """Mean over population stddev of per-trade returns, without annualization."""
    if len(returns) < 2:
        return 0.0
    std = pstdev(returns)
    if std == 0:
        return 0.0
    return mean(returns) / std


def summarize_metrics(
    pnl: PnLTracker,
    *,
    total_trades: int,
    successful_trades: int,
    total_volume: float,
    uptime_seconds: float,
    now: datetime | None = None,
) -> MetricsSnapshot:
    """Build a metrics snapshot from the tracker and the raw trade counters."""
    balance = pnl.initial_equity + pnl.realized_pnl
    hours = uptime_seconds / 3600.0
    returns = list(pnl.closing_returns)
    return MetricsSnapshot(
        timestamp=now or datetime.now(timezone.utc),
        uptime_seconds=uptime_seconds,
        current_balance=balance,
        total_trades=total_trades,
        successful_trades=successful_trades,
        failed_trades=total_trades - successful_trades,
        total_volume=total_volume,
        average_trade_size=total_volume / successful_trades if successful_trades else 0.0,
        total_pnl=pnl.realized_pnl,
        total_pnl_pct=(pnl.realized_pnl / pnl.initial_equity * 100.0) if pnl.initial_equity else 0.0,
        win_rate=pnl.win_rate * 100.0,
        max_drawdown_pct=pnl.max_drawdown * 100.0,
        current_drawdown_pct=pnl.current_drawdown * 100.0,
        trades_per_hour=total_trades / hours if hours > 0 else 0.0,
        sharpe_ratio=sharpe_ratio(returns),
        value_at_risk=value_at_risk(returns, balance),
        profit_factor=pnl.profit_factor,
        largest_win=pnl.largest_win,
        largest_loss=pnl.largest_loss,
        max_consecutive_wins=pnl.max_consecutive_wins,
        max_consecutive_losses=pnl.max_consecutive_losses,
        strategy_performance={
            name: {"trades": float(s.trades), "pnl": s.pnl, "win_rate": s.win_rate * 100.0}
            for name, s in pnl.strategy_stats.items()
        },
    )
