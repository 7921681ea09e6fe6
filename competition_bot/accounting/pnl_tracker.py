"""PnL tracking and performance statistics over closing trades."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Sequence

from competition_bot.config.constants import VAR_LOOKBACK_TRADES


@dataclass
class StrategyStats:
    """Realized results attributed to one strategy."""

    trades: int = 0
    wins: int = 0
    pnl: float = 0.0

    @property
    def win_rate(self) -> float:
        if self.trades == 0:
            return 0.0
        return self.wins / self.trades


@dataclass
class PnLTracker:
    """Tracks realized trading performance.

    Drawdown here is measured on the realized-equity sequence
    (initial equity plus cumulative realized P&L), not on marked equity.
    """

    initial_equity: float = 0.0
    realized_pnl: float = 0.0
    wins: int = 0
    losses: int = 0
    peak_equity: float = 0.0
    max_drawdown: float = 0.0
    current_drawdown: float = 0.0
    trades_closed: int = 0
    gross_profit: float = 0.0
    gross_loss: float = 0.0
    largest_win: float = 0.0
    largest_loss: float = 0.0
    consecutive_wins: int = 0
    consecutive_losses: int = 0
    max_consecutive_wins: int = 0
    max_consecutive_losses: int = 0
    strategy_stats: dict[str, StrategyStats] = field(default_factory=dict)
    closing_returns: Deque[float] = field(default_factory=lambda: deque(maxlen=VAR_LOOKBACK_TRADES), repr=False)

    def __post_init__(self) -> None:
        self.peak_equity = max(self.peak_equity, self.initial_equity)

    def mark_exit(self, realized_pnl: float, notional: float, strategies: Sequence[str] = ()) -> None:
        """Finalize one closing trade and update win/loss stats."""
        self.realized_pnl += realized_pnl
        self.trades_closed += 1
        if notional > 0:
            self.closing_returns.append(realized_pnl / notional)

        if realized_pnl > 0:
            self.wins += 1
            self.gross_profit += realized_pnl
            self.largest_win = max(self.largest_win, realized_pnl)
            self.consecutive_wins += 1
            self.consecutive_losses = 0
        else:
            self.losses += 1
            self.gross_loss += -realized_pnl
            self.largest_loss = min(self.largest_loss, realized_pnl)
            self.consecutive_losses += 1
            self.consecutive_wins = 0
        self.max_consecutive_wins = max(self.max_consecutive_wins, self.consecutive_wins)
        self.max_consecutive_losses = max(self.max_consecutive_losses, self.consecutive_losses)

        # P&L of a jointly requested order is split evenly between its strategies.
        if strategies:
            share = realized_pnl / len(strategies)
            for name in strategies:
                stats = self.strategy_stats.setdefault(name, StrategyStats())
                stats.trades += 1
                stats.pnl += share
                if share > 0:
                    stats.wins += 1

        self.update_equity(self.initial_equity + self.realized_pnl)

    def update_equity(self, equity: float) -> None:
        """Update peak and drawdown metrics."""
        self.peak_equity = max(self.peak_equity, equity)
        if self.peak_equity > 0:
            dd = (self.peak_equity - equity) / self.peak_equity
            self.current_drawdown = dd
            self.max_drawdown = max(self.max_drawdown, dd)

    @property
    def win_rate(self) -> float:
        """Win ratio over closed trades."""
        if self.trades_closed == 0:
            return 0.0
        return self.wins / self.trades_closed

    @property
    def profit_factor(self) -> float:
        if self.gross_loss == 0:
            return 0.0
        return self.gross_profit / self.gross_loss
