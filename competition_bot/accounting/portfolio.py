"""Cash, positions and equity state for the trading account."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Optional

from competition_bot.config.constants import BUY, SELL
from competition_bot.execution.order import Fill

_DUST = 1e-12


@dataclass
class Position:
    """Open long position in one symbol."""

    symbol: str
    quantity: float
    average_cost: float

    def market_value(self, price: float) -> float:
        return self.quantity * price


@dataclass
class Portfolio:
    """Account state; only the trader mutates it, and only through fills and marks."""

    cash: float
    initial_equity: float
    positions: dict[str, Position] = field(default_factory=dict)
    equity_high_water_mark: float = 0.0
    realized_pnl: float = 0.0
    day_start_equity: float = 0.0
    marks: dict[str, float] = field(default_factory=dict)
    trading_day: Optional[date] = None

    def __post_init__(self) -> None:
        self.equity_high_water_mark = max(self.equity_high_water_mark, self.initial_equity)
        if self.day_start_equity <= 0:
            self.day_start_equity = self.initial_equity

    @classmethod
    def with_cash(cls, amount: float) -> "Portfolio":
        return cls(cash=amount, initial_equity=amount)

    def mark(self, symbol: str, price: float) -> None:
        """Record the latest market price for ``symbol``."""
        if price <= 0:
            raise ValueError(f"mark price must be > 0, got {price}")
        self.marks[symbol] = price

    def price_of(self, symbol: str) -> float:
        if symbol in self.marks:
            return self.marks[symbol]
        position = self.positions.get(symbol)
        return position.average_cost if position else 0.0

    def position_value(self, symbol: str) -> float:
        position = self.positions.get(symbol)
        if position is None:
            return 0.0
        return position.market_value(self.price_of(symbol))

    def equity(self) -> float:
        """Cash plus all positions valued at their latest marks."""
        return self.cash + sum(self.position_value(symbol) for symbol in self.positions)

    def update_high_water_mark(self) -> float:
        equity = self.equity()
        self.equity_high_water_mark = max(self.equity_high_water_mark, equity)
        return equity

    def current_drawdown(self) -> float:
        """Fractional decline of equity from the high-water mark."""
        equity = self.equity()
        peak = max(self.equity_high_water_mark, equity)
        if peak <= 0:
            return 0.0
        return (peak - equity) / peak

    def daily_pnl_pct(self) -> float:
        if self.day_start_equity <= 0:
            return 0.0
        return (self.equity() - self.day_start_equity) / self.day_start_equity

    def roll_day(self, day: date) -> bool:
        """Reset the daily reference equity when the trading day changes."""
        if self.trading_day == day:
            return False
        first = self.trading_day is None
        self.trading_day = day
        if not first:
            self.day_start_equity = self.equity()
        return not first

    def apply_fill(self, fill: Fill) -> float:
        """Apply a confirmed fill and return the realized P&L it produced."""
        if fill.quantity <= 0:
            return 0.0

        position = self.positions.get(fill.symbol)
        if fill.side == BUY:
            cost = fill.quantity * fill.price + fill.fee
            self.cash -= cost
            if position is None:
                self.positions[fill.symbol] = Position(fill.symbol, fill.quantity, cost / fill.quantity)
            else:
                total_qty = position.quantity + fill.quantity
                position.average_cost = (position.quantity * position.average_cost + cost) / total_qty
                position.quantity = total_qty
            realized = 0.0
        elif fill.side == SELL:
            if position is None:
                raise ValueError(f"cannot apply SELL fill for {fill.symbol}: no open position")
            qty = min(fill.quantity, position.quantity)
            proceeds = qty * fill.price - fill.fee
            realized = proceeds - qty * position.average_cost
            self.cash += proceeds
            position.quantity -= qty
            if position.quantity <= _DUST:
                del self.positions[fill.symbol]
        else:
            raise ValueError(f"unknown fill side: {fill.side}")

        self.realized_pnl += realized
        self.marks.setdefault(fill.symbol, fill.price)
        self.update_high_water_mark()
        return realized

    def snapshot(self, trade_count: int = 0, now: Optional[datetime] = None) -> "PortfolioSnapshot":
        equity = self.equity()
        pnl = equity - self.initial_equity
        return PortfolioSnapshot(
            timestamp=now or datetime.now(timezone.utc),
            total_value=equity,
            cash=self.cash,
            positions={s: p.quantity for s, p in self.positions.items()},
            pnl=pnl,
            pnl_pct=(pnl / self.initial_equity * 100.0) if self.initial_equity else 0.0,
            drawdown=self.current_drawdown(),
            realized_pnl=self.realized_pnl,
            trade_count=trade_count,
        )


@dataclass(frozen=True)
class PortfolioSnapshot:
    """Read-only view of the account at one instant."""

    timestamp: datetime
    total_value: float
    cash: float
    positions: dict[str, float]
    pnl: float
    pnl_pct: float
    drawdown: float
    realized_pnl: float
    trade_count: int
