"""Drawdown and daily-loss hard stops."""

from __future__ import annotations

from competition_bot.accounting.portfolio import Portfolio


class LossLimits:
    """Enforces the portfolio drawdown and daily loss caps."""

    def __init__(self, max_drawdown: float, max_daily_loss: float) -> None:
        self.max_drawdown = max_drawdown
        self.max_daily_loss = max_daily_loss

    def can_continue(self, portfolio: Portfolio) -> tuple[bool, str]:
        """Return (allowed, reason) from current drawdown and realized+unrealized daily move."""
        if portfolio.day_start_equity <= 0:
            return False, "invalid_start_equity"

        if portfolio.current_drawdown() >= self.max_drawdown:
            return False, "drawdown"
        if portfolio.daily_pnl_pct() <= -abs(self.max_daily_loss):
            return False, "daily_loss"
        return True, "ok"

    def loss_budget(self, portfolio: Portfolio) -> float:
        """Further equity loss, in USD, that still keeps both limits intact."""
        equity = portfolio.equity()
        peak = max(portfolio.equity_high_water_mark, equity)
        drawdown_floor = peak * (1.0 - self.max_drawdown)
        daily_floor = portfolio.day_start_equity * (1.0 - self.max_daily_loss)
        return max(0.0, equity - max(drawdown_floor, daily_floor))
