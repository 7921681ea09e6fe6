"""Notional sizing under the per-trade and per-position caps."""

from __future__ import annotations

from competition_bot.accounting.portfolio import Portfolio
from competition_bot.config.constants import BUY
from competition_bot.config.settings import RiskLimits


class PositionSizer:
    """Clips a requested USD notional to every applicable limit.

    ``size`` returns the clipped notional and the names of the caps that bound it.
    """

    def __init__(self, limits: RiskLimits) -> None:
        self.limits = limits

    def max_position_notional(self, equity: float) -> float:
        return max(0.0, equity * self.limits.max_position_size)

    def size(
        self,
        side: str,
        requested: float,
        portfolio: Portfolio,
        symbol: str,
        loss_budget: float,
    ) -> tuple[float, list[str]]:
        equity = portfolio.equity()
        held_value = portfolio.position_value(symbol)
        caps: dict[str, float] = {
            "max_position_size": self.max_position_notional(equity),
            "risk_per_trade": max(0.0, equity * self.limits.risk_per_trade),
        }
        if side == BUY:
            caps["position_headroom"] = max(0.0, self.max_position_notional(equity) - held_value)
            caps["cash"] = max(0.0, portfolio.cash * (1.0 - self.limits.cash_buffer))
            if self.limits.stop_loss:
                caps["loss_budget"] = loss_budget / self.limits.stop_loss
        else:
            caps["held_position"] = held_value

        requested = max(0.0, requested)
        notional = min([requested, *caps.values()])
        binding = [name for name, cap in caps.items() if cap < requested and cap <= notional]
        return notional, binding
