"""Risk governor: the single gate between a portfolio decision and an order."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
import math
from statistics import pstdev
from typing import Any, Deque, Iterable, Optional

from competition_bot.accounting.portfolio import Portfolio
from competition_bot.config import constants
from competition_bot.config.constants import HOLD, SELL
from competition_bot.config.settings import RiskLimits
from competition_bot.execution.order import Order
from competition_bot.logging.signal_log import get_risk_logger
from competition_bot.risk.daily_limits import LossLimits
from competition_bot.risk.position_sizer import PositionSizer
from competition_bot.strategy.signal import PortfolioSignal


@dataclass(frozen=True)
class RiskDecision:
    """Outcome of one risk evaluation.

    ``breach`` is set only for hard-stop conditions (``drawdown`` or ``daily_loss``).
    """

    order: Optional[Order]
    reason: str
    breach: Optional[str] = None
    scaled: bool = False

    @property
    def approved(self) -> bool:
        return self.order is not None


@dataclass(frozen=True)
class StressScenario:
    """Uniform price shock applied to every open position (-0.2 is a 20% drop)."""

    name: str
    price_shock: float

    def __post_init__(self) -> None:
        if self.price_shock < -1:
            raise ValueError(f"price_shock must be >= -1, got {self.price_shock}")


DEFAULT_STRESS_SCENARIOS = (
    StressScenario("correction", -0.10),
    StressScenario("flash_crash", -0.20),
    StressScenario("bear_market", -0.35),
)


def _health(value: float, limit: float) -> str:
    if value < limit * constants.HEALTH_CAUTION_RATIO:
        return "HEALTHY"
    if value < limit * constants.HEALTH_WARNING_RATIO:
        return "CAUTION"
    return "WARNING"


class RiskGovernor:
    """Turns a PortfolioSignal into a bounded Order, scales it down, or vetoes it."""

    def __init__(self, limits: RiskLimits) -> None:
        self.limits = limits
        self.loss_limits = LossLimits(limits.max_drawdown, limits.max_daily_loss)
        self.sizer = PositionSizer(limits)
        self.risk_logger = get_risk_logger()
        self.pnl_history: Deque[float] = deque(maxlen=constants.PNL_HISTORY_SIZE)

    def can_trade(self, portfolio: Portfolio) -> tuple[bool, str]:
        """Hard-stop check shared by every order path."""
        return self.loss_limits.can_continue(portfolio)

    def evaluate(self, signal: PortfolioSignal, portfolio: Portfolio, symbol: str, price: float) -> RiskDecision:
        if signal.final_action == HOLD:
            return RiskDecision(order=None, reason="hold")

        allowed, limit_reason = self.can_trade(portfolio)
        if not allowed:
            self.risk_logger.warning(
                "risk_breach symbol=%s reason=%s drawdown=%.4f daily_pnl=%.4f",
                symbol,
                limit_reason,
                portfolio.current_drawdown(),
                portfolio.daily_pnl_pct(),
            )
            return RiskDecision(order=None, reason=limit_reason, breach=limit_reason)

        if signal.confidence < self.limits.min_confidence:
            return self._veto(symbol, f"confidence {signal.confidence:.3f} below {self.limits.min_confidence:.2f}")

        if signal.final_action == SELL and symbol not in portfolio.positions:
            return self._veto(symbol, "no position to sell")

        notional, binding = self.sizer.size(
            side=signal.final_action,
            requested=signal.total_amount,
            portfolio=portfolio,
            symbol=symbol,
            loss_budget=self.loss_limits.loss_budget(portfolio),
        )
        if notional < self.limits.min_notional or notional <= 0:
            detail = f"notional {notional:.2f} below minimum {self.limits.min_notional:.2f}"
            if binding:
                detail += f" (bound by {','.join(binding)})"
            return self._veto(symbol, detail)

        scaled = notional < signal.total_amount
        rationale = f"requested={signal.total_amount:.2f} sized={notional:.2f}"
        if binding:
            rationale += f" capped_by={','.join(binding)}"
        order = Order(
            symbol=symbol,
            side=signal.final_action,
            amount=notional,
            reference_price=price,
            requested_by=signal.agreeing_strategies() or ("portfolio",),
            sizing_rationale=rationale,
            confidence=signal.confidence,
        )
        self.risk_logger.info(
            "risk_approved symbol=%s side=%s amount=%.2f scaled=%s %s",
            symbol,
            order.side,
            order.amount,
            scaled,
            rationale,
        )
        return RiskDecision(order=order, reason="approved", scaled=scaled)

    def stop_loss_orders(self, portfolio: Portfolio) -> list[Order]:
        """Exit orders for every position marked at or below its stop level."""
        if not self.limits.stop_loss:
            return []
        orders = []
        for symbol, position in portfolio.positions.items():
            price = portfolio.marks.get(symbol)
            if price is None:
                continue
            stop_price = position.average_cost * (1.0 - self.limits.stop_loss)
            if price <= stop_price:
                orders.append(
                    Order(
                        symbol=symbol,
                        side=SELL,
                        amount=position.market_value(price),
                        reference_price=price,
                        requested_by=("stop_loss",),
                        sizing_rationale=f"stop_loss price={price:.4f} stop={stop_price:.4f}",
                        confidence=1.0,
                    )
                )
        return orders

    def _veto(self, symbol: str, reason: str) -> RiskDecision:
        self.risk_logger.info("risk_veto symbol=%s reason=%s", symbol, reason)
        return RiskDecision(order=None, reason=reason)

    # -- reporting -----------------------------------------------------------

    def record_pnl(self, portfolio: Portfolio) -> None:
        """Sample the day's P&L fraction; called once per tick."""
        self.pnl_history.append(portfolio.daily_pnl_pct())

    def volatility(self) -> float:
        """Annualized volatility of recent daily P&L samples; 0 until enough samples exist."""
        if len(self.pnl_history) < constants.VOLATILITY_MIN_SAMPLES:
            return 0.0
        recent = list(self.pnl_history)[-constants.VOLATILITY_WINDOW :]
        return pstdev(recent) * math.sqrt(constants.TRADING_DAYS_PER_YEAR)

    @staticmethod
    def concentration(portfolio: Portfolio) -> float:
        """Herfindahl-Hirschman index of position values (1.0 = a single position)."""
        values = [portfolio.position_value(symbol) for symbol in portfolio.positions]
        total = sum(values)
        if total <= 0:
            return 0.0
        return sum((v / total) ** 2 for v in values)

    def stress_test(
        self,
        portfolio: Portfolio,
        scenarios: Iterable[StressScenario] = DEFAULT_STRESS_SCENARIOS,
    ) -> dict[str, float]:
        """Fractional equity loss per scenario; cash is not shocked."""
        equity = portfolio.equity()
        exposure = sum(portfolio.position_value(symbol) for symbol in portfolio.positions)
        results: dict[str, float] = {}
        for scenario in scenarios:
            loss = -exposure * scenario.price_shock / equity if equity > 0 else 0.0
            results[scenario.name] = loss
            if loss > self.limits.max_drawdown:
                self.risk_logger.warning(
                    "stress_test_fail scenario=%s shock=%.2f loss=%.4f limit=%.2f",
                    scenario.name,
                    scenario.price_shock,
                    loss,
                    self.limits.max_drawdown,
                )
        return results

    def risk_report(self, portfolio: Portfolio) -> dict[str, Any]:
        drawdown = portfolio.current_drawdown()
        volatility = self.volatility()
        concentration = self.concentration(portfolio)
        return {
            "equity": portfolio.equity(),
            "current_drawdown": drawdown,
            "daily_pnl": portfolio.daily_pnl_pct(),
            "volatility": volatility,
            "concentration": concentration,
            "position_values": {s: portfolio.position_value(s) for s in portfolio.positions},
            "limits": {
                "max_drawdown": self.limits.max_drawdown,
                "max_daily_loss": self.limits.max_daily_loss,
                "max_volatility": self.limits.max_volatility,
                "max_concentration": self.limits.max_concentration,
            },
            "health": {
                "drawdown": _health(drawdown, self.limits.max_drawdown),
                "volatility": "HEALTHY" if volatility < self.limits.max_volatility * constants.HEALTH_WARNING_RATIO else "HIGH",
                "concentration": (
                    "HEALTHY" if concentration < self.limits.max_concentration * constants.HEALTH_WARNING_RATIO else "HIGH"
                ),
            },
        }
