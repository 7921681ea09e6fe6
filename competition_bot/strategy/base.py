"""Strategy base class: fault isolation and risk-adjusted sizing."""

from __future__ import annotations

import logging
from typing import Sequence

from competition_bot.config.settings import StrategyConfig
from competition_bot.data.market_feed import MarketSample
from competition_bot.strategy.signal import TradingSignal

logger = logging.getLogger(__name__)


class Strategy:
    """Maps the current sample plus its history to one TradingSignal.

    Subclasses implement ``_evaluate``; ``analyze`` never raises and turns any
    internal error into a zero-confidence HOLD.
    """

    def __init__(self, config: StrategyConfig) -> None:
        self.config = config
        self.params = config.params

    @property
    def name(self) -> str:
        return self.config.name

    def analyze(self, current: MarketSample, history: Sequence[MarketSample]) -> TradingSignal:
        try:
            return self._evaluate(current, history)
        except Exception as exc:
            logger.warning("strategy_error strategy=%s error=%s", self.name, exc)
            return TradingSignal.hold(self.name, f"Analysis error: {exc}")

    def _evaluate(self, current: MarketSample, history: Sequence[MarketSample]) -> TradingSignal:
        raise NotImplementedError

    def risk_adjusted_amount(self, base_amount: float, confidence: float) -> float:
        """Scale a base notional by confidence, risk level and portfolio allocation."""
        return base_amount * confidence * self.config.risk_multiplier * (self.config.allocation / 100.0)

    def _signal(self, action: str, confidence: float, base_amount: float, reason: str) -> TradingSignal:
        confidence = max(0.0, min(1.0, confidence))
        amount = max(0.0, self.risk_adjusted_amount(base_amount, confidence))
        logger.debug("strategy=%s action=%s confidence=%.3f amount=%.2f", self.name, action, confidence, amount)
        return TradingSignal(
            strategy_name=self.name,
            action=action,
            confidence=confidence,
            amount=amount,
            reason=reason,
        )
