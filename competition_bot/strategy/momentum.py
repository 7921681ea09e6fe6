"""Momentum strategy: follows volume-confirmed moving-average trends."""

from __future__ import annotations

from typing import Sequence

from competition_bot.config.constants import BUY, HOLD, SELL
from competition_bot.data.indicators import moving_average, pct_change
from competition_bot.data.market_feed import MarketSample
from competition_bot.strategy.base import Strategy
from competition_bot.strategy.signal import TradingSignal


class MomentumStrategy(Strategy):
    """Buys strong volume-backed uptrends, sells when the short average rolls over."""

    def _evaluate(self, current: MarketSample, history: Sequence[MarketSample]) -> TradingSignal:
        p = self.params
        if len(history) < p.long_window:
            return TradingSignal.hold(self.name, "Insufficient historical data for momentum analysis")

        window = history[-p.long_window :]
        prices = [s.price for s in window]
        short_ma = moving_average(prices, p.short_window)
        long_ma = moving_average(prices)

        price_change = pct_change(current.price, window[0].price)
        avg_volume = moving_average([s.volume for s in window])
        volume_ratio = current.volume / avg_volume if avg_volume > 0 else 0.0
        trend_strength = pct_change(short_ma, long_ma)

        is_uptrend = short_ma > long_ma and price_change > p.momentum_threshold
        is_high_volume = volume_ratio > p.volume_multiplier

        if is_uptrend and is_high_volume:
            confidence = min(0.9, abs(trend_strength) * 2 + (volume_ratio - 1) * 0.3)
            reason = f"Strong upward momentum: {price_change * 100:.2f}% price change, {volume_ratio:.2f}x volume"
            return self._signal(BUY, confidence, p.base_amount, reason)

        if trend_strength < -p.momentum_threshold and short_ma < long_ma:
            confidence = min(0.8, abs(trend_strength) * 1.5)
            reason = f"Momentum reversal detected: trend strength {trend_strength * 100:.2f}%"
            return self._signal(SELL, confidence, p.base_amount, reason)

        reason = f"Weak momentum signals: trend {trend_strength * 100:.2f}%, volume {volume_ratio:.2f}x"
        return self._signal(HOLD, 0.1, p.base_amount, reason)
