"""Mean reversion strategy: fades moves outside the Bollinger bands."""

from __future__ import annotations

from typing import Sequence

from competition_bot.config.constants import BUY, HOLD, SELL
from competition_bot.data.indicators import mean_stddev, moving_average, rsi, z_score
from competition_bot.data.market_feed import MarketSample
from competition_bot.strategy.base import Strategy
from competition_bot.strategy.signal import TradingSignal


class MeanReversionStrategy(Strategy):
    """Generates contrarian signals when price stretches away from its rolling mean."""

    def _evaluate(self, current: MarketSample, history: Sequence[MarketSample]) -> TradingSignal:
        p = self.params
        if len(history) < max(p.mean_window, p.rsi_window):
            return TradingSignal.hold(self.name, "Insufficient historical data for mean reversion analysis")

        window = history[-p.mean_window :]
        mean, std = mean_stddev([s.price for s in window])
        lower = mean - p.std_dev_multiplier * std
        upper = mean + p.std_dev_multiplier * std

        rsi_series = list(history[-p.rsi_window :])
        if rsi_series[-1] != current:
            rsi_series.append(current)
        rsi_value = rsi([s.price for s in rsi_series])

        price = current.price
        position = z_score(price, mean, std)
        avg_volume = moving_average([s.volume for s in window])
        volume_ratio = current.volume / avg_volume if avg_volume > 0 else 0.0

        is_oversold = rsi_value < p.oversold_threshold and price < lower
        is_overbought = rsi_value > p.overbought_threshold and price > upper
        has_volume = volume_ratio > p.min_volume_ratio

        if is_oversold and has_volume:
            action = BUY
            confidence = min(0.9, (p.oversold_threshold - rsi_value) / 30 + abs(position) * 0.2)
            reason = f"Oversold condition: RSI {rsi_value:.1f}, {abs(position):.2f} std devs below mean"
        elif is_overbought and has_volume:
            action = SELL
            confidence = min(0.85, (rsi_value - p.overbought_threshold) / 30 + abs(position) * 0.2)
            reason = f"Overbought condition: RSI {rsi_value:.1f}, {abs(position):.2f} std devs above mean"
        elif abs(position) > 1.5:
            action = SELL if position > 0 else BUY
            confidence = 0.6 if abs(position) > p.std_dev_multiplier else 0.3
            reason = f"Price {abs(position):.2f} std devs from mean, expecting reversion"
        else:
            action = HOLD
            confidence = 0.1
            reason = f"Price near mean: RSI {rsi_value:.1f}, {position:.2f} std devs from mean"

        if volume_ratio < p.min_volume_ratio:
            confidence *= 0.7
            reason += f" (low volume: {volume_ratio:.2f}x)"

        return self._signal(action, confidence, p.base_amount, reason)
