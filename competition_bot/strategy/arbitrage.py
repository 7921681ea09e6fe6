"""Cross-venue arbitrage strategy."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from competition_bot.config.constants import BUY
from competition_bot.config.settings import StrategyConfig
from competition_bot.data.market_feed import MarketSample
from competition_bot.data.venue_quotes import SimulatedVenueQuotes, VenueQuote, VenueQuoteSource
from competition_bot.strategy.base import Strategy
from competition_bot.strategy.signal import TradingSignal


@dataclass(frozen=True)
class ArbitrageOpportunity:
    buy_venue: str
    sell_venue: str
    net_profit: float
    profit_pct: float


class ArbitrageStrategy(Strategy):
    """Emits BUY (execute the arbitrage leg) when the best venue pair clears costs."""

    def __init__(self, config: StrategyConfig, quote_source: VenueQuoteSource | None = None) -> None:
        super().__init__(config)
        self.quote_source = quote_source or SimulatedVenueQuotes()

    def _evaluate(self, current: MarketSample, history: Sequence[MarketSample]) -> TradingSignal:
        p = self.params
        quotes = self.quote_source.quotes(current, p.venues)
        best = self.best_opportunity(quotes)
        if best is None:
            return TradingSignal.hold(self.name, "No profitable arbitrage opportunities found")

        if best.profit_pct < p.min_profit_threshold:
            reason = (
                f"Arbitrage profit {best.profit_pct * 100:.3f}% below threshold "
                f"{p.min_profit_threshold * 100:.2f}%"
            )
            return TradingSignal.hold(self.name, reason, confidence=0.2)

        confidence = min(0.95, best.profit_pct * 10 + 0.3)
        base_amount = min(p.max_notional, best.net_profit * 10)
        reason = (
            f"Arbitrage: {best.profit_pct * 100:.3f}% profit buying on {best.buy_venue}, "
            f"selling on {best.sell_venue}"
        )
        return self._signal(BUY, confidence, base_amount, reason)

    def best_opportunity(self, quotes: Sequence[VenueQuote]) -> ArbitrageOpportunity | None:
        """Pick the (buy, sell) venue pair with the highest positive net profit percentage.

        Venues too shallow to absorb a full-size leg are ignored.
        """
        quotes = [q for q in quotes if self.has_depth(q)]
        if len(quotes) < 2:
            return None

        best: ArbitrageOpportunity | None = None
        for buy in quotes:
            for sell in quotes:
                if buy.venue == sell.venue or buy.price <= 0:
                    continue
                net = (sell.price - buy.price) - self.gas_cost_usd(buy.gas_estimate + sell.gas_estimate)
                pct = net / buy.price
                if net > 0 and (best is None or pct > best.profit_pct):
                    best = ArbitrageOpportunity(buy.venue, sell.venue, net, pct)
        return best

    def gas_cost_usd(self, gas_units: float) -> float:
        """Execution cost of ``gas_units`` at the configured gas and ETH prices."""
        gas_cost_eth = gas_units * self.params.gas_price_gwei * 1e9 / 1e18
        return gas_cost_eth * self.params.eth_price_usd

    def has_depth(self, quote: VenueQuote) -> bool:
        """True when a ``max_notional`` leg moves the venue by at most ``max_slippage``."""
        if quote.liquidity <= 0:
            return False
        return self.params.max_notional / quote.liquidity <= self.params.max_slippage
