"""Per-venue quotes consumed by the arbitrage strategy."""

from __future__ import annotations

from dataclasses import dataclass
import random
from typing import Sequence

from competition_bot.data.market_feed import MarketSample


@dataclass(frozen=True)
class VenueQuote:
    """Executable price on one venue plus its liquidity and cost estimate."""

    venue: str
    price: float
    liquidity: float
    gas_estimate: float


class VenueQuoteSource:
    """Interface for venue price acquisition; implementations fail fast by raising."""

    def quotes(self, sample: MarketSample, venues: Sequence[str]) -> list[VenueQuote]:
        raise NotImplementedError


class SimulatedVenueQuotes(VenueQuoteSource):
    """Pseudo-random venue quotes around the sample price.

    The generator is reseeded from (seed, symbol, timestamp) so the same sample
    always produces the same quotes.
    """

    def __init__(self, seed: int = 42, max_variation: float = 0.01) -> None:
        self.seed = seed
        self.max_variation = max_variation

    def quotes(self, sample: MarketSample, venues: Sequence[str]) -> list[VenueQuote]:
        rng = random.Random(f"{self.seed}:{sample.symbol}:{sample.timestamp.isoformat()}")
        result = []
        for venue in venues:
            variation = (rng.random() - 0.5) * 2.0 * self.max_variation
            result.append(
                VenueQuote(
                    venue=venue,
                    price=sample.price * (1.0 + variation),
                    liquidity=rng.random() * 1_000_000 + 50_000,
                    gas_estimate=rng.random() * 100_000 + 150_000,
                )
            )
        return result


class StaticVenueQuotes(VenueQuoteSource):
    """Fixed per-venue prices; handy for replaying recorded quotes."""

    def __init__(self, prices: dict[str, float], gas_estimate: float = 150_000, liquidity: float = 1_000_000) -> None:
        self.prices = dict(prices)
        self.gas_estimate = gas_estimate
        self.liquidity = liquidity

    def quotes(self, sample: MarketSample, venues: Sequence[str]) -> list[VenueQuote]:
        return [
            VenueQuote(venue=v, price=self.prices[v], liquidity=self.liquidity, gas_estimate=self.gas_estimate)
            for v in venues
            if v in self.prices
        ]
