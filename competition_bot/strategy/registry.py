"""Strategy registry: builds strategy instances from configuration."""

from __future__ import annotations

from competition_bot.config.settings import StrategyConfig
from competition_bot.data.venue_quotes import VenueQuoteSource
from competition_bot.errors import ConfigError
from competition_bot.strategy.arbitrage import ArbitrageStrategy
from competition_bot.strategy.base import Strategy
from competition_bot.strategy.mean_reversion import MeanReversionStrategy
from competition_bot.strategy.momentum import MomentumStrategy

STRATEGY_TYPES: dict[str, type[Strategy]] = {
    "momentum": MomentumStrategy,
    "mean_reversion": MeanReversionStrategy,
    "arbitrage": ArbitrageStrategy,
}


def build_strategy(config: StrategyConfig, quote_source: VenueQuoteSource | None = None) -> Strategy:
    strategy_type = STRATEGY_TYPES.get(config.kind)
    if strategy_type is None:
        raise ConfigError(f"unknown strategy: {config.name}")
    if strategy_type is ArbitrageStrategy:
        return ArbitrageStrategy(config, quote_source=quote_source)
    return strategy_type(config)
