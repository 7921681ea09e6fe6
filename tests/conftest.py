from datetime import datetime, timedelta, timezone

import pytest

from competition_bot.config.settings import ExecutionSettings, StrategyConfig, TraderConfig
from competition_bot.data.market_feed import MarketSample

BASE_TS = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = BASE_TS) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_sample():
    def _make(price=100.0, volume=1000.0, symbol="WETH", i=0, change=0.0):
        return MarketSample(
            symbol=symbol,
            price=price,
            volume=volume,
            price_change_24h=change,
            timestamp=BASE_TS + timedelta(seconds=10 * i),
        )

    return _make


@pytest.fixture
def make_series(make_sample):
    def _make(prices, volumes=None, symbol="WETH"):
        volumes = volumes or [1000.0] * len(prices)
        return [make_sample(p, v, symbol=symbol, i=i) for i, (p, v) in enumerate(zip(prices, volumes))]

    return _make


@pytest.fixture
def momentum_config():
    return StrategyConfig(name="momentum", allocation=40, risk_level="MEDIUM")


@pytest.fixture
def mean_reversion_config():
    return StrategyConfig(name="meanReversion", allocation=25, risk_level="HIGH")


@pytest.fixture
def arbitrage_config():
    return StrategyConfig(name="arbitrage", allocation=35, risk_level="LOW")


@pytest.fixture
def fast_execution():
    return ExecutionSettings(
        submit_timeout_seconds=1.0,
        max_retries=1,
        retry_backoff_seconds=0.0,
        failure_probability=0.0,
        min_latency_seconds=0.0,
        max_latency_seconds=0.0,
    )


@pytest.fixture
def trader_config(fast_execution):
    return TraderConfig(
        trading_pairs=("WETH", "WBTC"),
        tick_seconds=0.001,
        min_trade_interval_seconds=0,
        execution=fast_execution,
    )
