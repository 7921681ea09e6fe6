import asyncio
from dataclasses import replace

import pytest

from competition_bot.accounting.portfolio import Portfolio
from competition_bot.config.constants import BUY
from competition_bot.data.market_feed import MarketFeed, SyntheticMarketFeed
from competition_bot.engine import CompetitionTrader, TraderState
from competition_bot.errors import ExecutionError, InvalidStateTransition
from competition_bot.events import AlertRaised, EventBus, SessionEnded, TickStarted, TradeExecuted, TradeFailed
from competition_bot.execution.order import Fill
from competition_bot.execution.paper_broker import OrderExecutor
from competition_bot.config.settings import StrategyConfig
from competition_bot.monitoring.alerts import CRITICAL, WARNING, Alert
from competition_bot.strategy.signal import TradingSignal


class ScriptedFeed(MarketFeed):
    def __init__(self, make_sample, prices, failing=()):
        self.make_sample = make_sample
        self.prices = dict(prices)
        self.failing = set(failing)
        self.calls = 0

    def get_latest(self, symbol):
        self.calls += 1
        if symbol in self.failing:
            raise ConnectionError("feed down")
        price = self.prices.get(symbol)
        if price is None:
            return None
        return self.make_sample(price, symbol=symbol, i=self.calls)

    def get_history(self, symbol, n):
        return []


class InstantExecutor(OrderExecutor):
    def __init__(self):
        self.orders = []

    async def submit(self, order):
        self.orders.append(order)
        return Fill(order.order_id, order.symbol, order.side, order.quantity, order.reference_price, 0.0, False)


class RejectingExecutor(OrderExecutor):
    def __init__(self):
        self.orders = []

    async def submit(self, order):
        self.orders.append(order)
        raise ExecutionError("rejected by venue", retryable=False)


class UnreachableExecutor(OrderExecutor):
    async def submit(self, order):
        raise ConnectionError("exchange unreachable")


class AlwaysBuy:
    name = "always_buy"
    config = StrategyConfig(name="momentum", allocation=100)

    def analyze(self, current, history):
        return TradingSignal(strategy_name=self.name, action=BUY, confidence=0.9, amount=400.0, reason="test")


class Recorder:
    def __init__(self, bus):
        self.events = []
        bus.subscribe(self.events.append)

    def of(self, event_type):
        return [e for e in self.events if isinstance(e, event_type)]


def make_trader(trader_config, make_sample, clock, executor=None, prices=None, failing=(), buy=True):
    bus = EventBus()
    feed = ScriptedFeed(make_sample, prices or {"WETH": 100.0, "WBTC": 200.0}, failing=failing)
    trader = CompetitionTrader(trader_config, feed=feed, executor=executor or InstantExecutor(), bus=bus, clock=clock)
    if buy:
        trader.manager.strategies = [AlwaysBuy()]
    return trader, Recorder(bus)


def test_tick_executes_orders(trader_config, make_sample, clock):
    executor = InstantExecutor()
    trader, rec = make_trader(trader_config, make_sample, clock, executor=executor)
    trader.start()
    asyncio.run(trader.tick())

    assert [o.symbol for o in executor.orders] == ["WETH", "WBTC"]
    assert all(o.amount == pytest.approx(400.0) for o in executor.orders)
    assert trader.trade_count == 2
    assert trader.portfolio.positions["WETH"].quantity == pytest.approx(4.0)
    assert len(rec.of(TickStarted)) == 1
    assert len(rec.of(TradeExecuted)) == 2


def test_failed_execution_leaves_portfolio_unchanged(trader_config, make_sample, clock):
    trader, rec = make_trader(trader_config, make_sample, clock, executor=RejectingExecutor())
    trader.start()
    asyncio.run(trader.tick())

    assert trader.portfolio.cash == pytest.approx(10_000.0)
    assert trader.portfolio.positions == {}
    failures = rec.of(TradeFailed)
    assert len(failures) == 2
    assert failures[0].failure.reason == "rejected by venue"
    assert trader.state == TraderState.RUNNING


def test_drawdown_breach_halts_without_orders(trader_config, make_sample, clock):
    executor = InstantExecutor()
    trader, rec = make_trader(trader_config, make_sample, clock, executor=executor)
    trader.start()
    trader.portfolio = Portfolio(cash=8_400.0, initial_equity=10_000.0)

    asyncio.run(trader.tick())

    assert trader.state == TraderState.EMERGENCY_HALTED
    assert executor.orders == []
    alerts = [e.alert for e in rec.of(AlertRaised)]
    assert alerts and alerts[0].level == CRITICAL and alerts[0].halt


def test_halted_trader_keeps_marking_prices(trader_config, make_sample, clock):
    executor = InstantExecutor()
    trader, _ = make_trader(trader_config, make_sample, clock, executor=executor)
    trader.start()
    trader.halt("manual")

    trader.feed.prices["WETH"] = 150.0
    asyncio.run(trader.tick())

    assert trader.portfolio.marks["WETH"] == 150.0
    assert executor.orders == []
    assert trader.snapshot().total_value == pytest.approx(10_000.0)


def test_critical_halt_alert_halts(trader_config, make_sample, clock):
    trader, _ = make_trader(trader_config, make_sample, clock)
    trader.start()

    trader.bus.publish(AlertRaised(Alert(level=WARNING, category="RISK", message="high drawdown")))
    assert trader.state == TraderState.RUNNING

    trader.bus.publish(AlertRaised(Alert(level=CRITICAL, category="RISK", message="critical", halt=True)))
    assert trader.state == TraderState.EMERGENCY_HALTED
    assert trader.halt_reason == "critical"


def test_feed_fault_skips_only_that_symbol(trader_config, make_sample, clock):
    executor = InstantExecutor()
    trader, _ = make_trader(trader_config, make_sample, clock, executor=executor, failing={"WETH"})
    trader.start()
    asyncio.run(trader.tick())

    assert [o.symbol for o in executor.orders] == ["WBTC"]
    assert "WETH" not in trader.portfolio.marks


def test_missing_sample_is_a_feed_fault(trader_config, make_sample, clock):
    executor = InstantExecutor()
    trader, _ = make_trader(trader_config, make_sample, clock, executor=executor, prices={"WBTC": 200.0})
    trader.start()
    asyncio.run(trader.tick())
    assert [o.symbol for o in executor.orders] == ["WBTC"]


def test_trade_limiter_spaces_orders(trader_config, make_sample, clock):
    cfg = replace(trader_config, min_trade_interval_seconds=30)
    executor = InstantExecutor()
    trader, _ = make_trader(cfg, make_sample, clock, executor=executor)
    trader.start()
    asyncio.run(trader.tick())
    assert len(executor.orders) == 1

    clock.advance(31)
    asyncio.run(trader.tick())
    assert len(executor.orders) == 2


def test_run_until_max_ticks_ends_session(trader_config, make_sample, clock):
    trader, rec = make_trader(trader_config, make_sample, clock)
    snapshot = asyncio.run(trader.run(max_ticks=3))

    assert trader.state == TraderState.ENDED
    assert trader.tick_count == 3
    ended = rec.of(SessionEnded)
    assert len(ended) == 1
    assert ended[0].reason == "max_ticks"
    assert ended[0].snapshot == snapshot


def test_stop_is_honoured_at_tick_boundary(trader_config, make_sample, clock):
    trader, rec = make_trader(trader_config, make_sample, clock)
    trader.stop()
    asyncio.run(trader.run())
    assert trader.tick_count == 0
    assert rec.of(SessionEnded)[0].reason == "stopped"


def test_duration_elapsed_ends_session(trader_config, make_sample, clock):
    trader, rec = make_trader(trader_config, make_sample, clock)

    def advance_hours(event):
        clock.advance(12 * 3600)

    trader.bus.subscribe(advance_hours, TickStarted)
    asyncio.run(trader.run())
    assert trader.tick_count == 2
    assert rec.of(SessionEnded)[0].reason == "duration_elapsed"


def test_illegal_transitions(trader_config, make_sample, clock):
    trader, _ = make_trader(trader_config, make_sample, clock)
    with pytest.raises(InvalidStateTransition):
        trader.end()
    with pytest.raises(InvalidStateTransition):
        asyncio.run(trader.tick())
    trader.start()
    with pytest.raises(InvalidStateTransition):
        trader.start()
    trader.end()
    with pytest.raises(InvalidStateTransition):
        trader.halt("too late")


def test_performance_metrics_available_in_any_state(trader_config, make_sample, clock):
    trader, _ = make_trader(trader_config, make_sample, clock)
    metrics = trader.performance_metrics()
    assert metrics["state"] == "NOT_STARTED"
    assert metrics["total_return_pct"] == 0.0

    asyncio.run(trader.run(max_ticks=2))
    metrics = trader.performance_metrics()
    assert metrics["trades"] == trader.trade_count
    assert metrics["ticks"] == 2


def test_synthetic_session_runs_end_to_end(trader_config, clock):
    bus = EventBus()
    feed = SyntheticMarketFeed(trader_config.trading_pairs, seed=1)
    feed.warmup(30)
    executor = InstantExecutor()
    trader = CompetitionTrader(trader_config, feed=feed, executor=executor, bus=bus, clock=clock)

    snapshot = asyncio.run(trader.run(max_ticks=5))

    assert trader.state == TraderState.ENDED
    assert snapshot.total_value > 0
    assert len(trader.manager.history.snapshot("WETH")) == 35


def test_network_failure_is_a_failed_trade_not_a_halt(trader_config, make_sample, clock):
    trader, rec = make_trader(trader_config, make_sample, clock, executor=UnreachableExecutor())
    asyncio.run(trader.run(max_ticks=1))

    assert trader.halt_reason is None
    assert rec.of(SessionEnded)[0].reason == "max_ticks"
    failures = rec.of(TradeFailed)
    assert len(failures) == 2
    assert "exchange unreachable" in failures[0].failure.reason
    assert trader.failed_count == 2
    assert trader.portfolio.positions == {}


class FrozenFeed(MarketFeed):
    def __init__(self, sample):
        self.sample = sample

    def get_latest(self, symbol):
        return self.sample if symbol == self.sample.symbol else None

    def get_history(self, symbol, n):
        return [self.sample] if symbol == self.sample.symbol else []


def test_stale_samples_are_not_traded_or_recorded(trader_config, make_sample, clock):
    cfg = replace(trader_config, trading_pairs=("WETH",))
    executor = InstantExecutor()
    feed = FrozenFeed(make_sample(100.0))
    trader = CompetitionTrader(cfg, feed=feed, executor=executor, clock=clock)
    trader.manager.strategies = [AlwaysBuy()]

    asyncio.run(trader.run(max_ticks=3))

    assert executor.orders == []
    assert len(trader.manager.history.snapshot("WETH")) == 1


def test_repeated_sample_after_first_tick_is_skipped(trader_config, make_sample, clock):
    cfg = replace(trader_config, trading_pairs=("WETH",))
    executor = InstantExecutor()
    feed = FrozenFeed(make_sample(100.0))
    feed.get_history = lambda symbol, n: []
    trader = CompetitionTrader(cfg, feed=feed, executor=executor, clock=clock)
    trader.manager.strategies = [AlwaysBuy()]

    asyncio.run(trader.run(max_ticks=3))

    assert len(executor.orders) == 1
    assert len(trader.manager.history.snapshot("WETH")) == 1


def test_risk_report_after_session(trader_config, make_sample, clock):
    trader, _ = make_trader(trader_config, make_sample, clock)
    asyncio.run(trader.run(max_ticks=2))

    report = trader.risk_report()
    assert len(trader.governor.pnl_history) == 2
    assert report["emergency_halted"] is False
    assert set(report["stress_test"]) == {"correction", "flash_crash", "bear_market"}
    assert report["stress_test"]["flash_crash"] > 0
    assert 0 < report["concentration"] <= 1.0
