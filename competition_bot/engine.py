"""Main orchestration engine for a trading competition session."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from statistics import mean, pstdev
import asyncio
import time
from typing import Any, Callable, Optional

from competition_bot.accounting.portfolio import Portfolio, PortfolioSnapshot
from competition_bot.config.constants import SELL
from competition_bot.config.settings import TraderConfig
from competition_bot.data.market_feed import MarketFeed, MarketSample
from competition_bot.data.venue_quotes import VenueQuoteSource
from competition_bot.errors import FeedError, InvalidStateTransition
from competition_bot.events import AlertRaised, EventBus, SessionEnded, TickStarted, TradeExecuted, TradeFailed
from competition_bot.execution.order import Fill, Order
from competition_bot.execution.paper_broker import OrderExecutor
from competition_bot.execution.submitter import submit_with_retry
from competition_bot.logging.signal_log import get_signal_logger
from competition_bot.logging.trade_log import get_trade_logger
from competition_bot.monitoring.alerts import CRITICAL, Alert
from competition_bot.risk.governor import RiskGovernor
from competition_bot.risk.trade_limiter import TradeLimiter
from competition_bot.strategy.manager import StrategyManager


class TraderState(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    RUNNING = "RUNNING"
    EMERGENCY_HALTED = "EMERGENCY_HALTED"
    ENDED = "ENDED"


_TRANSITIONS = {
    TraderState.NOT_STARTED: {TraderState.RUNNING},
    TraderState.RUNNING: {TraderState.EMERGENCY_HALTED, TraderState.ENDED},
    TraderState.EMERGENCY_HALTED: {TraderState.ENDED},
    TraderState.ENDED: set(),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CompetitionTrader:
    """Coordinates feed, strategies, risk and execution for one session.

    Ticks run strictly one after another. Only this class mutates the portfolio.
    """

    def __init__(
        self,
        config: TraderConfig,
        feed: MarketFeed,
        executor: OrderExecutor,
        bus: EventBus | None = None,
        quote_source: VenueQuoteSource | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.config = config
        self.feed = feed
        self.executor = executor
        self.bus = bus or EventBus()
        self.clock = clock

        self.manager = StrategyManager(config.strategies, history_size=config.history_size, quote_source=quote_source)
        self.governor = RiskGovernor(config.risk)
        self.trade_limiter = TradeLimiter(config.min_trade_interval_seconds, config.max_trades_per_day)
        self.portfolio = Portfolio.with_cash(config.initial_balance)
        self.signal_logger = get_signal_logger()
        self.trade_logger = get_trade_logger()

        self.state = TraderState.NOT_STARTED
        self.started_at: Optional[datetime] = None
        self.halt_reason: Optional[str] = None
        self.tick_count = 0
        self.trade_count = 0
        self.failed_count = 0
        self._stop_requested = False
        self._closed_pnls: list[float] = []
        self._pnl_curve: list[float] = []
        self._max_drawdown = 0.0
        self._last_seen: dict[str, datetime] = {}

        self.bus.subscribe(self._on_alert, AlertRaised)

    # -- state machine -------------------------------------------------------

    def _transition(self, new_state: TraderState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise InvalidStateTransition(f"{self.state.value} -> {new_state.value}")
        self.signal_logger.info("state_change from=%s to=%s", self.state.value, new_state.value)
        self.state = new_state

    @property
    def is_active(self) -> bool:
        return self.state in (TraderState.RUNNING, TraderState.EMERGENCY_HALTED)

    def start(self) -> None:
        self._transition(TraderState.RUNNING)
        self.started_at = self.clock()
        self.portfolio.roll_day(self.started_at.date())
        self.signal_logger.info(
            "session_started balance=%.2f pairs=%s %s",
            self.portfolio.cash,
            ",".join(self.config.trading_pairs),
            self.manager.summary(),
        )

    def stop(self) -> None:
        """Request a graceful stop; honoured at the next tick boundary."""
        self._stop_requested = True

    def halt(self, reason: str) -> None:
        """Enter EMERGENCY_HALTED. Positions stay open and prices keep being marked."""
        if self.state == TraderState.EMERGENCY_HALTED:
            return
        self._transition(TraderState.EMERGENCY_HALTED)
        self.halt_reason = reason
        self.signal_logger.critical("emergency_halt reason=%s equity=%.2f", reason, self.portfolio.equity())

    def end(self, reason: str = "stopped") -> PortfolioSnapshot:
        self._transition(TraderState.ENDED)
        self.manager.close()
        snapshot = self.snapshot()
        self.signal_logger.info(
            "session_ended reason=%s value=%.2f pnl=%.2f trades=%d",
            reason,
            snapshot.total_value,
            snapshot.pnl,
            snapshot.trade_count,
        )
        self.bus.publish(SessionEnded(snapshot=snapshot, reason=reason))
        return snapshot

    def _on_alert(self, event: AlertRaised) -> None:
        alert = event.alert
        if alert.level == CRITICAL and alert.halt and self.state == TraderState.RUNNING:
            self.halt(alert.message)

    # -- main loop -----------------------------------------------------------

    def warm_up(self) -> None:
        """Seed strategy history from the feed's recent samples."""
        for symbol in self.config.trading_pairs:
            try:
                samples = self.feed.get_history(symbol, self.config.history_size)
            except Exception as exc:
                self.signal_logger.warning("feed_fault phase=warmup symbol=%s error=%s", symbol, exc)
                continue
            self.manager.warm_up(samples)
            if samples:
                self._last_seen[symbol] = samples[-1].timestamp
            self.signal_logger.info("warmup symbol=%s samples=%d", symbol, len(samples))

    def duration_elapsed(self) -> bool:
        if self.started_at is None:
            return False
        return (self.clock() - self.started_at).total_seconds() >= self.config.duration_seconds

    async def run(self, max_ticks: int | None = None) -> PortfolioSnapshot:
        """Drive ticks until stopped, the duration elapses or ``max_ticks`` is reached."""
        if self.state == TraderState.NOT_STARTED:
            self.start()
        self.warm_up()

        reason = "stopped"
        ticks = 0
        while self.is_active:
            if self._stop_requested:
                break
            if self.duration_elapsed():
                reason = "duration_elapsed"
                break
            if max_ticks is not None and ticks >= max_ticks:
                reason = "max_ticks"
                break

            started = time.monotonic()
            try:
                await self.tick()
            except Exception as exc:
                self.signal_logger.exception("tick_fault tick=%d error=%s", self.tick_count, exc)
                if self.state == TraderState.RUNNING:
                    self.halt(f"tick fault: {exc}")
            ticks += 1

            remaining = self.config.tick_seconds - (time.monotonic() - started)
            if remaining > 0 and not self._stop_requested:
                await asyncio.sleep(remaining)

        return self.end(reason)

    async def tick(self) -> None:
        if not self.is_active:
            raise InvalidStateTransition(f"cannot tick in state {self.state.value}")
        self.tick_count += 1
        now = self.clock()
        self.bus.publish(TickStarted(tick=self.tick_count, timestamp=now))
        if self.portfolio.roll_day(now.date()):
            self.signal_logger.info("day_rolled day_start_equity=%.2f", self.portfolio.day_start_equity)

        for symbol in self.config.trading_pairs:
            try:
                sample = self._fetch(symbol)
            except FeedError as exc:
                self.signal_logger.warning("feed_fault symbol=%s error=%s", symbol, exc)
                continue
            await self._process(sample, now)

        self._record_curve()

    def _fetch(self, symbol: str) -> MarketSample:
        try:
            sample = self.feed.get_latest(symbol)
        except Exception as exc:
            raise FeedError(f"{symbol}: {exc}") from exc
        if sample is None:
            raise FeedError(f"{symbol}: no market data")
        last = self._last_seen.get(symbol)
        if last is not None and sample.timestamp <= last:
            raise FeedError(f"{symbol}: stale sample at {sample.timestamp.isoformat()}")
        self._last_seen[symbol] = sample.timestamp
        return sample

    async def _process(self, sample: MarketSample, now: datetime) -> None:
        symbol = sample.symbol
        self.portfolio.mark(symbol, sample.price)
        self.portfolio.update_high_water_mark()

        if self.state == TraderState.EMERGENCY_HALTED:
            self.manager.history.append(sample)
            return

        allowed, limit_reason = self.governor.can_trade(self.portfolio)
        if not allowed:
            self.manager.history.append(sample)
            self._breach(limit_reason)
            return

        for order in self.governor.stop_loss_orders(self.portfolio):
            if order.symbol == symbol:
                self.trade_logger.warning("stop_loss symbol=%s %s", symbol, order.sizing_rationale)
                self.trade_limiter.mark_trade(now)
                await self._execute(order)

        signal = await self.manager.analyze_async(sample)
        decision = self.governor.evaluate(signal, self.portfolio, symbol, sample.price)
        if decision.breach:
            self._breach(decision.breach)
            return
        if decision.order is None:
            if decision.reason != "hold":
                self.signal_logger.info("skip signal symbol=%s reason=%s", symbol, decision.reason)
            return

        allowed_trade, trade_reason = self.trade_limiter.allow_trade(now)
        if not allowed_trade:
            self.signal_logger.info("skip signal symbol=%s reason=%s", symbol, trade_reason)
            return
        self.trade_limiter.mark_trade(now)
        await self._execute(decision.order)

    def _breach(self, reason: str) -> None:
        alert = Alert(
            level=CRITICAL,
            category="RISK",
            message=f"Risk limit breached: {reason}",
            rule=f"breach:{reason}",
            halt=True,
            data={
                "drawdown": self.portfolio.current_drawdown(),
                "daily_pnl_pct": self.portfolio.daily_pnl_pct(),
            },
        )
        self.bus.publish(AlertRaised(alert))
        self.halt(alert.message)

    async def _execute(self, order: Order) -> None:
        settings = self.config.execution
        outcome = await submit_with_retry(
            self.executor,
            order,
            timeout=settings.submit_timeout_seconds,
            max_retries=settings.max_retries,
            backoff=settings.retry_backoff_seconds,
        )
        if not isinstance(outcome, Fill):
            self.failed_count += 1
            self.trade_logger.error(
                "trade_failed order_id=%s symbol=%s side=%s amount=%.2f attempts=%d reason=%s",
                order.order_id,
                order.symbol,
                order.side,
                order.amount,
                outcome.attempts,
                outcome.reason,
            )
            self.bus.publish(TradeFailed(order=order, failure=outcome, timestamp=self.clock()))
            return

        realized = self.portfolio.apply_fill(outcome)
        self.trade_count += 1
        if outcome.side == SELL:
            self._closed_pnls.append(realized)
        equity = self.portfolio.equity()
        self.trade_logger.info(
            "trade_executed order_id=%s symbol=%s side=%s qty=%.6f price=%.4f fee=%.4f partial=%s "
            "realized=%.2f cash=%.2f by=%s",
            order.order_id,
            outcome.symbol,
            outcome.side,
            outcome.quantity,
            outcome.price,
            outcome.fee,
            outcome.is_partial,
            realized,
            self.portfolio.cash,
            ",".join(order.requested_by),
        )
        self.bus.publish(
            TradeExecuted(order=order, fill=outcome, realized_pnl=realized, equity=equity, timestamp=self.clock())
        )

    # -- reporting -----------------------------------------------------------

    def _record_curve(self) -> None:
        self.governor.record_pnl(self.portfolio)
        snap = self.snapshot()
        self._pnl_curve.append(snap.pnl_pct)
        self._max_drawdown = max(self._max_drawdown, snap.drawdown)

    def snapshot(self) -> PortfolioSnapshot:
        """Current portfolio view; valid in every state."""
        return self.portfolio.snapshot(trade_count=self.trade_count, now=self.clock())

    def risk_report(self) -> dict[str, Any]:
        """Risk health of the current portfolio, including the default stress scenarios."""
        report = self.governor.risk_report(self.portfolio)
        report["stress_test"] = self.governor.stress_test(self.portfolio)
        report["emergency_halted"] = self.state == TraderState.EMERGENCY_HALTED
        return report

    def performance_metrics(self) -> dict[str, Any]:
        snap = self.snapshot()
        curve = self._pnl_curve or [snap.pnl_pct]
        std = pstdev(curve) if len(curve) > 1 else 0.0
        gross_profit = sum(p for p in self._closed_pnls if p > 0)
        gross_loss = -sum(p for p in self._closed_pnls if p < 0)
        wins = sum(1 for p in self._closed_pnls if p > 0)
        return {
            "total_return_pct": snap.pnl_pct,
            "max_drawdown": max(self._max_drawdown, snap.drawdown),
            "sharpe_ratio": mean(curve) / std if std > 0 else 0.0,
            "profit_factor": gross_profit / gross_loss if gross_loss > 0 else 0.0,
            "win_rate": wins / len(self._closed_pnls) if self._closed_pnls else 0.0,
            "trades": self.trade_count,
            "failed_trades": self.failed_count,
            "ticks": self.tick_count,
            "state": self.state.value,
        }
