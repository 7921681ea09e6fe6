"""Strategy manager: runs every active strategy and reconciles their signals."""

from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Sequence

from competition_bot.config import constants
from competition_bot.config.constants import BUY, HOLD, SELL
from competition_bot.config.settings import StrategyConfig, build_params, validate_allocations
from competition_bot.data.market_feed import MarketHistory, MarketSample
from competition_bot.data.venue_quotes import VenueQuoteSource
from competition_bot.errors import ConfigError, StrategyFault
from competition_bot.logging.signal_log import get_signal_logger
from competition_bot.strategy.base import Strategy
from competition_bot.strategy.registry import build_strategy
from competition_bot.strategy.signal import PortfolioSignal, TradingSignal


def combine_signals(signals: Sequence[TradingSignal]) -> PortfolioSignal:
    """Reconcile one tick's strategy signals into a single portfolio decision.

    Signals at or below the noise floor are ignored. ``total_amount`` adds BUY and
    SELL notionals together regardless of side before being zeroed on HOLD.
    """
    signals = tuple(signals)
    if not signals:
        return PortfolioSignal(
            final_action=HOLD,
            confidence=0.0,
            total_amount=0.0,
            contributing_signals=(),
            reasoning="No strategy signals available",
        )

    active = [s for s in signals if s.confidence > constants.NOISE_FLOOR]

    buy_score = 0.0
    sell_score = 0.0
    weight_sum = 0.0
    total_amount = 0.0
    for s in active:
        weight_sum += s.confidence
        if s.action == BUY:
            buy_score += s.confidence
            total_amount += s.amount
        elif s.action == SELL:
            sell_score += s.confidence
            total_amount += s.amount

    if buy_score > sell_score and buy_score > constants.ACTION_SCORE_THRESHOLD:
        final_action = BUY
        confidence = min(constants.MAX_BASE_CONFIDENCE, buy_score / max(weight_sum, 1.0))
    elif sell_score > buy_score and sell_score > constants.ACTION_SCORE_THRESHOLD:
        final_action = SELL
        confidence = min(constants.MAX_BASE_CONFIDENCE, sell_score / max(weight_sum, 1.0))
    else:
        final_action = HOLD
        confidence = constants.HOLD_CONFIDENCE

    agreeing = sum(1 for s in active if s.action == final_action)
    if agreeing >= 2 and len(active) >= 2:
        confidence = min(constants.MAX_CONSENSUS_CONFIDENCE, confidence * constants.CONSENSUS_MULTIPLIER)

    return PortfolioSignal(
        final_action=final_action,
        confidence=confidence,
        total_amount=0.0 if final_action == HOLD else total_amount,
        contributing_signals=signals,
        reasoning=_reasoning(active, final_action, confidence, agreeing),
    )


def _reasoning(active: Sequence[TradingSignal], action: str, confidence: float, agreeing: int) -> str:
    if not active:
        return "No strong signals from any strategy"
    reasons = "; ".join(f"{s.strategy_name}: {s.reason}" for s in active)
    return (
        f"{action} decision with {confidence * 100:.1f}% confidence. "
        f"{agreeing}/{len(active)} strategies agree. Signals: {reasons}"
    )


@dataclass(frozen=True)
class ReconfigurationRecord:
    """Audit entry for one accepted strategy reconfiguration."""

    timestamp: datetime
    actor: str
    strategy_name: str
    changes: Mapping[str, Any]


class StrategyManager:
    """Owns the active strategy set and the per-symbol market history window."""

    def __init__(
        self,
        configs: Iterable[StrategyConfig],
        history_size: int = constants.DEFAULT_HISTORY_SIZE,
        quote_source: VenueQuoteSource | None = None,
        max_workers: int | None = None,
    ) -> None:
        self._configs = tuple(configs)
        validate_allocations(self._configs)
        self.quote_source = quote_source
        self.history = MarketHistory(history_size)
        self.signal_logger = get_signal_logger()
        self.audit_log: list[ReconfigurationRecord] = []
        self._max_workers = max_workers
        self._pool: ThreadPoolExecutor | None = None
        self.strategies: list[Strategy] = self._build(self._configs)
        self.signal_logger.info("strategies_initialized count=%d %s", len(self.strategies), self.summary())

    def _build(self, configs: Sequence[StrategyConfig]) -> list[Strategy]:
        return [build_strategy(c, quote_source=self.quote_source) for c in configs if c.enabled]

    @property
    def configs(self) -> tuple[StrategyConfig, ...]:
        return self._configs

    def warm_up(self, samples: Iterable[MarketSample]) -> None:
        """Seed the history window without running any strategy."""
        self.history.extend(samples)

    def analyze(self, sample: MarketSample) -> PortfolioSignal:
        """Record ``sample`` in its symbol's history and evaluate all strategies."""
        self.history.append(sample)
        return self.evaluate(sample, self.history.snapshot(sample.symbol))

    async def analyze_async(self, sample: MarketSample) -> PortfolioSignal:
        """Like ``analyze`` but awaits the strategy pool instead of blocking the event loop."""
        self.history.append(sample)
        return await self.evaluate_async(sample, self.history.snapshot(sample.symbol))

    def evaluate(self, sample: MarketSample, history: Sequence[MarketSample]) -> PortfolioSignal:
        """Run every strategy against a fixed history snapshot and reconcile the result."""
        history = tuple(history)
        strategies = list(self.strategies)
        if not strategies:
            return self._decide(sample, [])
        pool = self._executor()
        futures = [pool.submit(self._run_one, strategy, sample, history) for strategy in strategies]
        return self._decide(sample, [f.result() for f in futures])

    async def evaluate_async(self, sample: MarketSample, history: Sequence[MarketSample]) -> PortfolioSignal:
        history = tuple(history)
        strategies = list(self.strategies)
        if not strategies:
            return self._decide(sample, [])
        loop = asyncio.get_running_loop()
        pool = self._executor()
        results = await asyncio.gather(
            *(loop.run_in_executor(pool, self._run_one, strategy, sample, history) for strategy in strategies)
        )
        return self._decide(sample, results)

    def close(self) -> None:
        """Shut the strategy pool down; it is recreated on the next evaluation."""
        if self._pool is not None:
            self._pool.shutdown(wait=True)
            self._pool = None

    def _executor(self) -> ThreadPoolExecutor:
        if self._pool is None:
            workers = self._max_workers or max(len(self.strategies), 1)
            self._pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="strategy")
        return self._pool

    def _decide(self, sample: MarketSample, results: Iterable[TradingSignal | None]) -> PortfolioSignal:
        decision = combine_signals([signal for signal in results if signal is not None])
        self.signal_logger.info(
            "portfolio_decision symbol=%s action=%s amount=%.2f confidence=%.3f",
            sample.symbol,
            decision.final_action,
            decision.total_amount,
            decision.confidence,
        )
        return decision

    def _run_one(
        self, strategy: Strategy, sample: MarketSample, history: tuple[MarketSample, ...]
    ) -> TradingSignal | None:
        try:
            signal = strategy.analyze(sample, history)
            if not isinstance(signal, TradingSignal):
                raise StrategyFault(strategy.name, f"returned {type(signal).__name__}, expected TradingSignal")
        except Exception as exc:
            fault = exc if isinstance(exc, StrategyFault) else StrategyFault(strategy.name, str(exc))
            self.signal_logger.error("strategy_fault strategy=%s error=%s", fault.strategy_name, fault.detail)
            return None
        self.signal_logger.debug(
            "strategy_signal strategy=%s action=%s confidence=%.3f amount=%.2f",
            signal.strategy_name,
            signal.action,
            signal.confidence,
            signal.amount,
        )
        return signal

    def reconfigure(
        self,
        strategy_name: str,
        *,
        allocation: float | None = None,
        enabled: bool | None = None,
        params: Mapping[str, Any] | None = None,
        actor: str = "operator",
    ) -> ReconfigurationRecord:
        """Apply an audited change to one strategy.

        The whole resulting strategy set is re-validated; on any error nothing changes.
        """
        index = next((i for i, c in enumerate(self._configs) if c.name == strategy_name), None)
        if index is None:
            raise ConfigError(f"unknown strategy: {strategy_name}")

        current = self._configs[index]
        changes: dict[str, Any] = {}
        if allocation is not None:
            changes["allocation"] = float(allocation)
        if enabled is not None:
            changes["enabled"] = enabled
        if params is not None:
            merged = {**vars(current.params), **dict(params)}
            changes["params"] = build_params(current.kind, merged)
        if not changes:
            raise ConfigError("reconfigure called without any change")
        updated = replace(current, **changes)

        configs = list(self._configs)
        configs[index] = updated
        validate_allocations(configs)

        strategies = self._build(configs)
        self._configs = tuple(configs)
        self.strategies = strategies

        audit_changes = {k: v for k, v in changes.items() if k != "params"}
        if params is not None:
            audit_changes["params"] = dict(params)
        record = ReconfigurationRecord(
            timestamp=datetime.now(timezone.utc),
            actor=actor,
            strategy_name=strategy_name,
            changes=audit_changes,
        )
        self.audit_log.append(record)
        self.signal_logger.warning(
            "strategy_reconfigured strategy=%s actor=%s changes=%s", strategy_name, actor, record.changes
        )
        return record

    def summary(self) -> str:
        parts = [
            f"{s.name}({s.config.allocation:g}%,{s.config.risk_level})"
            for s in self.strategies
        ]
        return "Active strategies: " + ", ".join(parts)
