"""Signal models shared between strategies, the manager and the risk layer."""

from __future__ import annotations

from dataclasses import dataclass

from competition_bot.config.constants import ACTIONS, HOLD


def _check_signal_values(action: str, confidence: float, amount: float) -> None:
    if action not in ACTIONS:
        raise ValueError(f"action must be one of {ACTIONS}, got {action!r}")
    if not 0.0 <= confidence <= 1.0:
        raise ValueError(f"confidence must be within [0, 1], got {confidence}")
    if amount < 0:
        raise ValueError(f"amount must be >= 0, got {amount}")


@dataclass(frozen=True)
class TradingSignal:
    """One strategy's recommendation for the current tick."""

    strategy_name: str
    action: str
    confidence: float
    amount: float
    reason: str

    def __post_init__(self) -> None:
        _check_signal_values(self.action, self.confidence, self.amount)

    @classmethod
    def hold(cls, strategy_name: str, reason: str, confidence: float = 0.0) -> "TradingSignal":
        return cls(strategy_name=strategy_name, action=HOLD, confidence=confidence, amount=0.0, reason=reason)


@dataclass(frozen=True)
class PortfolioSignal:
    """Reconciled decision across all strategy signals for one tick."""

    final_action: str
    confidence: float
    total_amount: float
    contributing_signals: tuple[TradingSignal, ...]
    reasoning: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "contributing_signals", tuple(self.contributing_signals))
        _check_signal_values(self.final_action, self.confidence, self.total_amount)

    def agreeing_strategies(self, noise_floor: float = 0.1) -> tuple[str, ...]:
        """Names of the strategies whose surviving signal matches the final action."""
        return tuple(
            s.strategy_name
            for s in self.contributing_signals
            if s.action == self.final_action and s.confidence > noise_floor
        )
