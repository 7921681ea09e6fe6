"""Exception types raised across the trading core."""

from __future__ import annotations


class TradingError(Exception):
    """Base class for all trading core errors."""


class ConfigError(TradingError, ValueError):
    """Raised when configuration is missing, malformed or violates an invariant."""


class StrategyFault(TradingError):
    """A single strategy failed to evaluate or produced invalid data."""

    def __init__(self, strategy_name: str, detail: str) -> None:
        super().__init__(f"{strategy_name}: {detail}")
        self.strategy_name = strategy_name
        self.detail = detail


class ExecutionError(TradingError):
    """The order executor rejected or failed to complete an order."""

    def __init__(self, reason: str, retryable: bool = True) -> None:
        super().__init__(reason)
        self.reason = reason
        self.retryable = retryable


class FeedError(TradingError):
    """Market data could not be obtained for a symbol."""


class InvalidStateTransition(TradingError):
    """The trader was asked to move between two states that are not connected."""
