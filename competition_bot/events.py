"""Typed session events and the in-process bus that delivers them."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
from typing import Any, Callable, Optional

from competition_bot.execution.order import ExecutionFailure, Fill, Order

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TickStarted:
    tick: int
    timestamp: datetime = field(default_factory=_now)


@dataclass(frozen=True)
class TradeExecuted:
    order: Order
    fill: Fill
    realized_pnl: float
    equity: float
    timestamp: datetime = field(default_factory=_now)


@dataclass(frozen=True)
class TradeFailed:
    order: Order
    failure: ExecutionFailure
    timestamp: datetime = field(default_factory=_now)


@dataclass(frozen=True)
class AlertRaised:
    alert: Any


@dataclass(frozen=True)
class SessionEnded:
    snapshot: Any
    reason: str
    timestamp: datetime = field(default_factory=_now)


Handler = Callable[[Any], None]


class EventBus:
    """Synchronous publish/subscribe.

    Handlers run in subscription order. A handler that raises is logged and
    skipped; the remaining handlers still receive the event.
    """

    def __init__(self) -> None:
        self._subscribers: list[tuple[Optional[type], Handler]] = []

    def subscribe(self, handler: Handler, event_type: Optional[type] = None) -> None:
        """Register ``handler`` for every event, or only for ``event_type``."""
        self._subscribers.append((event_type, handler))

    def unsubscribe(self, handler: Handler) -> None:
        self._subscribers = [(t, h) for t, h in self._subscribers if h != handler]

    def publish(self, event: Any) -> None:
        for event_type, handler in list(self._subscribers):
            if event_type is not None and not isinstance(event, event_type):
                continue
            try:
                handler(event)
            except Exception:
                logger.exception("event subscriber failed event=%s handler=%r", type(event).__name__, handler)
