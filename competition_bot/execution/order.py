"""Order, fill and failure models exchanged with the order executor."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import uuid4


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Order:
    """Bounded order produced by the risk governor.

    ``amount`` is USD notional; ``order_id`` stays the same across retries so the
    executor can deduplicate.
    """

    symbol: str
    side: str
    amount: float
    reference_price: float
    requested_by: tuple[str, ...]
    sizing_rationale: str
    confidence: float = 0.0
    order_id: str = field(default_factory=lambda: uuid4().hex)
    created_at: datetime = field(default_factory=_now)

    def __post_init__(self) -> None:
        if self.amount < 0:
            raise ValueError(f"order amount must be >= 0, got {self.amount}")
        if self.reference_price <= 0:
            raise ValueError(f"reference_price must be > 0, got {self.reference_price}")
        object.__setattr__(self, "requested_by", tuple(self.requested_by))

    @property
    def quantity(self) -> float:
        return self.amount / self.reference_price


@dataclass(frozen=True)
class Fill:
    """Order fill result (possibly partial)."""

    order_id: str
    symbol: str
    side: str
    quantity: float
    price: float
    fee: float
    is_partial: bool
    ts: datetime = field(default_factory=_now)

    @property
    def notional(self) -> float:
        return self.quantity * self.price


@dataclass(frozen=True)
class ExecutionFailure:
    """Terminal outcome of an order that could not be executed."""

    order_id: str
    reason: str
    attempts: int
