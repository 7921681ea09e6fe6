"""Paper execution layer with seeded simulated fills."""

from __future__ import annotations

import asyncio
import random

from competition_bot.config.constants import BUY, QTY_DECIMALS
from competition_bot.config.settings import ExecutionSettings
from competition_bot.errors import ExecutionError
from competition_bot.execution.order import Fill, Order


class OrderExecutor:
    """Interface for order submission.

    ``submit`` returns a Fill or raises ExecutionError. Re-submitting an order id
    that already filled must return the first fill.
    """

    async def submit(self, order: Order) -> Fill:
        raise NotImplementedError


class PaperExecutor(OrderExecutor):
    """Simulates latency, random rejections, slippage, fees and partial fills."""

    def __init__(self, settings: ExecutionSettings | None = None, seed: int = 42) -> None:
        self.settings = settings or ExecutionSettings()
        self._rng = random.Random(seed)
        self._fills: dict[str, Fill] = {}
        self.submissions = 0

    async def submit(self, order: Order) -> Fill:
        self.submissions += 1
        previous = self._fills.get(order.order_id)
        if previous is not None:
            return previous

        s = self.settings
        latency = self._rng.uniform(s.min_latency_seconds, s.max_latency_seconds)
        if latency > 0:
            await asyncio.sleep(latency)

        if self._rng.random() < s.failure_probability:
            raise ExecutionError("Simulated trade execution failure")

        fill = self.simulate_fill(order)
        self._fills[order.order_id] = fill
        return fill

    def simulate_fill(self, order: Order) -> Fill:
        """Simulate a fill, including partials and slippage against the reference price."""
        s = self.settings
        is_partial = self._rng.random() < s.partial_fill_probability
        ratio = self._rng.uniform(s.min_partial_fill_ratio, s.max_partial_fill_ratio) if is_partial else 1.0
        qty = round(order.quantity * ratio, QTY_DECIMALS)

        slip = self._rng.uniform(0.0, s.slippage_bps) / 10_000.0
        price = order.reference_price * (1.0 + slip if order.side == BUY else 1.0 - slip)
        fee = price * qty * s.fee_rate

        return Fill(
            order_id=order.order_id,
            symbol=order.symbol,
            side=order.side,
            quantity=qty,
            price=price,
            fee=fee,
            is_partial=is_partial,
        )
