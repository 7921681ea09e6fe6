"""Bounded submission of orders to an executor."""

from __future__ import annotations

import asyncio

from competition_bot.errors import ExecutionError
from competition_bot.execution.order import ExecutionFailure, Fill, Order
from competition_bot.execution.paper_broker import OrderExecutor
from competition_bot.logging.trade_log import get_trade_logger


async def submit_with_retry(
    executor: OrderExecutor,
    order: Order,
    timeout: float,
    max_retries: int,
    backoff: float = 0.0,
) -> Fill | ExecutionFailure:
    """Submit ``order`` with a per-attempt timeout and at most ``max_retries`` retries.

    Every attempt reuses the same order id. The outcome is a Fill or an
    ExecutionFailure; executor errors never propagate.
    """
    trade_logger = get_trade_logger()
    attempts = 0
    reason = "not attempted"
    while attempts <= max_retries:
        attempts += 1
        try:
            return await asyncio.wait_for(executor.submit(order), timeout=timeout)
        except asyncio.TimeoutError:
            reason = f"timeout after {timeout:.1f}s"
        except ExecutionError as exc:
            reason = exc.reason
            if not exc.retryable:
                break
        except Exception as exc:
            reason = f"{type(exc).__name__}: {exc}"
        trade_logger.warning(
            "submit_retry order_id=%s attempt=%d/%d reason=%s",
            order.order_id,
            attempts,
            max_retries + 1,
            reason,
        )
        if attempts <= max_retries and backoff > 0:
            await asyncio.sleep(backoff * attempts)
    return ExecutionFailure(order_id=order.order_id, reason=reason, attempts=attempts)
