"""Indicator helpers used by the strategies."""

from __future__ import annotations

from statistics import mean, pstdev
from typing import Sequence


def moving_average(values: Sequence[float], period: int | None = None) -> float:
    """Simple moving average over the last ``period`` values (all values when omitted)."""
    if period is not None and period <= 0:
        raise ValueError("period must be > 0")
    if not values:
        raise ValueError("values cannot be empty")
    window = values[-period:] if period else values
    return mean(window)


def pct_change(new_value: float, old_value: float) -> float:
    """Safe percentage change."""
    if old_value == 0:
        return 0.0
    return (new_value - old_value) / old_value


def mean_stddev(values: Sequence[float]) -> tuple[float, float]:
    """Return the mean and population standard deviation of ``values``."""
    if not values:
        raise ValueError("values cannot be empty")
    return mean(values), pstdev(values)


def rsi(closes: Sequence[float]) -> float:
    """Compute RSI from simple average gains/losses across the whole series.

    A series shorter than two points is neutral (50); a series without losses is 100.
    """
    if len(closes) < 2:
        return 50.0

    gains = 0.0
    losses = 0.0
    for i in range(1, len(closes)):
        delta = closes[i] - closes[i - 1]
        if delta > 0:
            gains += delta
        else:
            losses -= delta

    periods = len(closes) - 1
    avg_gain = gains / periods
    avg_loss = losses / periods
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100.0 - (100.0 / (1.0 + rs))


def z_score(value: float, center: float, std: float) -> float:
    """Distance of ``value`` from ``center`` in standard deviations (0 when std is 0)."""
    if std == 0:
        return 0.0
    return (value - center) / std
