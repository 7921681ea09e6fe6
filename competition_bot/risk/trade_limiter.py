"""Trade attempt limiter to avoid overtrading."""

from __future__ import annotations

from datetime import date, datetime


class TradeLimiter:
    """Enforces a minimum spacing between trades and a daily trade cap."""

    def __init__(self, min_interval_seconds: float, max_trades_per_day: int) -> None:
        self.min_interval_seconds = min_interval_seconds
        self.max_trades_per_day = max_trades_per_day
        self._last_trade_at: datetime | None = None
        self._trade_day: date | None = None
        self._trade_count = 0

    def allow_trade(self, now: datetime) -> tuple[bool, str]:
        """Gate orders that come too soon after the last one or past the daily cap."""
        self._roll(now.date())
        if self._trade_count >= self.max_trades_per_day:
            return False, "daily_trade_limit"
        if self._last_trade_at is not None:
            elapsed = (now - self._last_trade_at).total_seconds()
            if elapsed < self.min_interval_seconds:
                return False, "min_trade_interval"
        return True, "ok"

    def mark_trade(self, now: datetime) -> None:
        """Record a submitted order."""
        self._roll(now.date())
        self._last_trade_at = now
        self._trade_count += 1

    def _roll(self, day: date) -> None:
        if self._trade_day != day:
            self._trade_day = day
            self._trade_count = 0

    @property
    def trade_count(self) -> int:
        return self._trade_count
