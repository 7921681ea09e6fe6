"""Trade event logger."""

from __future__ import annotations

import logging

from competition_bot.logging.factory import configure_logger


def get_trade_logger() -> logging.Logger:
    """Return configured trade logger instance."""
    return configure_logger("trade_log", "TRADE")
