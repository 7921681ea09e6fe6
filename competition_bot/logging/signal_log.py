"""Signal and risk decision logger."""

from __future__ import annotations

import logging

from competition_bot.logging.factory import configure_logger


def get_signal_logger() -> logging.Logger:
    """Return configured signal logger instance."""
    return configure_logger("signal_log", "SIGNAL")


def get_risk_logger() -> logging.Logger:
    """Return configured risk logger instance."""
    return configure_logger("risk_log", "RISK")
