"""Monitoring and alert logger."""

from __future__ import annotations

import logging

from competition_bot.logging.factory import configure_logger


def get_monitor_logger() -> logging.Logger:
    """Return configured monitor logger instance."""
    return configure_logger("monitor_log", "MONITOR")
