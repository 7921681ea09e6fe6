"""Shared logger construction for the event loggers."""

from __future__ import annotations

import logging


def configure_logger(name: str, tag: str, level: int = logging.INFO) -> logging.Logger:
    """Return logger ``name`` with a single tagged stream handler attached."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(f"%(asctime)s | {tag} | %(levelname)s | %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.setLevel(level)
    return logger
