"""Structured logging configuration.

This module initializes structlog with a stable JSON format.
The host application's own structlog setup is left untouched.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import structlog

from core.config import parse_log_level
from core.constants import DEFAULT_LOG_LEVEL


def get_logger(name: str) -> Any:
    """Return a module logger instance.

    Args:
        name: Logger name, usually __name__.

    Returns:
        A structlog logger with structured output.
    """
    if not structlog.is_configured():
        _configure_structlog()
    return structlog.get_logger(name)


def _configure_structlog() -> None:
    """Apply the sevenimport processor chain and level filter."""
    level_name = parse_log_level(os.getenv("SEVENIMPORT_LOG_LEVEL", DEFAULT_LOG_LEVEL))
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level_name)),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
