"""promptgraph.logging

Structured logging helpers (structlog).

Modules obtain a logger with `get_logger(__name__)` and log events with keyword
context, e.g. `logger.warning("Missing node types", types=[...])`.
"""

from __future__ import annotations

import logging
from typing import Any

import structlog


def get_logger(name: str) -> Any:
    return structlog.get_logger(name)


def configure_logging(level: str | int = "INFO") -> None:
    """Install a console renderer for hosts that do not configure structlog themselves."""
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=False,
    )
