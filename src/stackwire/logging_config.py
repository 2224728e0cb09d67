"""Structured logging configuration with structlog.

Usage:
    from stackwire.logging_config import configure_logging

    configure_logging(json_output=True)

    import structlog
    log = structlog.get_logger(__name__)
    log.info("component_synthesized", component="orders-db")
"""

import logging
import os
import sys

import structlog
from structlog.typing import Processor

LOG_LEVEL_ENV = "STACKWIRE_LOG_LEVEL"
DEFAULT_LOG_LEVEL = "WARNING"


def _stderr_logger(*args: object) -> structlog.PrintLogger:
    # Resolved per call so redirected streams are honoured.
    return structlog.PrintLogger(file=sys.stderr)


def _get_log_level(level: str | None) -> int:
    level_name = (level or os.getenv(LOG_LEVEL_ENV, DEFAULT_LOG_LEVEL)).upper()
    return getattr(logging, level_name, logging.WARNING)


def configure_logging(level: str | None = None, json_output: bool = False) -> None:
    """Configure structlog once at process start.

    Args:
        level: Log level name. Falls back to $STACKWIRE_LOG_LEVEL, then WARNING.
        json_output: Render JSON lines instead of coloured console output.
    """
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        final_processor: Processor = structlog.processors.JSONRenderer(sort_keys=True)
    else:
        final_processor = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=shared_processors + [final_processor],
        wrapper_class=structlog.make_filtering_bound_logger(_get_log_level(level)),
        context_class=dict,
        logger_factory=_stderr_logger,
        cache_logger_on_first_use=False,
    )
