"""Shared logging utilities for structured logging across the application.

All modules obtain their logger through ``get_logger(__name__)`` and log
snake_case events with keyword context, rendered as JSON lines.
"""

import logging
import os
import sys

import structlog

_configured = False


def configure_logging(level: str | None = None) -> None:
    """Configure structlog and the standard library root logger.

    Args:
        level: Log level name. Defaults to the LOG_LEVEL environment variable,
            falling back to INFO.
    """
    global _configured

    level_name = (level or os.getenv("LOG_LEVEL") or "INFO").upper()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level_name, logging.INFO),
    )

    _configured = True


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a configured structured logger instance.

    Args:
        name: Logger name (typically __name__ from the calling module).

    Returns:
        Configured structlog logger instance.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("transcript_updated", lecture_id="abc", segments=12)
    """
    if not _configured:
        configure_logging()

    return structlog.get_logger(name)
