"""Structured logging setup."""
import logging

import structlog


def configure_logging(level: str = "INFO", json: bool = True) -> None:
    """Configure structlog once for the whole process.

    Every log line carries the level, an ISO timestamp and whatever was bound
    through ``structlog.contextvars`` for the current request.
    """
    renderer = structlog.processors.JSONRenderer() if json else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
