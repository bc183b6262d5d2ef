"""Logging configuration for the storefront engine."""

import logging

import structlog

import settings


def configure_logging(level: str = settings.LOG_LEVEL) -> None:
    """Route structlog through a level filter and render key/value lines."""
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        cache_logger_on_first_use=True,
    )

    # Suppress noisy driver loggers
    logging.getLogger("pymongo").setLevel(logging.WARNING)
