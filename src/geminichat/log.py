"""Logging setup built on structlog."""

import logging

import structlog


def configure_logging(level: int | str = logging.WARNING) -> None:
    """Configure structlog with a level filter.

    Args:
        level: Minimum level as an int or name ("debug", "info", ...)
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.WARNING

    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="%H:%M:%S"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=False,
    )
