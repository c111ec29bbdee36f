"""Logging configuration for cms-images."""

from __future__ import annotations

import logging

import structlog

PACKAGE_LOGGER = __package__ or "cms_images"


def configure_logging(level: int | str = logging.INFO) -> None:
    """Configure stdlib logging and structlog with JSON output.

    ``level`` accepts a level name (``"DEBUG"``) as read from ``AppConfig``
    and applies to every logger under the package; third-party loggers stay
    at the root default.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {level}")

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    logging.getLogger(PACKAGE_LOGGER).setLevel(level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
