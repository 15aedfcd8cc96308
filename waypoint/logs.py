"""Loguru sink configuration."""

from __future__ import annotations

import sys

from loguru import logger

from waypoint.config import Settings, get_settings

LOG_FORMAT = "<dim>{time:YYYY-MM-DD HH:mm:ss}</dim> | <level>{level: <8}</level> | {name}:{line} | {message}"


def configure_logging(settings: Settings | None = None) -> None:
    """Replace the default loguru handler with stderr (and optionally a rotating file)."""
    settings = settings or get_settings()

    logger.remove()
    logger.add(sys.stderr, level=settings.log_level, format=LOG_FORMAT)

    if settings.log_file:
        logger.add(
            settings.log_file,
            level=settings.log_level,
            rotation="10 MB",
            retention="14 days",
            enqueue=True,
        )
