"""
Loguru sink configuration.

Every module logs through ``from loguru import logger``; this only decides
where those records go.
"""

from __future__ import annotations

import sys

from loguru import logger

from config import Settings

CONSOLE_FORMAT = "<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"


def configure_logging(settings: Settings, level: str | None = None) -> None:
    """
    Replace the default loguru sink with the configured ones.

    Args:
        settings: Application settings (log_level, log_file)
        level: Override for the console level (the CLI uses WARNING)
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level=level or settings.log_level,
        format=CONSOLE_FORMAT,
    )

    if settings.log_file:
        logger.add(
            settings.log_file,
            level=settings.log_level,
            format=FILE_FORMAT,
            rotation="10 MB",
            retention=5,
        )
