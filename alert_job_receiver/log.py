"""Logging setup."""

import sys

from loguru import logger

# loguru has no "warn" level name
_LOGURU_LEVELS = {
    "debug": "DEBUG",
    "info": "INFO",
    "warn": "WARNING",
    "error": "ERROR",
}


def configure_logging(level: str = "info") -> None:
    """Send plain, uncoloured log lines with a full timestamp to stdout."""
    logger.remove()  # Remove default handler
    logger.add(
        sys.stdout,
        format="{time:YYYY-MM-DDTHH:mm:ss.SSSZZ} [{extra[service]}] {level}: {message}",
        level=_LOGURU_LEVELS[level],
        colorize=False,
    )
    logger.configure(extra={"service": "alert-job-receiver"})
