"""Loguru sink configuration for entry points."""

from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger


def configure_logging(level: str = "INFO", log_file: str | None = None) -> None:
    """
    Replace the default loguru sink.

    Library modules only call ``logger``; sinks are installed here, once,
    by whichever entry point owns the process.
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {name}:{line} - {message}",
    )
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            level=level,
            rotation="10 MB",
            retention=5,
        )
