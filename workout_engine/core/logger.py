"""Loguru sinks for the scheduling engine.

Engine modules log through ``loguru.logger`` with keyword context
(``plan_id=...``, ``instance_id=...``); both sinks render that context after
the message. Nothing is configured on import: the application entry point
calls ``setup_logger`` once.
"""

import sys
from pathlib import Path

from loguru import logger

from workout_engine.config.settings import settings

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level> | {extra}"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message} | {extra}"


def setup_logger(
    level: str | None = None,
    log_file: str | None = None,
    rotation: str | None = None,
    retention: str | None = None,
) -> list[int]:
    """Replace loguru's handlers with the engine's console and file sinks.

    Args:
        level: Minimum level; defaults to LOG_LEVEL
        log_file: Path of the rotating log file; defaults to LOG_FILE (console only when unset)
        rotation: File rotation threshold, e.g. "10 MB"; defaults to LOG_ROTATION
        retention: How long rotated files are kept, e.g. "7 days"; defaults to LOG_RETENTION

    Returns:
        Handler ids of the sinks that were added, console first
    """
    level = level or settings.log_level
    log_file = log_file or settings.log_file

    logger.remove()
    handler_ids = [logger.add(sys.stderr, format=CONSOLE_FORMAT, level=level, colorize=True)]

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handler_ids.append(
            logger.add(
                log_path,
                format=FILE_FORMAT,
                level=level,
                rotation=rotation or settings.log_rotation,
                retention=retention or settings.log_retention,
                compression="zip",
                backtrace=True,
                diagnose=True,
            )
        )

    logger.info("Logger configured", level=level, log_file=str(log_file) if log_file else None)
    return handler_ids
