"""Loguru setup for the commentator bot.

Two sinks share one level: a colored stdout sink for the console running the
bot, and a file sink that rotates at 10 MB and keeps zipped archives for
7 days so the per-chat update loop can be audited after the fact. Session
and job messages are prefixed with the chat id by their callers.
"""
import sys
import os
from typing import Optional

from loguru import logger

from commentator.config import config

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function} - {message}"


def setup_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """Replace loguru's default stderr handler with the console and file sinks.

    Called once from ``main()`` before the Telegram application is built; the
    log directory is created if missing.

    Args:
        level: Minimum level for both sinks (defaults to LOG_LEVEL)
        log_file: Path of the rotating log file (defaults to LOG_FILE)
    """
    level = (level or config.log_level).upper()
    log_file = log_file or config.log_file

    logger.remove()

    log_dir = os.path.dirname(log_file)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    logger.add(sys.stdout, format=CONSOLE_FORMAT, level=level, colorize=True)
    logger.add(
        log_file,
        format=FILE_FORMAT,
        level=level,
        rotation="10 MB",
        retention="7 days",
        compression="zip"
    )

    logger.info(f"Logging configured (level={level}, file={log_file})")
