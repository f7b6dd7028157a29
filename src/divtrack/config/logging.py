"""Logging configuration for DivTrack."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from divtrack.config.paths import get_data_dir, is_frozen

# Module-level logger
_logger: Optional[logging.Logger] = None

# Constants
LOGGER_NAME = "divtrack"
LOG_FILENAME = "divtrack.log"
MAX_BYTES = 5 * 1024 * 1024  # 5MB
BACKUP_COUNT = 3
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_log_path(portable: bool = False) -> Path:
    """Get the path to the log file."""
    return get_data_dir(portable=portable) / LOG_FILENAME


def setup_logging(
    portable: bool = False,
    console: bool = True,
    log_file: bool = True,
    level: int = logging.INFO,
) -> logging.Logger:
    """
    Configure and return the application logger.

    Args:
        portable: If True, use portable data directory for log file
        console: If True, also log to console (useful for debugging)
        log_file: If False, skip the rotating file handler
        level: Logging level for the logger and its handlers

    Returns:
        Configured logger instance
    """
    global _logger

    if _logger is not None:
        return _logger

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    # Prevent duplicate handlers if called multiple times
    if logger.handlers:
        _logger = logger
        return logger

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    if log_file:
        log_path = get_log_path(portable=portable)
        try:
            file_handler = RotatingFileHandler(
                log_path,
                maxBytes=MAX_BYTES,
                backupCount=BACKUP_COUNT,
                encoding="utf-8",
            )
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except OSError as e:
            # If we can't create log file, continue without file logging
            print(f"Warning: Could not create log file at {log_path}: {e}")

    if console and not is_frozen():
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    _logger = logger
    return logger


def get_logger() -> logging.Logger:
    """
    Get the application logger.

    Library code must not create log files as a side effect of import, so
    this returns the bare "divtrack" logger until setup_logging() runs.
    """
    if _logger is None:
        return logging.getLogger(LOGGER_NAME)
    return _logger
