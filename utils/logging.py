"""
Centralized logging configuration for the Tobira database commands.

This module provides a consistent logging setup used by the command line entry
point and the database modules. It handles both file and console output with
proper formatting and rotation.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

# Minimal fallback values, used when the configuration cannot be loaded
# (e.g. no database password is set yet and only --help was requested).
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_FILE = "logs/db_admin.log"
DEFAULT_LOG_MAX_BYTES = 5 * 1024 * 1024
DEFAULT_LOG_BACKUP_COUNT = 3


def setup_logging(
    log_level: str | None = None,
    log_file: str | None = None,
    logger_name: str | None = None,
    max_bytes: int | None = None,
    backup_count: int | None = None,
) -> logging.Logger:
    """
    Configure logging with both file and console output.

    This function sets up a logger with:
    - Console output on stderr, so operator-facing output on stdout stays clean
    - File output with rotation to prevent large log files
    - Proper handler cleanup to prevent duplicates

    Args:
        log_level (str, optional): Logging level (e.g., 'INFO', 'DEBUG', 'WARNING').
        log_file (str, optional): Path to log file. If None, uses a default based on logger_name
        logger_name (str, optional): Name for the logger. If None, uses root logger
        max_bytes (int, optional): Maximum bytes before log rotation
        backup_count (int, optional): Number of backup files to keep

    Returns:
        logging.Logger: Configured logger instance

    Example:
        >>> from utils.logging import setup_logging
        >>> logger = setup_logging('INFO', 'logs/db_admin.log')
        >>> logger.info("This is a test message")
    """
    if log_level is None:
        log_level = DEFAULT_LOG_LEVEL
    if max_bytes is None:
        max_bytes = DEFAULT_LOG_MAX_BYTES
    if backup_count is None:
        backup_count = DEFAULT_LOG_BACKUP_COUNT

    if log_file is None:
        if logger_name:
            log_file = f"logs/{logger_name}.log"
        else:
            log_file = DEFAULT_LOG_FILE

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    # Get logger (root logger if no name specified)
    if logger_name:
        logger = logging.getLogger(logger_name)
    else:
        logger = logging.getLogger()

    logger.setLevel(getattr(logging, log_level.upper()))

    # Clear existing handlers to prevent duplicates
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # File handler with rotation
    try:
        log_dir = os.path.dirname(log_file)
        if log_dir and not os.path.exists(log_dir):
            os.makedirs(log_dir, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_file, maxBytes=max_bytes, backupCount=backup_count
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

        logger.debug(f"Logging configured - Level: {log_level}, File: {log_file}")
    except OSError as e:
        logger.warning(f"Failed to setup file logging to {log_file}: {e}")
        logger.info("Continuing with console logging only")

    return logger
