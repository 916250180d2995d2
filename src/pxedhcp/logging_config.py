"""
Logging configuration for pxedhcp.

Console output goes to stderr so that JSON printed by the CLI stays
machine-readable; file output is rotated. Modules log through
logging.getLogger(__name__), which places them under the "pxedhcp"
logger configured here.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import logging
import os
import sys
from pathlib import Path
from logging.handlers import RotatingFileHandler

LOGGER_NAME = "pxedhcp"
DEFAULT_LOG_PATH = Path.home() / ".pxedhcp" / "logs" / "pxedhcp.log"

CONSOLE_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
FILE_FORMAT = (
    '%(asctime)s | %(levelname)-8s | %(subsystem)-10s | '
    '%(funcName)-20s | %(lineno)-4d | %(message)s'
)
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


class StructuredFormatter(logging.Formatter):
    """File formatter that tags records with their pxedhcp subsystem."""

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, 'subsystem'):
            # "pxedhcp.dhcp.session" -> "session"
            record.subsystem = record.name.rpartition('.')[2]
        return super().format(record)


def setup_logging(
    level: str = "INFO",
    log_file: str | None = None,
    log_dir: str | None = None,
    max_bytes: int = 10485760,  # 10MB
    backup_count: int = 5,
    enable_console: bool = True,
    enable_file: bool = False,
) -> logging.Logger:
    """
    Set up logging for pxedhcp.

    Calling it again replaces the handlers installed by the previous call.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Custom log file path (overrides log_dir)
        log_dir: Directory for log files (defaults to ~/.pxedhcp/logs)
        max_bytes: Maximum log file size before rotation
        backup_count: Number of backup log files to keep
        enable_console: Log to stderr
        enable_file: Log to a rotating file at DEBUG level

    Returns:
        Configured package logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper()))

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if enable_console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, DATE_FORMAT))
        logger.addHandler(console_handler)

    if enable_file:
        if log_file:
            log_path = Path(log_file)
        elif log_dir:
            log_path = Path(log_dir) / DEFAULT_LOG_PATH.name
        else:
            log_path = DEFAULT_LOG_PATH

        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding='utf-8'
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(StructuredFormatter(FILE_FORMAT, DATE_FORMAT))
        logger.addHandler(file_handler)

    # Keep packet traces out of the application's root logger
    logger.propagate = False

    return logger


def raise_verbosity(level: str) -> None:
    """Lower the package logger's threshold to level if it is higher."""
    logger = logging.getLogger(LOGGER_NAME)
    threshold = getattr(logging, level.upper())
    if logger.getEffectiveLevel() > threshold:
        logger.setLevel(threshold)


def configure_logging(debug: bool = False, log_file: str | None = None) -> None:
    """
    Configure logging for the command line.

    The level is DEBUG with debug set, otherwise PXEDHCP_LOG_LEVEL or
    WARNING.

    Args:
        debug: Enable debug logging
        log_file: Also log to this file
    """
    level = "DEBUG" if debug else os.getenv("PXEDHCP_LOG_LEVEL", "WARNING")
    setup_logging(
        level=level,
        log_file=log_file,
        enable_console=True,
        enable_file=log_file is not None,
    )
