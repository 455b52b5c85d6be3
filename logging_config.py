"""
Centralized logging configuration for SyncNotify
Handles all logging setup and provides convenience functions
"""

import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Optional

# Logs live next to the icon cache unless overridden (e.g. for tests or systemd units)
LOGS_DIR = Path(os.getenv("SYNCNOTIFY_LOG_DIR", str(Path.home() / ".cache" / "syncnotify" / "logs")))

# Define log formats
CONSOLE_FORMAT = '(%(filename)s:%(lineno)d) %(levelname)s - %(message)s'
FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s'

# Track if logging has been initialized
_logging_initialized = False

def setup_logging(
    console_level: str = "INFO",
    file_level: str = "DEBUG",
    console: bool = True,
    log_file: Optional[str] = None,
    max_bytes: int = 1 * 1024 * 1024,
    backup_count: int = 5
) -> None:
    """
    Set up logging configuration with separate console and file handlers

    Args:
        console_level: Logging level for console output (default: INFO)
        file_level: Logging level for file output (default: DEBUG)
        console: Whether to enable console logging (default: True)
        log_file: Optional custom log file name
        max_bytes: Rotate the log file once it reaches this size
        backup_count: Number of rotated files to keep
    """
    global _logging_initialized
    if _logging_initialized:
        return

    if not log_file:
        log_file = "syncnotify.log"

    # Get the root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Capture all levels

    # Clear any existing handlers
    root_logger.handlers = []

    # Console handler (simpler format)
    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(getattr(logging, console_level.upper(), logging.INFO))
        console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        root_logger.addHandler(console_handler)

    # File handler (detailed format). A read-only home must not stop the daemon.
    log_path = LOGS_DIR / log_file
    try:
        LOGS_DIR.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding='utf-8'
        )
        file_handler.setLevel(getattr(logging, file_level.upper(), logging.DEBUG))
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        root_logger.addHandler(file_handler)
    except OSError as e:
        log_path = None
        root_logger.warning(f"File logging disabled, cannot write to {LOGS_DIR}: {e}")

    # Disable unnecessary logging
    logging.getLogger('PIL').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)

    _logging_initialized = True

    # Log initial setup message
    root_logger.info(f"Logging initialized - Console: {console_level}, File: {file_level}")
    if log_path:
        root_logger.debug(f"Log file: {log_path}")

def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name"""
    # setup_logging() must be called explicitly by the entry point.
    return logging.getLogger(name)
