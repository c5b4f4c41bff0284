"""Logging setup for HR Desk.

Console output plus optional rotating file output, ISO 8601 timestamps.
Configured once per process (API app, Celery worker); modules log through
``logging.getLogger(__name__)`` and inherit the ``hrdesk`` handlers.
"""

import logging
import logging.handlers
import os
from typing import Optional

from hrdesk.core.config import Settings, get_settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"


def setup_logger(
    name: str = "hrdesk",
    level: str = "INFO",
    log_dir: Optional[str] = None,
    file_logging: bool = False,
    console_logging: bool = True,
    max_bytes: int = 10485760,  # 10MB
    backup_count: int = 5,
) -> logging.Logger:
    """Set up a logger with console and optional file handlers.

    Args:
        name: Logger name, ``hrdesk`` configures the whole package
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for log files, required when file_logging is set
        file_logging: Enable rotating file logging
        console_logging: Enable console logging
        max_bytes: Maximum log file size before rotation
        backup_count: Number of backup log files to keep

    Returns:
        Configured logger instance

    Raises:
        ValueError: If the level name is unknown or log_dir is missing
    """
    logger = logging.getLogger(name)

    level_upper = level.upper()
    if not isinstance(getattr(logging, level_upper, None), int):
        raise ValueError(
            f"Invalid log level: {level}. "
            f"Must be one of: DEBUG, INFO, WARNING, ERROR, CRITICAL"
        )
    logger.setLevel(getattr(logging, level_upper))

    # Prevent duplicate handlers
    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    if file_logging:
        if not log_dir:
            raise ValueError("log_dir is required when file_logging is enabled")
        os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            os.path.join(log_dir, f"{name}.log"),
            maxBytes=max_bytes,
            backupCount=backup_count,
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if console_logging:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger


def configure_logging(settings: Optional[Settings] = None) -> logging.Logger:
    """Configure the package logger from application settings."""
    settings = settings or get_settings()
    return setup_logger(
        "hrdesk",
        level=settings.log_level,
        log_dir=settings.log_dir,
        file_logging=settings.log_to_file,
    )
