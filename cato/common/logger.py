"""Logging infrastructure for the cATO dashboard.

All modules log through ``logging.getLogger(__name__)`` under the ``cato``
namespace; ``setup_logger`` attaches handlers once at process start (API app
or Celery worker).
"""

import logging
import logging.handlers
import os
from typing import Optional

ROOT_LOGGER_NAME = "cato"

DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"


def setup_logger(
    name: str = ROOT_LOGGER_NAME,
    log_dir: str = "logs",
    level: str = "INFO",
    log_format: Optional[str] = None,
    file_logging: bool = False,
    console_logging: bool = True,
    max_bytes: int = 10485760,  # 10MB
    backup_count: int = 5,
) -> logging.Logger:
    """Configure a logger with console and optional rotating file output.

    Args:
        name: Logger name; child loggers (``cato.core...``) inherit the handlers
        log_dir: Directory for log files
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Custom log format string
        file_logging: Enable rotating file output
        console_logging: Enable console output
        max_bytes: Maximum log file size before rotation
        backup_count: Number of rotated files to keep

    Returns:
        Configured logger instance

    Raises:
        ValueError: If ``level`` is not a known logging level
    """
    logger = logging.getLogger(name)

    level_upper = level.upper()
    if not isinstance(logging.getLevelName(level_upper), int):
        raise ValueError(
            f"Invalid log level: {level}. "
            f"Must be one of: DEBUG, INFO, WARNING, ERROR, CRITICAL"
        )
    logger.setLevel(level_upper)

    # Called again from a reloaded worker or test; keep the first handlers
    if logger.handlers:
        return logger

    formatter = logging.Formatter(log_format or DEFAULT_FORMAT, datefmt=DEFAULT_DATE_FORMAT)

    if file_logging:
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


def configure_logging(settings) -> logging.Logger:
    """Set up the ``cato`` logger from application settings."""
    return setup_logger(
        ROOT_LOGGER_NAME,
        log_dir=settings.log_dir,
        level=settings.log_level,
        file_logging=settings.file_logging,
    )


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the ``cato`` namespace."""
    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)
