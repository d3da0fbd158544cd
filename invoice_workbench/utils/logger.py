"""Logging configuration for the application."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from .config import get_config


def setup_logger(
    name: str,
    log_file: Optional[str] = None,
    level: Optional[str] = None
) -> logging.Logger:
    """
    Setup a logger with console and optional file handlers.

    Args:
        name: Logger name
        log_file: Optional log file path
        level: Optional log level (overrides config)

    Returns:
        Configured logger instance
    """
    config = get_config()

    logger = logging.getLogger(name)
    log_level = level or config.logging.level
    logger.setLevel(getattr(logging, log_level.upper()))

    # Prevent duplicate handlers
    if logger.handlers:
        return logger

    formatter = logging.Formatter(config.logging.format)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # No log files in production or when disabled (tests, read-only installs)
    if log_file and config.env.log_to_file and not config.is_production:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=config.logging.max_bytes,
            backupCount=config.logging.backup_count
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_invoice_logger() -> logging.Logger:
    """Get logger for invoice operations."""
    config = get_config()
    return setup_logger("invoice", config.logging.files.invoice)


def get_inventory_logger() -> logging.Logger:
    """Get logger for the inventory ledger."""
    config = get_config()
    return setup_logger("inventory", config.logging.files.inventory)


def get_storage_logger() -> logging.Logger:
    """Get logger for key-value store access."""
    config = get_config()
    return setup_logger("storage", config.logging.files.storage)


def get_error_logger() -> logging.Logger:
    """Get logger for error tracking."""
    config = get_config()
    return setup_logger("error", config.logging.files.error, "ERROR")


def get_api_logger() -> logging.Logger:
    """Get logger for the HTTP surface."""
    return setup_logger("api")
