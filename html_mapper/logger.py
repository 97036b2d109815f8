"""
Logging configuration for the HTML Mapper.
"""

import logging
import sys
from typing import Optional


def setup_logger(
    name: str = "html_mapper",
    level: int = logging.INFO,
    log_file: Optional[str] = None
) -> logging.Logger:
    """
    Set up and return a logger instance.

    Calling it again on an already configured logger only updates the level,
    so HtmlMapper(log_level=...) can be used to turn on debug output later.

    Args:
        name: Logger name
        level: Logging level (default: INFO)
        log_file: Optional file path for logging

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if logger.handlers:
        for handler in logger.handlers:
            handler.setLevel(level)
        return logger

    # Format: timestamp - module - level - message
    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


# Default logger instance, created once at import time
logger = setup_logger()


def get_module_logger(module_name: str) -> logging.Logger:
    """
    Get a child logger for a specific module.

    Child loggers (e.g. "html_mapper.extractors") propagate to the package
    logger, so their name shows up in the output without extra handlers.

    Args:
        module_name: Name of the module (e.g., 'mapper', 'extractors')

    Returns:
        Child logger instance
    """
    return logging.getLogger(f"html_mapper.{module_name}")
