"""Logging configuration for the asset gateway."""

import logging
import sys


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Set up service logging to stderr.

    Args:
        level: Log level name (e.g. "INFO", "DEBUG")

    Returns:
        Configured package logger
    """
    logger = logging.getLogger("asset_gateway")
    logger.setLevel(level.upper())

    # Remove any existing handlers
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level.upper())

    # Detailed format with timestamp, level, module, and message
    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)-20s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handler.setFormatter(formatter)

    logger.addHandler(handler)

    return logger
