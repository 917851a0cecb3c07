"""
Logging utilities.
"""

import logging
import sys

PACKAGE_LOGGER = "spanrag"


def get_logger(name: str = PACKAGE_LOGGER) -> logging.Logger:
    """
    Get a logger that writes to stderr.

    Module loggers created with ``logging.getLogger(__name__)`` propagate to
    the package logger, so configuring ``get_logger()`` once is enough to see
    the output of every spanrag module.

    Args:
        name: Logger name (default: the package logger)

    Returns:
        Configured logger
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)

    return logger


def set_log_level(level: int | str) -> None:
    """
    Set the log level of every spanrag logger.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper())

    logging.getLogger(PACKAGE_LOGGER).setLevel(level)
