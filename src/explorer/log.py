"""Logging setup for the filesystem explorer engine."""

import logging
import sys

from .models.config import ExplorerConfig, LoggingConfig

PACKAGE_LOGGER = "explorer"


def configure_logging(config=None, *, logger_name: str = PACKAGE_LOGGER) -> logging.Logger:
    """
    Configure the root logger and return the package logger.

    Args:
        config: ``ExplorerConfig`` or ``LoggingConfig``; defaults are used if None
        logger_name: Name of the logger to return

    Returns:
        Configured logger instance
    """
    if isinstance(config, ExplorerConfig):
        settings = config.logging
    elif isinstance(config, LoggingConfig):
        settings = config
    else:
        settings = LoggingConfig()

    log_level = getattr(logging, settings.level, logging.INFO)

    logging.basicConfig(
        level=log_level,
        format=settings.format,
        handlers=[logging.StreamHandler(sys.stderr)],
    )

    logger = logging.getLogger(logger_name)
    logger.setLevel(log_level)
    logger.debug("Logging configured with level %s", logging.getLevelName(log_level))
    return logger
