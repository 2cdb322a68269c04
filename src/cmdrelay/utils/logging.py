"""Logging setup utilities for cmdrelay.

Configures the ``cmdrelay`` logger from the logging settings. Debug and
info records go to stdout, warnings and errors to stderr.
"""

from __future__ import annotations

import logging
import sys

from cmdrelay.config.settings import LoggingConfig


class _BelowWarningFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < logging.WARNING


def setup_logging(config: LoggingConfig | None = None) -> logging.Logger:
    """Configure logging for the cmdrelay application.

    Sets up the ``cmdrelay`` logger with the configured threshold,
    format, and optional file handler. Calling it again replaces the
    handlers installed by a previous call.

    Args:
        config: Logging configuration. If None, uses defaults
                (info level, no log file).

    Returns:
        The configured package logger.
    """
    if config is None:
        config = LoggingConfig()

    root_logger = logging.getLogger("cmdrelay")
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    root_logger.setLevel(config.level.to_logging_level())

    formatter = logging.Formatter(config.format)

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.addFilter(_BelowWarningFilter())
    stdout_handler.setFormatter(formatter)
    root_logger.addHandler(stdout_handler)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.WARNING)
    stderr_handler.setFormatter(formatter)
    root_logger.addHandler(stderr_handler)

    # File handler (optional)
    if config.file:
        file_handler = logging.FileHandler(config.file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    root_logger.debug("Logging initialized at %s level", config.level.value)
    return root_logger
