"""
dynpage Log Module

Console logging setup for the engine's module loggers.
"""

import logging
import sys

_logger = logging.getLogger("dynpage")


def configure_logging(level: str | int | None = None) -> logging.Logger:
    """
    Attach a console handler to the dynpage logger.

    Safe to call more than once; the handler is only added the first time.

    Args:
        level: Log level name or constant. Defaults to the configured log_level.

    Returns:
        The dynpage logger
    """
    if not _logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s - [dynpage] %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))
        _logger.addHandler(handler)

    if level is None:
        from .config import get_settings

        level = get_settings().log_level
    set_level(level)
    return _logger


def set_level(level: str | int):
    """
    Set log level.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR) or logging constant
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    _logger.setLevel(level)
