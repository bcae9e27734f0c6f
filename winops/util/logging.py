"""
Logging configuration using rich.
"""

import logging

from rich.logging import RichHandler

from winops.util.progress import console

LOGGER_NAME = "winops"


def configure_logging(level: str = "WARNING", verbose: bool = False) -> logging.Logger:
    """
    Configure the winops logger with a rich handler on stderr.

    Calling this again replaces the previously installed handler.

    Args:
        level: Level name from the logging.level config setting
        verbose: Force DEBUG regardless of level

    Returns:
        The configured package logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)

    handler = RichHandler(console=console, show_path=False, rich_tracebacks=False, markup=False)
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
    logger.addHandler(handler)

    resolved = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.WARNING)
    logger.setLevel(resolved)
    logger.propagate = False
    return logger
