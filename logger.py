"""
Console logging for the shop services.

Every module asks for its own logger with `get_logger(__name__)`; records are
rendered by rich with the module name as a prefix.
"""

import logging
import os

from rich.logging import RichHandler

LOG_FORMAT = "[%(name)s]  %(message)s"
DEFAULT_NAME = "shop"


def log_level() -> int:
    return logging.DEBUG if os.getenv("DEBUG") else logging.INFO


def make_handler(level: int) -> logging.Handler:
    handler = RichHandler(
        show_time=True,
        show_level=True,
        show_path=False,
        rich_tracebacks=True,
        log_time_format="[%X]",
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.setLevel(level)
    return handler


def get_logger(name=None) -> logging.Logger:
    """
    Return a logger for `name` writing through a RichHandler.

    Level is DEBUG when the DEBUG environment variable is set, INFO otherwise.
    The handler is attached once per logger name and records do not propagate
    to the root logger, so uvicorn's own configuration is left alone.
    """
    logger = logging.getLogger(name or DEFAULT_NAME)
    level = log_level()
    logger.setLevel(level)

    if not logger.handlers:
        logger.addHandler(make_handler(level))
        logger.propagate = False

    return logger
