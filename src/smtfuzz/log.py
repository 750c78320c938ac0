"""Logging setup.

Modules log through `logging.getLogger(__name__)`; the command line calls
configure() once to route everything below the `smtfuzz` logger to stderr.
"""
import logging
import sys
from typing import Optional, TextIO

LOGGER_NAME = "smtfuzz"
FORMAT = "[smtfuzz] %(levelname)s: %(message)s"


def level_for(verbosity: int) -> int:
    if verbosity <= 0:
        return logging.WARNING
    if verbosity == 1:
        return logging.INFO
    return logging.DEBUG


def configure(verbosity: int = 0, stream: Optional[TextIO] = None) -> logging.Logger:
    """Configure the package logger for the given verbosity level."""
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(logging.Formatter(FORMAT))
    logger.addHandler(handler)
    logger.setLevel(level_for(verbosity))
    logger.propagate = False
    return logger
