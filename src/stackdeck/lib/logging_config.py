"""Logging configuration for StackDeck command line entry points.

Library modules only call ``logging.getLogger(__name__)``. The CLI calls
``setup_logging`` once per command to attach a handler to the ``stackdeck``
logger tree.
"""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

_ROOT_LOGGER_NAME = "stackdeck"


def setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Configure the stackdeck logger tree.

    Args:
        verbose: Emit DEBUG level messages
        quiet: Only emit errors
    """
    if quiet:
        level = logging.ERROR
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    logger = logging.getLogger(_ROOT_LOGGER_NAME)
    logger.setLevel(level)

    # Repeated CLI invocations in one process (tests) must not stack handlers
    for handler in list(logger.handlers):
        if getattr(handler, "_stackdeck_handler", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    handler._stackdeck_handler = True  # type: ignore[attr-defined]
    logger.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """Return a logger for a module name."""
    return logging.getLogger(name)
