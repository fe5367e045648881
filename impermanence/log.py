"""
Logging setup for entry points.

Library modules only call ``logging.getLogger(__name__)``; the CLI calls
``configure_logging()`` once.
"""

import logging
import sys

CONSOLE_FORMAT = "%(levelname)s | %(message)s"

_HANDLER_TAG_ATTR = "_impermanence_handler"


def configure_logging(verbose: bool = False, quiet: bool = False) -> logging.Logger:
    """Attach a stderr handler to the package logger.

    Re-running replaces the handler installed by a previous call instead of
    stacking another one.

    Args:
        verbose: Include per-level metadata synchronization (DEBUG)
        quiet: Only report failures (ERROR)
    """
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR
    else:
        level = logging.INFO

    logger = logging.getLogger("impermanence")
    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_TAG_ATTR, False):
            logger.removeHandler(handler)
            handler.close()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    setattr(handler, _HANDLER_TAG_ATTR, True)

    logger.addHandler(handler)
    logger.setLevel(level)
    return logger
