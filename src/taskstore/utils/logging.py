"""Logging setup for command-line entry points."""

import logging
import sys
from typing import Optional

from taskstore.utils.config import get_config

__all__ = ["configure_logging"]

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(verbose: bool = False, logger_name: Optional[str] = None) -> logging.Logger:
    """
    Configure process-wide logging and return a scoped logger.

    Log records go to stderr so that command output on stdout stays parseable.
    `verbose` forces DEBUG; otherwise TASKSTORE_LOG_LEVEL decides.
    """
    if verbose:
        level = logging.DEBUG
    else:
        level = logging.getLevelName(get_config()["log_level"])
        if not isinstance(level, int):
            level = logging.INFO
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        handlers=[logging.StreamHandler(sys.stderr)],
        force=True,
    )
    logger = logging.getLogger(logger_name or "taskstore")
    logger.debug("Logging configured with level %s", logging.getLevelName(level))
    return logger
