"""Logging setup for the hook process and the dashboard server."""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

PACKAGE_LOGGER = "jrpg_visualizer"


def setup_hook_logging(debug: bool) -> None:
    """Debug output goes to stderr when enabled; otherwise the hook is silent.

    stdout is reserved for the hook's JSON reply.
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.handlers.clear()
    if debug:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
        logger.addHandler(handler)
        logger.setLevel(logging.DEBUG)
    else:
        logger.addHandler(logging.NullHandler())
        logger.setLevel(logging.CRITICAL + 1)
    logger.propagate = False


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level),
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
    )
