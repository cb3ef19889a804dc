"""
Logging for tracklens.

One stdout handler sits on the ``tracklens`` logger.  Module loggers are
its children, so ``Settings.log_level`` applies to the whole package.
"""
from __future__ import annotations

import logging
import sys

from tracklens.core.config import get_settings

ROOT_LOGGER = "tracklens"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _configure_root() -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER)
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        root.addHandler(handler)
    root.setLevel(getattr(logging, get_settings().log_level.upper(), logging.INFO))
    return root


def get_logger(name: str) -> logging.Logger:
    """Return a logger in the ``tracklens`` hierarchy.

    Names from outside the package (``pipelines.seed...``) are nested
    under it as well.
    """
    _configure_root()
    if name != ROOT_LOGGER and not name.startswith(ROOT_LOGGER + "."):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)
