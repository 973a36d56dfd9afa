"""
Centralized logging configuration.

Production (default) logs concise INFO lines; set ``LOG_LEVEL=DEBUG`` for
verbose output with timestamps and call sites.
"""

from __future__ import annotations

import logging
import sys
from typing import Literal, Optional

from .config import get_log_level

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def _numeric_level(level: Optional[str]) -> int:
    return _LEVELS.get((level or get_log_level()).upper(), logging.INFO)


def setup_logging(level: Optional[LogLevel] = None) -> None:
    """Configure the root logger.

    ``level`` overrides the ``LOG_LEVEL`` environment variable.
    """
    numeric_level = _numeric_level(level)

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)

    is_debug = numeric_level <= logging.DEBUG
    fmt_verbose = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(funcName)s | %(message)s"
    fmt_concise = "%(levelname).1s %(name)s %(message)s"

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(logging.Formatter(fmt=fmt_verbose if is_debug else fmt_concise, datefmt="%H:%M:%S"))

    root.setLevel(numeric_level)
    root.addHandler(handler)

    # uvicorn access lines are noise unless debugging
    logging.getLogger("uvicorn.access").setLevel(logging.INFO if is_debug else logging.WARNING)
