"""
chancesign.logging
==================

Logging setup for applications and notebooks driving chancesign.

The library itself only emits records through module loggers
(``logging.getLogger(__name__)``); nothing is printed unless the host
application configures logging, or calls :func:`setup_logging`.

Log level:
- ``CHANCESIGN_LOG_LEVEL`` environment variable (DEBUG, INFO, WARNING, ERROR)
- ``verbose=True`` forces DEBUG
"""

from __future__ import annotations

import logging
import os
import sys

_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
_ENV_VAR = "CHANCESIGN_LOG_LEVEL"


def _parse_log_level(value: str | None, default: int = logging.WARNING) -> int:
    """Map a level name to a logging level, falling back to ``default``."""
    if not value:
        return default
    numeric = getattr(logging, value.strip().upper(), None)
    if isinstance(numeric, int):
        return numeric
    return default


def setup_logging(*, verbose: bool = False) -> logging.Logger:
    """Attach a stderr handler to the ``chancesign`` logger.

    Safe to call repeatedly: an existing handler installed here is replaced,
    not duplicated.

    Args:
        verbose: Force DEBUG regardless of the environment.

    Returns:
        The configured package logger.
    """
    level = logging.DEBUG if verbose else _parse_log_level(os.environ.get(_ENV_VAR))

    package_logger = logging.getLogger("chancesign")
    for handler in list(package_logger.handlers):
        if getattr(handler, "_chancesign_handler", False):
            package_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(_FORMAT))
    handler._chancesign_handler = True  # type: ignore[attr-defined]
    package_logger.addHandler(handler)
    package_logger.setLevel(level)
    return package_logger
