"""Logging for the import pipeline.

Every module logs through ``get_logger("cashflow_import.<stage>")`` with
``"<stage>:<event> key=value"`` messages and never attaches handlers itself.
Entry points (the CLI) call :func:`configure_logging`, which installs one
stderr handler on the package logger. Records render the stage as the logger
name below the package, e.g. ``[processor]`` or ``[parsers.row_parser]``.

Environment overrides
---------------------
``CASHFLOW_IMPORT_LOG_LEVEL``
    Level name or number used when no explicit level is passed.
``CASHFLOW_IMPORT_LOG_FORMAT``
    Replacement format string; ``%(stage)s`` is available to it.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

_PKG_LOGGER_NAME = "cashflow_import"
_LEVEL_ENV_VAR = "CASHFLOW_IMPORT_LOG_LEVEL"
_FORMAT_ENV_VAR = "CASHFLOW_IMPORT_LOG_FORMAT"
_DEFAULT_FORMAT = "%(asctime)s %(levelname)s [%(stage)s] %(message)s"

_handler: logging.Handler | None = None


def _parse_level(level: int | str | None) -> int:
    if isinstance(level, int):
        return level
    if level is None:
        level = os.getenv(_LEVEL_ENV_VAR) or "INFO"
    level = level.strip().upper()
    if level.isdigit():
        return int(level)
    numeric = getattr(logging, level, None)
    return numeric if isinstance(numeric, int) else logging.INFO


class _StageFormatter(logging.Formatter):
    """Adds ``stage``: the logger name relative to the package."""

    def format(self, record: logging.LogRecord) -> str:
        prefix = _PKG_LOGGER_NAME + "."
        record.stage = record.name.removeprefix(prefix) if record.name != _PKG_LOGGER_NAME else "-"
        return super().format(record)


class _StderrHandler(logging.StreamHandler):
    """Writes to the ``sys.stderr`` current at emit time."""

    def __init__(self) -> None:
        logging.Handler.__init__(self)

    @property
    def stream(self) -> IO[str]:  # type: ignore[override]
        return sys.stderr


def configure_logging(level: int | str | None = None) -> int:
    """Install the pipeline handler once and (re)apply ``level``.

    Returns the resolved level. Repeated calls only change the level, so the
    CLI can run several commands in one process without stacking handlers.
    """

    global _handler
    logger = logging.getLogger(_PKG_LOGGER_NAME)
    resolved = _parse_level(level)

    if _handler is None:
        # NullHandlers installed by get_logger() would otherwise linger.
        for h in list(logger.handlers):
            if isinstance(h, logging.NullHandler):
                logger.removeHandler(h)
        _handler = _StderrHandler()
        _handler.setFormatter(_StageFormatter(os.getenv(_FORMAT_ENV_VAR) or _DEFAULT_FORMAT))
        logger.addHandler(_handler)
        logger.propagate = False

    _handler.setLevel(resolved)
    logger.setLevel(resolved)
    return resolved


def get_logger(name: str) -> logging.Logger:
    """Return ``name``'s logger; the package logger gets a ``NullHandler`` until configured."""

    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if _handler is None and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger"]
