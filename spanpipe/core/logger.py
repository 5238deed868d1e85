"""Logging setup for the spanpipe package."""

from __future__ import annotations

import logging
import sys
from typing import Literal

LogLevel = Literal["silent", "error", "warn", "info", "debug"]

ROOT_LOGGER_NAME = "spanpipe"

_LEVELS: dict[str, int] = {
    "silent": logging.CRITICAL + 10,
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}

_current_level: LogLevel = "info"
_handler: logging.Handler | None = None


def configure_logger(log_level: LogLevel = "info", prefix: str = "SpanPipe") -> logging.Logger:
    """Attach a single stream handler to the package logger.

    Calling it again replaces the previous handler, so repeated pipeline
    starts do not duplicate output.
    """
    global _handler

    root = logging.getLogger(ROOT_LOGGER_NAME)
    if _handler is not None:
        root.removeHandler(_handler)

    _handler = logging.StreamHandler(sys.stderr)
    _handler.setFormatter(logging.Formatter(f"[{prefix}] %(levelname)s %(message)s"))
    root.addHandler(_handler)
    root.propagate = False

    set_log_level(log_level)
    return root


def set_log_level(log_level: LogLevel) -> None:
    global _current_level

    if log_level not in _LEVELS:
        raise ValueError(f"Unknown log level {log_level!r}, expected one of {', '.join(_LEVELS)}")
    _current_level = log_level
    logging.getLogger(ROOT_LOGGER_NAME).setLevel(_LEVELS[log_level])


def get_log_level() -> LogLevel:
    return _current_level
