"""
Log sinks.

Components never log through a global registry. They take a
``logger(level, message)`` callable and default to a no-op, so a host can
route text to a console, a UI relay, or both.

Levels: "debug", "info", "warn", "error".
"""
from __future__ import annotations

import logging
from typing import Callable

LogSink = Callable[[str, str], None]

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def null_logger(level: str, message: str) -> None:
    pass


def python_logger(name: str = "msnr") -> LogSink:
    """Forward sink messages to a stdlib ``logging.Logger``."""
    log = logging.getLogger(name)

    def sink(level: str, message: str) -> None:
        log.log(_LEVELS.get(level.lower(), logging.INFO), message)

    return sink


def tee(*sinks: LogSink) -> LogSink:
    """Fan one message out to several sinks, in order."""

    def sink(level: str, message: str) -> None:
        for target in sinks:
            target(level, message)

    return sink
