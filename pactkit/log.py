"""Log level handling for the pact tooling."""

from __future__ import annotations

import logging
import os
import sys
from enum import Enum
from typing import Mapping, Union

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

logger = logging.getLogger("pactkit")


class LogLevel(str, Enum):
    """Supported log levels, lowest first."""

    TRACE = "TRACE"
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"

    @property
    def logging_level(self) -> int:
        """The matching level number of the logging module."""
        return _LOGGING_LEVELS[self]


_LOGGING_LEVELS = {
    LogLevel.TRACE: TRACE,
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}

DEFAULT_LOG_LEVEL = LogLevel.INFO


class PactCrashError(RuntimeError):
    """Raised when the framework hits an unrecoverable internal error."""


class _State:
    level: LogLevel = DEFAULT_LOG_LEVEL


def _apply(level: LogLevel) -> None:
    _State.level = level
    logger.setLevel(level.logging_level)


def configure_from_environment(environ: Mapping[str, str]) -> LogLevel:
    """Set the level from PACT_LOG_LEVEL, then LOG_LEVEL, else INFO.

    An unrecognised value falls back to the default level.
    """
    raw = environ.get("PACT_LOG_LEVEL") or environ.get("LOG_LEVEL") or DEFAULT_LOG_LEVEL.value
    try:
        level = LogLevel(raw)
    except ValueError:
        level = DEFAULT_LOG_LEVEL
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(handler)
    _apply(level)
    logger.debug("initialised logging")
    return level


def set_log_level(level: Union[LogLevel, str]) -> None:
    """Set the framework's minimum log level."""
    try:
        resolved = LogLevel(level)
    except ValueError:
        raise ValueError(
            f"invalid logLevel '{level}'. Please specify one of "
            '"TRACE", "DEBUG", "INFO", "WARN", "ERROR"'
        ) from None
    _apply(resolved)


def log_level() -> LogLevel:
    """Return the current minimum log level."""
    return _State.level


_CRASH_MESSAGE = """!!!!!!!!! PACT CRASHED !!!!!!!!!

{}

This is almost certainly a bug in the framework. It would be great if you could
open a bug report so that we can fix it.

There is additional debugging information above. If you open a bug report,
please rerun with set_log_level('TRACE') and include the full output.

SECURITY WARNING: Before including your log in the issue tracker, make sure you
have removed sensitive info such as login credentials and urls that you don't want
to share with the world.

We're sorry about this!
"""


def pact_crash(err: BaseException) -> None:
    """Log a crash report for ``err`` and raise PactCrashError."""
    message = _CRASH_MESSAGE.format(err)
    logger.critical(message)
    raise PactCrashError(message) from err


configure_from_environment(os.environ)