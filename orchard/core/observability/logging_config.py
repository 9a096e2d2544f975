"""
Logging configuration — one setup call for every entry point.

Every module does ``logger = logging.getLogger(__name__)`` and inherits
what is configured here.

Levels are resolved in precedence order:
    explicit argument  >  ORCHARD_LOG_LEVEL env var  >  WARNING

Optional file output via ORCHARD_LOG_FILE / ORCHARD_LOG_FILE_LEVEL.
Import workers log from their own threads, so the console format carries
the thread name at DEBUG level.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Mapping

LEVEL_ENV_VAR = "ORCHARD_LOG_LEVEL"
FILE_ENV_VAR = "ORCHARD_LOG_FILE"
FILE_LEVEL_ENV_VAR = "ORCHARD_LOG_FILE_LEVEL"

_DETAILED = "%(asctime)s %(levelname)-5s %(threadName)s %(name)s:%(lineno)d — %(message)s"

# (highest level the format applies to, format, date format), checked in order
_CONSOLE_FORMATS: tuple[tuple[int, str, str | None], ...] = (
    (logging.DEBUG, _DETAILED, "%H:%M:%S"),
    (logging.INFO, "%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
)
_FILE_FORMAT = (_DETAILED, "%Y-%m-%d %H:%M:%S")

# Kept at WARNING unless the console runs at DEBUG
_NOISY_LOGGERS = ("urllib3", "filelock")


def console_format(level: int) -> tuple[str, str | None]:
    """Format string and date format used on the console at ``level``."""
    for ceiling, fmt, datefmt in _CONSOLE_FORMATS:
        if level <= ceiling:
            return fmt, datefmt
    return "%(message)s", None


def setup_logging(
    level: str | None = None,
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_third_party: bool = True,
    env: Mapping[str, str] | None = None,
) -> None:
    """Configure logging for the whole process.

    Args:
        level: console level name. Falls back to ORCHARD_LOG_LEVEL.
        log_file: optional log file. Falls back to ORCHARD_LOG_FILE.
        log_file_level: file level, defaults to the console level.
            Falls back to ORCHARD_LOG_FILE_LEVEL.
        quiet_third_party: keep noisy library loggers at WARNING.
        env: environment to read (default: ``os.environ``).
    """
    env = os.environ if env is None else env
    console_level = _parse_level(level or env.get(LEVEL_ENV_VAR))
    handlers = [_handler(logging.StreamHandler(sys.stderr), console_level, *console_format(console_level))]

    log_file = log_file or env.get(FILE_ENV_VAR)
    if log_file:
        file_level_name = log_file_level or env.get(FILE_LEVEL_ENV_VAR)
        file_level = _parse_level(file_level_name) if file_level_name else console_level
        handlers.append(_handler(logging.FileHandler(log_file, encoding="utf-8"), file_level, *_FILE_FORMAT))

    root = logging.getLogger()
    for old in list(root.handlers):
        root.removeHandler(old)
        old.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(min(h.level for h in handlers))

    if quiet_third_party and console_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    # Errors inside logging must not abort an import run
    logging.raiseExceptions = False


def _handler(handler: logging.Handler, level: int, fmt: str, datefmt: str | None) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
    return handler


def _parse_level(name: str | None) -> int:
    """Level name to its numeric value, WARNING when missing or unknown."""
    return logging.getLevelNamesMapping().get((name or "").upper(), logging.WARNING)
