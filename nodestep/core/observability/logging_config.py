"""
Logging configuration — one call from the CLI entrypoint.

Modules only do ``logger = logging.getLogger(__name__)``; handlers and
levels are decided here.

Console level, highest precedence first:
    --debug / --verbose / --quiet  >  NODESTEP_LOG_LEVEL  >  WARNING

A log file can be added with NODESTEP_LOG_FILE, at its own level
(NODESTEP_LOG_FILE_LEVEL) so CI can keep a DEBUG trace while the console
stays quiet.
"""

from __future__ import annotations

import logging
import os
import sys

ENV_LOG_LEVEL = "NODESTEP_LOG_LEVEL"
ENV_LOG_FILE = "NODESTEP_LOG_FILE"
ENV_LOG_FILE_LEVEL = "NODESTEP_LOG_FILE_LEVEL"

# ── Formats ─────────────────────────────────────────────────────

# Steps run on a worker pool, so anything at DEBUG carries the thread name.
_DETAILED = "%(asctime)s %(levelname)-5s %(threadName)s %(name)s:%(lineno)d  %(message)s"

# (threshold, format, datefmt), first match wins
_CONSOLE_FORMATS: tuple[tuple[int, str, str | None], ...] = (
    (logging.DEBUG, _DETAILED, "%H:%M:%S"),
    (logging.INFO, "%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
    (logging.CRITICAL, "%(message)s", None),
)

_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"


def resolve_level(debug: bool = False, verbose: bool = False, quiet: bool = False) -> str:
    """Pick the console level from CLI flags, falling back to the environment."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    return os.environ.get(ENV_LOG_LEVEL, "WARNING")


def level_number(name: str | None) -> int:
    """``"info"`` → ``logging.INFO``; unknown or empty names mean WARNING."""
    value = logging.getLevelName(name.upper()) if name else None
    return value if isinstance(value, int) else logging.WARNING


def _console_handler(level: int) -> logging.Handler:
    fmt, datefmt = next((f, d) for threshold, f, d in _CONSOLE_FORMATS if level <= threshold)
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
    return handler


def _file_handler(path: str, level: int) -> logging.Handler:
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_DETAILED, datefmt=_FILE_DATEFMT))
    return handler


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Replace the root logger's handlers.

    Args:
        level: Console level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional file that receives a detailed copy of the log.
        log_file_level: Level for ``log_file``; defaults to ``level``.
    """
    console_level = level_number(level)
    handlers = [_console_handler(console_level)]

    if log_file:
        file_level = level_number(log_file_level) if log_file_level else console_level
        handlers.append(_file_handler(log_file, file_level))

    root = logging.getLogger()
    root.handlers.clear()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(min(h.level for h in handlers))

    # A closed stream (e.g. piping into `head`) must not turn into tracebacks
    logging.raiseExceptions = False
