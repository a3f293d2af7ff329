"""
Logging configuration — console output plus a persistent install log.

Called once at startup by main.py.  Every module that does
``logger = logging.getLogger(__name__)`` inherits this config.

Console level, in precedence order:
    CLI flag  >  INSTALLKIT_LOG_LEVEL env var  >  WARNING (default)

Every run is also appended to an install log, so a failed or cancelled
install can be diagnosed after the terminal is gone::

    <data dir>/logs/install.log        (rotated at 1 MB, 3 backups)

INSTALLKIT_LOG_FILE moves the log; INSTALLKIT_LOG_FILE_LEVEL sets its
level (INFO by default, which records every action marker).
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

logger = logging.getLogger(__name__)

LOG_DIRECTORY = "logs"
LOG_FILENAME = "install.log"
DEFAULT_FILE_LEVEL = "INFO"

_MAX_LOG_BYTES = 1_000_000
_LOG_BACKUPS = 3

# ── Format strings ──────────────────────────────────────────────

# WARNING level: the message alone
_FMT_MINIMAL = "%(message)s"

# INFO level: action markers with a timestamp
_FMT_VERBOSE = "%(asctime)s %(message)s"
_DATEFMT_VERBOSE = "%H:%M:%S"

# DEBUG level: logger name and line, for task-level detail
_FMT_DEBUG = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d  %(message)s"
_DATEFMT_DEBUG = "%H:%M:%S"

# Install log: full dates, runs from different days share the file
_FMT_FILE = "%(asctime)s %(levelname)-5s [%(process)d] %(name)s: %(message)s"
_DATEFMT_FILE = "%Y-%m-%d %H:%M:%S"


def default_log_file(data_dir: Path) -> Path:
    """Install log location inside the engine data directory."""
    return Path(data_dir) / LOG_DIRECTORY / LOG_FILENAME


def setup_logging(
    level: str = "WARNING",
    log_file: Path | str | None = None,
    log_file_level: str | None = None,
) -> Path | None:
    """Configure Python logging for the entire process.

    Args:
        level: Console level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Install log path. None logs to the console only.
        log_file_level: Level for the install log (default INFO).

    Returns:
        The install log in use, or None if there is none. A log file
        that cannot be opened is reported on the console and skipped;
        it never stops an install.
    """
    numeric_level = _parse_level(level)

    if numeric_level <= logging.DEBUG:
        fmt, datefmt = _FMT_DEBUG, _DATEFMT_DEBUG
    elif numeric_level <= logging.INFO:
        fmt, datefmt = _FMT_VERBOSE, _DATEFMT_VERBOSE
    else:
        fmt, datefmt = _FMT_MINIMAL, None

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(numeric_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    root.setLevel(numeric_level)
    logging.raiseExceptions = False

    if not log_file:
        return None

    file_level = _parse_level(log_file_level or DEFAULT_FILE_LEVEL)
    path = Path(log_file).expanduser()
    handler = _open_log_file(path, file_level)
    if handler is None:
        return None

    root.addHandler(handler)
    # Root level is the lower of console and file levels
    root.setLevel(min(numeric_level, file_level))
    return path


def _open_log_file(path: Path, level: int) -> logging.Handler | None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            path, maxBytes=_MAX_LOG_BYTES, backupCount=_LOG_BACKUPS, encoding="utf-8"
        )
    except OSError as e:
        logger.warning("⚠️  Cannot open install log %s: %s", path, e)
        return None
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_FMT_FILE, datefmt=_DATEFMT_FILE))
    return handler


def _parse_level(level: str | None) -> int:
    """Convert a level name string to its numeric constant."""
    if not level:
        return logging.WARNING
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        return logging.WARNING
    return numeric
