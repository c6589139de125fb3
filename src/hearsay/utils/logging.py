"""Logging for the hearsay engine and CLI.

Every record carries the short id of the engine session that produced it, so
the rotating log file stays readable when sessions are started one after the
other in the same process. ``stdout`` is reserved for the CLI's JSON line
protocol; console output always goes to ``stderr`` or an explicit stream.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import TextIO

__all__ = ["setup_logging", "get_log_path", "resolve_level", "bind_session", "current_session"]

LOG_DIR_ENV = "HEARSAY_LOG_DIR"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(session)s | %(name)s | %(message)s"
_DEFAULT_LOG_DIR = Path.home() / ".hearsay" / "logs"
_LOG_FILENAME = "hearsay.log"
_NO_SESSION = "-"
_SESSION_ID_LENGTH = 8
# Transport chatter from the model and search clients
_NOISY_LOGGERS: tuple[str, ...] = ("asyncio", "httpx", "httpcore", "openai")
_CONFIGURED = False
_LOG_PATH: Path | None = None


class _SessionFilter(logging.Filter):
    def __init__(self) -> None:
        super().__init__()
        self.session = _NO_SESSION

    def filter(self, record: logging.LogRecord) -> bool:
        record.session = self.session
        return True


_SESSION_FILTER = _SessionFilter()


def bind_session(session_id: str | None) -> None:
    """Tag subsequent log records with ``session_id``; ``None`` clears the tag."""

    _SESSION_FILTER.session = session_id[:_SESSION_ID_LENGTH] if session_id else _NO_SESSION


def current_session() -> str:
    return _SESSION_FILTER.session


def setup_logging(
    level: int = logging.INFO,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    console_stream: TextIO | None = None,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
    force: bool = False,
) -> Path:
    """Route root logging to ``hearsay.log`` and, optionally, the console.

    Repeated calls return the existing log path unless ``force`` is set.
    """

    global _CONFIGURED, _LOG_PATH
    if _CONFIGURED and not force and _LOG_PATH is not None:
        return _LOG_PATH

    log_path = _resolve_log_dir(log_dir) / _LOG_FILENAME
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handlers = [_file_handler(log_path, max_bytes=max_bytes, backup_count=backup_count)]
    if console:
        handlers.append(logging.StreamHandler(console_stream or sys.stderr))

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        handler.addFilter(_SESSION_FILTER)

    logging.basicConfig(level=level, handlers=handlers, force=True)
    logging.captureWarnings(True)
    _quiet_external_loggers(level)

    _CONFIGURED = True
    _LOG_PATH = log_path
    return log_path


def get_log_path() -> Path | None:
    """Return the active log file, if logging has been configured."""

    return _LOG_PATH


def resolve_level(debug: bool) -> int:
    return logging.DEBUG if debug else logging.INFO


def _file_handler(path: Path, *, max_bytes: int, backup_count: int) -> logging.Handler:
    return logging.handlers.RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")


def _resolve_log_dir(log_dir: Path | str | None) -> Path:
    return Path(log_dir or os.environ.get(LOG_DIR_ENV) or _DEFAULT_LOG_DIR).expanduser()


def _quiet_external_loggers(root_level: int) -> None:
    quiet_level = max(root_level, logging.WARNING)
    for logger_name in _NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(quiet_level)
