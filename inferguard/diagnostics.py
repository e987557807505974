"""
Diagnostics log: rotating, append-only, one JSON record per line.

Every module in the package logs through ``logging.getLogger(__name__)``.
``configure_diagnostics()`` attaches a single size-rotating file handler to
the ``inferguard`` logger, so all of those records land in one file that is
safe for ``tail``/``grep``::

    {"timestamp": "2026-01-15T10:30:00.123Z", "level": "WARN",
     "category": "inferguard.supervisor", "message": "...", "context": {...}}

Structured fields are passed with ``extra={"context": {...}}``; an explicit
``category`` may be given the same way, otherwise the logger name is used.

Rotation: when the active file would exceed ``max_bytes`` it is closed and
renamed ``.1`` (older files shift to ``.2``, ``.3``), the oldest beyond
``backup_count`` is deleted, and a fresh file is opened.  A failing write
(disk full, permissions) produces one warning on stderr and is otherwise
ignored so logging can never take the process down.
"""

from __future__ import annotations

import json
import logging
import sys
import threading
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional, Union

PACKAGE_LOGGER = "inferguard"
DEFAULT_LOG_FILENAME = "inferguard.log"
DEFAULT_MAX_BYTES = 5 * 1024 * 1024
DEFAULT_BACKUP_COUNT = 3

_LEVELS: dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

_LEVEL_NAMES: dict[int, str] = {
    logging.DEBUG: "DEBUG",
    logging.INFO: "INFO",
    logging.WARNING: "WARN",
    logging.ERROR: "ERROR",
    logging.CRITICAL: "ERROR",
}


def default_log_dir() -> Path:
    return Path.home() / ".inferguard" / "logs"


def _level_no(level: Union[str, int]) -> int:
    if isinstance(level, int):
        return level
    try:
        return _LEVELS[level.lower()]
    except KeyError:
        raise ValueError(f"Unknown log level: {level!r}") from None


class JSONLinesFormatter(logging.Formatter):
    """Formats a record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry: dict[str, Any] = {
            "timestamp": ts.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ts.microsecond // 1000:03d}Z",
            "level": _LEVEL_NAMES.get(record.levelno, record.levelname),
            "category": getattr(record, "category", None) or record.name,
            "message": record.getMessage(),
            "context": dict(getattr(record, "context", None) or {}),
        }
        if record.exc_info and record.exc_info[0] is not None:
            entry["context"]["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
            }
        return json.dumps(entry, default=str, ensure_ascii=False)


class SafeRotatingFileHandler(RotatingFileHandler):
    """Size-rotating handler whose write failures never propagate."""

    def __init__(self, filename: str, max_bytes: int, backup_count: int) -> None:
        super().__init__(
            filename,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
            delay=True,
        )
        self.rotations = 0
        self._failure_reported = False

    def doRollover(self) -> None:
        super().doRollover()
        self.rotations += 1

    def handleError(self, record: logging.LogRecord) -> None:
        if self._failure_reported:
            return
        self._failure_reported = True
        exc = sys.exc_info()[1]
        try:
            sys.stderr.write(
                f"[WARN] inferguard: diagnostics log write to {self.baseFilename} "
                f"failed ({exc}); further write errors are suppressed\n"
            )
        except (OSError, ValueError):
            pass


class DiagnosticsLog:
    """Process-wide structured log sink.

    Parameters
    ----------
    log_dir:
        Directory for the active file and its rotated copies.  Created if
        missing.
    max_bytes:
        Size threshold that triggers rotation (default 5 MB).
    backup_count:
        Number of rotated files kept (default 3).
    """

    def __init__(
        self,
        log_dir: Union[str, Path, None] = None,
        *,
        filename: str = DEFAULT_LOG_FILENAME,
        max_bytes: int = DEFAULT_MAX_BYTES,
        backup_count: int = DEFAULT_BACKUP_COUNT,
        level: int = logging.INFO,
    ) -> None:
        self.log_dir = Path(log_dir) if log_dir else default_log_dir()
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.path = self.log_dir / filename
        self.max_bytes = max_bytes
        self.backup_count = backup_count

        self.handler = SafeRotatingFileHandler(str(self.path), max_bytes, backup_count)
        self.handler.setFormatter(JSONLinesFormatter())
        self.handler.setLevel(level)

        self._root = logging.getLogger(PACKAGE_LOGGER)
        if self._root.level == logging.NOTSET or self._root.level > level:
            self._root.setLevel(level)
        self._root.addHandler(self.handler)
        self._events = logging.getLogger(f"{PACKAGE_LOGGER}.events")

    def log(
        self,
        level: Union[str, int],
        category: str,
        message: str,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        """Append one entry.  ``level`` is ``"Info"``, ``"Warn"`` or ``"Error"``."""
        self._events.log(
            _level_no(level),
            message,
            extra={"category": category, "context": dict(context or {})},
        )

    def rotated_files(self) -> list[Path]:
        return sorted(self.log_dir.glob(self.path.name + ".*"))

    def close(self) -> None:
        self._root.removeHandler(self.handler)
        self.handler.close()


_instance: Optional[DiagnosticsLog] = None
_lock = threading.Lock()


def configure_diagnostics(
    log_dir: Union[str, Path, None] = None,
    *,
    max_bytes: int = DEFAULT_MAX_BYTES,
    backup_count: int = DEFAULT_BACKUP_COUNT,
) -> DiagnosticsLog:
    """Create the process-wide diagnostics log, or return the existing one."""
    global _instance
    with _lock:
        if _instance is None:
            _instance = DiagnosticsLog(
                log_dir, max_bytes=max_bytes, backup_count=backup_count
            )
            _instance.log(
                "Info",
                "diagnostics",
                "Diagnostics log opened",
                {
                    "path": str(_instance.path),
                    "max_bytes": max_bytes,
                    "backup_count": backup_count,
                },
            )
        return _instance


def get_diagnostics() -> Optional[DiagnosticsLog]:
    return _instance


def shutdown_diagnostics() -> None:
    global _instance
    with _lock:
        if _instance is not None:
            _instance.close()
            _instance = None
