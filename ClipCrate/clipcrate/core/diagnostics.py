from __future__ import annotations

import json
import logging
import threading
import traceback
from datetime import datetime
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class ErrorLog:
    """Process-wide sink for unexpected exceptions.

    Each call to :meth:`record` appends one JSON line to the log file and
    forwards the exception to the ``logging`` tree. Writing is best effort:
    a log that cannot be written never raises back into the caller.
    """

    def __init__(self, log_path: str | Path | None) -> None:
        self._lock = threading.Lock()
        self._log_path = Path(log_path).expanduser() if log_path else None
        self._count = 0

    @property
    def log_path(self) -> Path | None:
        return self._log_path

    @property
    def count(self) -> int:
        with self._lock:
            return self._count

    def record(self, exc: BaseException, context: dict[str, Any] | None = None) -> None:
        logger.error("%s: %s", type(exc).__name__, exc, exc_info=exc)
        entry = {
            "timestamp": datetime.now().astimezone().isoformat(),
            "type": type(exc).__name__,
            "message": str(exc),
            "traceback": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
            "context": context or {},
        }
        line = json.dumps(entry, ensure_ascii=False, default=str)
        with self._lock:
            self._count += 1
            if self._log_path is None:
                return
            try:
                self._log_path.parent.mkdir(parents=True, exist_ok=True)
                with self._log_path.open("a", encoding="utf-8") as handle:
                    handle.write(line + "\n")
            except OSError:
                return

    def read_entries(self) -> list[dict[str, Any]]:
        if self._log_path is None or not self._log_path.is_file():
            return []
        entries: list[dict[str, Any]] = []
        with self._lock:
            try:
                lines = self._log_path.read_text(encoding="utf-8").splitlines()
            except OSError:
                return []
        for raw in lines:
            try:
                payload = json.loads(raw)
            except json.JSONDecodeError:
                continue
            if isinstance(payload, dict):
                entries.append(payload)
        return entries


_ERROR_LOG: ErrorLog | None = None
_ERROR_LOG_LOCK = threading.Lock()


def error_log() -> ErrorLog:
    global _ERROR_LOG
    with _ERROR_LOG_LOCK:
        if _ERROR_LOG is None:
            from .paths import error_log_path

            try:
                path: Path | None = error_log_path()
            except RuntimeError:
                path = None
            _ERROR_LOG = ErrorLog(path)
        return _ERROR_LOG


def set_error_log(log: ErrorLog | None) -> ErrorLog | None:
    global _ERROR_LOG
    with _ERROR_LOG_LOCK:
        previous = _ERROR_LOG
        _ERROR_LOG = log
        return previous


def save_exception(exc: BaseException, context: dict[str, Any] | None = None) -> None:
    error_log().record(exc, context)
