"""Pytest configuration.

A single ``QCoreApplication`` is created for the whole session so signal
tests have an application object, and the runtime storage directory is
redirected into a temporary folder for every test.
"""

from __future__ import annotations

import concurrent.futures
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

_APP: Any | None = None


def pytest_configure(config) -> None:  # noqa: ARG001
    try:
        from PySide6.QtCore import QCoreApplication
    except ImportError:
        return

    global _APP

    app = QCoreApplication.instance()
    _APP = app if app is not None else QCoreApplication([])


def pytest_sessionfinish(session, exitstatus) -> None:  # noqa: ARG001
    try:
        from PySide6.QtCore import QCoreApplication
    except ImportError:
        return

    app = QCoreApplication.instance()
    if app is None:
        return
    app.quit()
    app.processEvents()


@pytest.fixture(autouse=True)
def isolated_storage(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    from clipcrate.core import diagnostics, paths

    storage_root = tmp_path / "appdata"
    monkeypatch.setenv("LOCALAPPDATA", str(storage_root))
    paths.appdata_dir.cache_clear()
    paths.runtime_storage_dir.cache_clear()
    previous = diagnostics.set_error_log(None)
    yield storage_root
    diagnostics.set_error_log(previous)
    paths.appdata_dir.cache_clear()
    paths.runtime_storage_dir.cache_clear()


class ManualExecutor:
    """Holds submitted work until the test runs it."""

    def __init__(self) -> None:
        self.pending: list[tuple[Callable[[], Any], concurrent.futures.Future[Any]]] = []

    def submit(self, fn: Callable[[], Any]) -> concurrent.futures.Future[Any]:
        future: concurrent.futures.Future[Any] = concurrent.futures.Future()
        self.pending.append((fn, future))
        return future

    def run_all(self) -> None:
        while self.pending:
            fn, future = self.pending.pop(0)
            if not future.set_running_or_notify_cancel():
                continue
            try:
                future.set_result(fn())
            except Exception as exc:
                future.set_exception(exc)


class SyncExecutor(ManualExecutor):
    def submit(self, fn: Callable[[], Any]) -> concurrent.futures.Future[Any]:
        future = super().submit(fn)
        self.run_all()
        return future


class FakeProcess:
    def __init__(self) -> None:
        self.stdin_writes: list[str] = []
        self.returncode: int | None = None

    def poll(self) -> int | None:
        return self.returncode

    @property
    def stdin(self) -> FakeProcess:
        return self

    @property
    def closed(self) -> bool:
        return False

    def write(self, text: str) -> int:
        self.stdin_writes.append(text)
        return len(text)

    def flush(self) -> None:
        pass


class FakeTranscoder:
    """Records calls and replays scripted progress instead of running ffmpeg."""

    def __init__(
        self,
        *,
        progress: tuple[int, ...] = (0, 50, 100),
        convert_error: Exception | None = None,
        crop_error: Exception | None = None,
        write_output: bytes = b"converted",
        on_convert: Callable[[threading.Event], None] | None = None,
    ) -> None:
        self.calls: list[tuple[Any, ...]] = []
        self.process = FakeProcess()
        self._progress = progress
        self._convert_error = convert_error
        self._crop_error = crop_error
        self._write_output = write_output
        self._on_convert = on_convert

    def convert(self, input_path, output_path, *, cancel_token, progress_cb=None, log_cb=None) -> None:
        self.calls.append(("convert", input_path, output_path))
        for percent in self._progress:
            if progress_cb:
                progress_cb(percent, self.process)
        if self._on_convert is not None:
            self._on_convert(cancel_token)
        if self._convert_error is not None:
            raise self._convert_error
        if self._write_output:
            Path(output_path).write_bytes(self._write_output)
        if log_cb:
            log_cb("convert finished")

    def crop(self, input_path, output_path, start, end=None, *, cancel_token, progress_cb=None, log_cb=None) -> None:
        self.calls.append(("crop", input_path, output_path, start, end))
        if progress_cb:
            progress_cb(100, None)
        if self._crop_error is not None:
            raise self._crop_error


@pytest.fixture
def manual_executor() -> ManualExecutor:
    return ManualExecutor()


@pytest.fixture
def sync_executor() -> SyncExecutor:
    return SyncExecutor()


@pytest.fixture
def registry():
    from clipcrate.operations.registry import OperationRegistry

    return OperationRegistry()


@pytest.fixture
def errors(tmp_path: Path):
    from clipcrate.core.diagnostics import ErrorLog

    return ErrorLog(tmp_path / "errors.jsonl")
