from __future__ import annotations

import concurrent.futures
import logging
import subprocess
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol

from ..core.diagnostics import ErrorLog, error_log
from ..core.ffmpeg_service import FFmpegService, close_pipes, is_process_running, send_quit
from ..core.formatting import file_size_text
from ..core.models import (
    CropRange,
    OperationCapability,
    OperationResult,
    OperationStatus,
    status_text,
)
from ..core.shell import open_path_in_shell
from .base import Operation, OperationStateError
from .pool import shared_executor
from .registry import OperationRegistry, running_operations

logger = logging.getLogger(__name__)

ProgressSink = Callable[[int], None]
TextSink = Callable[[str], None]
RemoveSink = Callable[["ConvertOperation"], None]


class Transcoder(Protocol):
    def convert(
        self,
        input_path: str,
        output_path: str,
        *,
        cancel_token: threading.Event,
        progress_cb: Callable[[int, Any], None] | None = None,
        log_cb: Callable[[str], None] | None = None,
    ) -> None: ...

    def crop(
        self,
        input_path: str,
        output_path: str,
        start: Any,
        end: Any = None,
        *,
        cancel_token: threading.Event,
        progress_cb: Callable[[int, Any], None] | None = None,
        log_cb: Callable[[str], None] | None = None,
    ) -> None: ...


class Executor(Protocol):
    def submit(self, fn: Callable[[], Any]) -> concurrent.futures.Future[Any]: ...


class ConvertOperation(Operation):
    """Convert a media file with ffmpeg, then optionally crop the result in place."""

    capabilities = OperationCapability.OPEN | OperationCapability.STOP

    def __init__(
        self,
        name: str = "",
        *,
        transcoder: Transcoder | None = None,
        registry: OperationRegistry | None = None,
        errors: ErrorLog | None = None,
        executor: Executor | None = None,
        progress_cb: ProgressSink | None = None,
        status_cb: TextSink | None = None,
        file_size_cb: TextSink | None = None,
        remove_cb: RemoveSink | None = None,
        log_cb: TextSink | None = None,
    ) -> None:
        super().__init__()
        self.name = str(name or "").strip()
        self.input = ""
        self.output = ""
        self.crop: CropRange | None = None
        self.remove_on_complete = False
        self.cleanup_requested = False
        self.progress = 0
        self.file_size = ""

        self._transcoder: Transcoder = transcoder if transcoder is not None else FFmpegService()
        self._registry = registry if registry is not None else running_operations()
        self._errors = errors
        self._executor = executor
        self._progress_cb = progress_cb
        self._status_cb = status_cb
        self._file_size_cb = file_size_cb
        self._remove_cb = remove_cb
        self._log_cb = log_cb

        self._cancel_event = threading.Event()
        self._future: concurrent.futures.Future[Any] | None = None
        self._process: subprocess.Popen[str] | None = None
        self._process_lock = threading.Lock()
        self._started = False
        self._disposed = False
        self._dispose_lock = threading.Lock()

    def __repr__(self) -> str:
        return f"<ConvertOperation name={self.name!r} status={self.status.value}>"

    def __enter__(self) -> ConvertOperation:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_event.is_set()

    @property
    def process(self) -> subprocess.Popen[str] | None:
        with self._process_lock:
            return self._process

    def convert(self, input_path: str | Path, output_path: str | Path, crop: CropRange | None = None) -> None:
        """Start the conversion on the shared worker pool and return immediately.

        ``crop=None`` skips cropping. A crop without an end keeps everything
        from ``crop.start`` to the end of the file.
        """
        with self._dispose_lock:
            if self._disposed:
                raise OperationStateError("Operation has been disposed")
            if self._started:
                raise OperationStateError("Operation has already been started")
            self._started = True

        self.input = str(input_path)
        self.output = str(output_path)
        self.crop = crop
        if not self.name:
            self.name = Path(self.output).name

        self._registry.add(self)
        self._transition(OperationStatus.WORKING, allowed_from={OperationStatus.IDLE})
        self._refresh_status()

        executor = self._executor if self._executor is not None else shared_executor()
        self._future = executor.submit(self._run_worker)

    def stop(self, remove: bool = False, cleanup: bool = False) -> bool:
        self.remove_on_complete = bool(remove)

        if self.status in {OperationStatus.WORKING, OperationStatus.PAUSED}:
            try:
                self._transition(
                    OperationStatus.CANCELED,
                    allowed_from={OperationStatus.WORKING, OperationStatus.PAUSED},
                )
                self._refresh_status()
                self._cancel_event.set()
                process = self.process
                if is_process_running(process):
                    send_quit(process)
            except Exception as exc:
                self._record(exc, action="stop")
                return False

        if cleanup and self.status != OperationStatus.SUCCESS:
            if self.status == OperationStatus.CANCELED:
                self.cleanup_requested = True
            self._delete_partial_output()

        self._complete()
        return True

    def wait(self, timeout: float | None = None) -> bool:
        future = self._future
        if future is None:
            return True
        try:
            future.result(timeout=timeout)
        except concurrent.futures.TimeoutError:
            return False
        except concurrent.futures.CancelledError:
            return True
        return True

    def open(self) -> bool:
        if not self.output:
            return False
        return open_path_in_shell(self.output)

    def open_containing_folder(self) -> bool:
        if not self.output:
            return False
        return open_path_in_shell(Path(self.output).parent)

    def dispose(self) -> None:
        with self._dispose_lock:
            if self._disposed:
                return
            self._disposed = True
        future = self._future
        self._future = None
        if future is not None:
            future.cancel()
        with self._process_lock:
            process = self._process
            self._process = None
        close_pipes(process)
        self.clear_complete_listeners()
        self._progress_cb = None
        self._status_cb = None
        self._file_size_cb = None
        self._remove_cb = None
        self._log_cb = None

    def close(self, timeout: float | None = None) -> None:
        if self.can_stop():
            self.stop(remove=False, cleanup=False)
            self.wait(timeout)
        self.dispose()

    def _run_worker(self) -> None:
        try:
            result = self._execute()
            self._on_worker_completed(result)
        except Exception as exc:
            self._record(exc, action="complete")
        finally:
            self._complete()

    def _execute(self) -> OperationResult:
        crop = self.crop
        try:
            if self._cancel_event.is_set():
                return OperationResult(OperationStatus.CANCELED, output_path=self.output, crop=crop)
            self._transcoder.convert(
                self.input,
                self.output,
                cancel_token=self._cancel_event,
                progress_cb=self._on_progress,
                log_cb=self._on_log,
            )
            self._set_process(None)

            if not self._cancel_event.is_set() and crop is not None:
                self._transcoder.crop(
                    self.output,
                    self.output,
                    crop.start,
                    crop.end,
                    cancel_token=self._cancel_event,
                    progress_cb=self._on_progress,
                    log_cb=self._on_log,
                )

            if self._cancel_event.is_set():
                return OperationResult(OperationStatus.CANCELED, output_path=self.output, crop=crop)
            return OperationResult(OperationStatus.SUCCESS, output_path=self.output, crop=crop)
        except Exception as exc:
            self._record(exc, action="convert")
            return OperationResult(OperationStatus.FAILED, output_path=self.output, error=str(exc), crop=crop)
        finally:
            self.crop = None
            self._set_process(None)

    def _on_worker_completed(self, result: OperationResult) -> None:
        self._transition(result.status, allowed_from={OperationStatus.WORKING})
        self._refresh_status()
        if self.status == OperationStatus.SUCCESS:
            self.file_size = file_size_text(self.output)
            self._emit(self._file_size_cb, self.file_size)
        elif self.cleanup_requested:
            self._delete_partial_output()

    def _on_progress(self, percent: int, process: subprocess.Popen[str] | None = None) -> None:
        if self.status != OperationStatus.WORKING:
            return
        if process is not None:
            self._set_process(process)
        self.progress = max(0, min(100, int(percent)))
        self._emit(self._progress_cb, self.progress)

    def _on_log(self, message: str) -> None:
        if self._log_cb:
            self._emit(self._log_cb, message)
        else:
            logger.debug("%s: %s", self.name, message)

    def _set_process(self, process: subprocess.Popen[str] | None) -> None:
        with self._process_lock:
            self._process = process

    def _refresh_status(self) -> None:
        self._emit(self._status_cb, status_text(self.status))

    def _complete(self) -> None:
        self._registry.remove(self)
        if self._started and not self._claim_completion():
            return
        status = self.status
        for exc in self._notify_complete(status):
            self._record(exc, action="listener")
        logger.info("%s: Operation complete, status: %s", type(self).__name__, status_text(status))
        if self.remove_on_complete:
            self._emit(self._remove_cb, self)

    def _emit(self, callback: Callable[..., None] | None, *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as exc:
            self._record(exc, action="callback")

    def _delete_partial_output(self) -> None:
        if not self.output:
            return
        path = Path(self.output)
        if not path.exists():
            return
        try:
            path.unlink()
        except OSError as exc:
            logger.warning("Could not delete unfinished output %s: %s", path, exc)

    def _record(self, exc: Exception, *, action: str) -> None:
        sink = self._errors if self._errors is not None else error_log()
        sink.record(
            exc,
            {
                "operation": type(self).__name__,
                "name": self.name,
                "action": action,
                "input": self.input,
                "output": self.output,
            },
        )
