from __future__ import annotations

from PySide6.QtCore import QObject, Signal

from ..core.models import OperationStatus
from ..operations.base import Operation


class OperationSignals(QObject):
    """Qt face of an operation.

    Operation callbacks run on pool threads. Emitting through this object,
    which lives on the consumer's thread, lets Qt queue delivery so slots run
    on that thread.
    """

    progressChanged = Signal(int)
    statusChanged = Signal(str)
    fileSizeChanged = Signal(str)
    logChanged = Signal(str)
    operationComplete = Signal(object, str)
    removeRequested = Signal(object)

    def __init__(self, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._operation: Operation | None = None

    @property
    def operation(self) -> Operation | None:
        return self._operation

    def callbacks(self) -> dict[str, object]:
        return {
            "progress_cb": self._on_progress,
            "status_cb": self._on_status,
            "file_size_cb": self._on_file_size,
            "remove_cb": self._on_remove,
            "log_cb": self._on_log,
        }

    def attach(self, operation: Operation) -> None:
        if self._operation is not None:
            self._operation.remove_complete_listener(self._on_complete)
        self._operation = operation
        operation.add_complete_listener(self._on_complete)

    def detach(self) -> None:
        if self._operation is None:
            return
        self._operation.remove_complete_listener(self._on_complete)
        self._operation = None

    def _on_progress(self, percent: int) -> None:
        self.progressChanged.emit(int(percent))

    def _on_status(self, text: str) -> None:
        self.statusChanged.emit(str(text or ""))

    def _on_file_size(self, text: str) -> None:
        self.fileSizeChanged.emit(str(text or ""))

    def _on_log(self, message: str) -> None:
        self.logChanged.emit(str(message or ""))

    def _on_remove(self, operation: Operation) -> None:
        self.removeRequested.emit(operation)

    def _on_complete(self, operation: Operation, status: OperationStatus) -> None:
        self.operationComplete.emit(operation, OperationStatus(status).value)
