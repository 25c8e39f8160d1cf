from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable

from ..core.models import (
    OperationCapability,
    OperationStatus,
    is_terminal_status,
    status_text,
)

logger = logging.getLogger(__name__)

CompleteListener = Callable[["Operation", OperationStatus], None]


class UnsupportedOperationError(NotImplementedError):
    pass


class OperationStateError(RuntimeError):
    pass


class Operation:
    """Long-running unit of work with a one-way lifecycle.

    Status only moves IDLE -> WORKING -> CANCELED | FAILED | SUCCESS, and the
    completion event is delivered once per operation. What an operation can
    do beyond that is declared per class in ``capabilities``.
    """

    capabilities: OperationCapability = OperationCapability.NONE

    def __init__(self) -> None:
        self._status = OperationStatus.IDLE
        self._status_lock = threading.Lock()
        self._listeners: list[CompleteListener] = []
        self._listeners_lock = threading.Lock()
        self._complete_fired = False

    @property
    def status(self) -> OperationStatus:
        with self._status_lock:
            return self._status

    @property
    def status_text(self) -> str:
        return status_text(self.status)

    @property
    def is_finished(self) -> bool:
        return is_terminal_status(self.status)

    @classmethod
    def supports(cls, capability: OperationCapability) -> bool:
        return bool(cls.capabilities & capability)

    def can_open(self) -> bool:
        return self.supports(OperationCapability.OPEN) and self.status == OperationStatus.SUCCESS

    def can_pause(self) -> bool:
        return self.supports(OperationCapability.PAUSE) and self.status == OperationStatus.WORKING

    def can_resume(self) -> bool:
        return self.supports(OperationCapability.RESUME) and self.status == OperationStatus.PAUSED

    def can_stop(self) -> bool:
        return self.supports(OperationCapability.STOP) and self.status == OperationStatus.WORKING

    def pause(self) -> None:
        if not self.supports(OperationCapability.PAUSE):
            raise UnsupportedOperationError(f"{type(self).__name__} does not support pausing")
        self._pause()

    def resume(self) -> None:
        if not self.supports(OperationCapability.RESUME):
            raise UnsupportedOperationError(f"{type(self).__name__} does not support resuming")
        self._resume()

    def _pause(self) -> None:
        raise UnsupportedOperationError(f"{type(self).__name__} does not support pausing")

    def _resume(self) -> None:
        raise UnsupportedOperationError(f"{type(self).__name__} does not support resuming")

    def add_complete_listener(self, listener: CompleteListener) -> None:
        with self._listeners_lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def remove_complete_listener(self, listener: CompleteListener) -> None:
        with self._listeners_lock:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

    def clear_complete_listeners(self) -> None:
        with self._listeners_lock:
            self._listeners.clear()

    def _transition(
        self,
        target: OperationStatus,
        *,
        allowed_from: Iterable[OperationStatus],
    ) -> bool:
        allowed = frozenset(allowed_from)
        with self._status_lock:
            if self._status not in allowed:
                return False
            logger.debug("%s: %s -> %s", type(self).__name__, self._status, target)
            self._status = target
            return True

    def _claim_completion(self) -> bool:
        with self._status_lock:
            if self._complete_fired:
                return False
            self._complete_fired = True
            return True

    def _notify_complete(self, status: OperationStatus) -> list[Exception]:
        with self._listeners_lock:
            listeners = list(self._listeners)
        errors: list[Exception] = []
        for listener in listeners:
            try:
                listener(self, status)
            except Exception as exc:
                errors.append(exc)
        return errors
