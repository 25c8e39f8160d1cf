from __future__ import annotations

import logging
import threading
from collections.abc import Iterator

from .base import Operation

logger = logging.getLogger(__name__)


class OperationRegistry:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._operations: dict[int, Operation] = {}

    def add(self, operation: Operation) -> None:
        with self._lock:
            self._operations[id(operation)] = operation

    def remove(self, operation: Operation) -> bool:
        with self._lock:
            return self._operations.pop(id(operation), None) is not None

    def contains(self, operation: Operation) -> bool:
        with self._lock:
            return self._operations.get(id(operation)) is operation

    def __contains__(self, operation: object) -> bool:
        return isinstance(operation, Operation) and self.contains(operation)

    def __len__(self) -> int:
        with self._lock:
            return len(self._operations)

    def __iter__(self) -> Iterator[Operation]:
        return iter(self.snapshot())

    def snapshot(self) -> list[Operation]:
        with self._lock:
            return list(self._operations.values())

    def stop_all(self, *, cleanup: bool = True) -> int:
        stopped = 0
        for operation in self.snapshot():
            if not operation.can_stop():
                continue
            stop = getattr(operation, "stop", None)
            if stop is None:
                continue
            if stop(remove=False, cleanup=cleanup):
                stopped += 1
        if stopped:
            logger.info("Stopped %d running operation(s)", stopped)
        return stopped


RUNNING_OPERATIONS = OperationRegistry()


def running_operations() -> OperationRegistry:
    return RUNNING_OPERATIONS
