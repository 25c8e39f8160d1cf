from __future__ import annotations

import concurrent.futures
import threading

_EXECUTOR: concurrent.futures.ThreadPoolExecutor | None = None
_EXECUTOR_LOCK = threading.Lock()
_DEFAULT_MAX_WORKERS = 4


def shared_executor(max_workers: int | None = None) -> concurrent.futures.ThreadPoolExecutor:
    """Return the process-wide pool, creating it on first use.

    ``max_workers`` only applies to the call that creates the pool.
    """
    global _EXECUTOR
    with _EXECUTOR_LOCK:
        if _EXECUTOR is None:
            workers = max(1, int(max_workers or _DEFAULT_MAX_WORKERS))
            _EXECUTOR = concurrent.futures.ThreadPoolExecutor(
                max_workers=workers,
                thread_name_prefix="clipcrate-op",
            )
        return _EXECUTOR


def shutdown_shared_executor(*, wait: bool = True) -> None:
    global _EXECUTOR
    with _EXECUTOR_LOCK:
        executor = _EXECUTOR
        _EXECUTOR = None
    if executor is not None:
        executor.shutdown(wait=wait, cancel_futures=True)
