from __future__ import annotations

from pathlib import Path

from clipcrate.core.models import OperationStatus
from clipcrate.operations.convert_operation import ConvertOperation
from clipcrate.workers.operation_signals import OperationSignals
from conftest import FakeTranscoder


def test_signals_relay_operation_events(tmp_path: Path, sync_executor, registry, errors) -> None:
    signals = OperationSignals()
    progress: list[int] = []
    statuses: list[str] = []
    sizes: list[str] = []
    completions: list[tuple[object, str]] = []
    signals.progressChanged.connect(lambda value: progress.append(value))
    signals.statusChanged.connect(lambda value: statuses.append(value))
    signals.fileSizeChanged.connect(lambda value: sizes.append(value))
    signals.operationComplete.connect(lambda op, status: completions.append((op, status)))

    operation = ConvertOperation(
        "clip",
        transcoder=FakeTranscoder(),
        executor=sync_executor,
        registry=registry,
        errors=errors,
        **signals.callbacks(),
    )
    signals.attach(operation)
    operation.convert(tmp_path / "in.mp4", tmp_path / "out.mp4")

    assert progress == [0, 50, 100]
    assert statuses == ["???", "Completed"]
    assert sizes == ["9 B"]
    assert completions == [(operation, OperationStatus.SUCCESS.value)]
    assert signals.operation is operation


def test_detach_stops_completion_relay(tmp_path: Path, sync_executor, registry, errors) -> None:
    signals = OperationSignals()
    completions: list[str] = []
    signals.operationComplete.connect(lambda op, status: completions.append(status))
    operation = ConvertOperation("clip", transcoder=FakeTranscoder(), executor=sync_executor, registry=registry, errors=errors)
    signals.attach(operation)
    signals.detach()

    operation.convert(tmp_path / "in.mp4", tmp_path / "out.mp4")

    assert completions == []
    assert signals.operation is None


def test_remove_requested_after_stop(tmp_path: Path, manual_executor, registry, errors) -> None:
    signals = OperationSignals()
    removed: list[object] = []
    signals.removeRequested.connect(lambda value: removed.append(value))
    operation = ConvertOperation(
        "clip",
        transcoder=FakeTranscoder(),
        executor=manual_executor,
        registry=registry,
        errors=errors,
        **signals.callbacks(),
    )
    operation.convert(tmp_path / "in.mp4", tmp_path / "out.mp4")
    operation.stop(remove=True)

    assert removed == [operation]
