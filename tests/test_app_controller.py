from __future__ import annotations

import io
import time
from datetime import timedelta
from pathlib import Path

import pytest
from PySide6.QtCore import QCoreApplication

from clipcrate.app_controller import (
    EXIT_CANCELED,
    EXIT_FAILED,
    EXIT_OK,
    AppController,
    build_crop_range,
    build_parser,
    exit_code_for_status,
)
from clipcrate.core.config import default_config
from clipcrate.core.models import OperationStatus
from clipcrate.operations.pool import shutdown_shared_executor
from conftest import FakeTranscoder


def test_exit_codes() -> None:
    assert exit_code_for_status(OperationStatus.SUCCESS) == EXIT_OK
    assert exit_code_for_status("failed") == EXIT_FAILED
    assert exit_code_for_status(OperationStatus.CANCELED) == EXIT_CANCELED
    assert exit_code_for_status("idle") == EXIT_FAILED


def test_build_crop_range() -> None:
    assert build_crop_range(None, None) is None
    assert build_crop_range(None, "00:00:10.000") is None
    crop = build_crop_range("00:00:05.000", "00:00:10.000")
    assert crop.start == timedelta(seconds=5)
    assert crop.end == timedelta(seconds=10)
    assert build_crop_range("5", None).end is None
    with pytest.raises(ValueError):
        build_crop_range("00:00:10", "00:00:05")


def test_parser_reads_convert_arguments() -> None:
    args = build_parser().parse_args(["convert", "in.mp4", "out.mp4", "--start", "1", "--no-cleanup"])
    assert args.command == "convert"
    assert args.input == "in.mp4"
    assert args.output == "out.mp4"
    assert args.start == "1"
    assert args.end is None
    assert args.no_cleanup is True


def test_controller_runs_operation_to_completion(tmp_path: Path) -> None:
    app = QCoreApplication.instance()
    stream = io.StringIO()
    settings = default_config()
    settings.worker_threads = 1
    controller = AppController(
        app,
        input_path=str(tmp_path / "in.mp4"),
        output_path=str(tmp_path / "out.mp4"),
        config=settings,
        transcoder=FakeTranscoder(),
        stream=stream,
    )
    try:
        controller.run()
        assert controller.operation.wait(timeout=5)
        deadline = time.monotonic() + 5
        while "Completed" not in stream.getvalue() and time.monotonic() < deadline:
            app.processEvents()
            time.sleep(0.01)
    finally:
        controller.shutdown()
        shutdown_shared_executor(wait=True)

    output = stream.getvalue()
    assert "Completed" in output
    assert "Output size: 9 B" in output
    assert controller.exit_code == EXIT_OK
    assert controller.operation.status == OperationStatus.SUCCESS
