from __future__ import annotations

from datetime import timedelta

import pytest

from clipcrate.core.formatting import file_size_text, format_progress_line, format_size_human
from clipcrate.core.models import (
    CropRange,
    OperationCapability,
    OperationStatus,
    is_terminal_status,
    status_text,
)
from clipcrate.core.timecode import format_timecode, parse_duration_line, parse_timecode


def test_status_text_mapping() -> None:
    assert status_text(OperationStatus.CANCELED) == "Canceled"
    assert status_text(OperationStatus.FAILED) == "Failed"
    assert status_text(OperationStatus.SUCCESS) == "Completed"
    assert status_text(OperationStatus.WORKING) == "???"
    assert status_text(OperationStatus.IDLE) == "???"
    assert status_text("bogus") == "???"


def test_terminal_states() -> None:
    assert is_terminal_status(OperationStatus.SUCCESS)
    assert is_terminal_status("canceled")
    assert not is_terminal_status(OperationStatus.WORKING)
    assert not is_terminal_status(OperationStatus.PAUSED)


def test_capability_flags_combine() -> None:
    caps = OperationCapability.OPEN | OperationCapability.STOP
    assert caps & OperationCapability.STOP
    assert not caps & OperationCapability.PAUSE


def test_crop_range_validation() -> None:
    assert CropRange(timedelta(0)).to_end_of_file
    with pytest.raises(ValueError):
        CropRange(timedelta(seconds=5), timedelta(seconds=5))
    with pytest.raises(ValueError):
        CropRange(timedelta(seconds=-1))


def test_crop_range_length() -> None:
    bounded = CropRange(timedelta(seconds=5), timedelta(seconds=10))
    assert bounded.length() == timedelta(seconds=5)

    open_ended = CropRange(timedelta(seconds=5))
    assert open_ended.length() is None
    assert open_ended.length(timedelta(seconds=12)) == timedelta(seconds=7)
    assert open_ended.length(timedelta(seconds=2)) == timedelta(0)


def test_format_timecode() -> None:
    assert format_timecode(timedelta(seconds=5)) == "00:00:05.000"
    assert format_timecode(timedelta(hours=1, minutes=2, seconds=3, milliseconds=45)) == "01:02:03.045"
    assert format_timecode(timedelta(seconds=-3)) == "00:00:00.000"


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("00:00:05.000", timedelta(seconds=5)),
        ("1:30", timedelta(minutes=1, seconds=30)),
        ("90", timedelta(seconds=90)),
        ("02:00:00.5", timedelta(hours=2, milliseconds=500)),
    ],
)
def test_parse_timecode(text: str, expected: timedelta) -> None:
    assert parse_timecode(text) == expected


@pytest.mark.parametrize("text", ["", "abc", "00:61:00", "1:2:3:4"])
def test_parse_timecode_rejects_garbage(text: str) -> None:
    with pytest.raises(ValueError):
        parse_timecode(text)


def test_parse_duration_line() -> None:
    line = "  Duration: 00:03:25.48, start: 0.000000, bitrate: 128 kb/s"
    assert parse_duration_line(line) == timedelta(minutes=3, seconds=25, milliseconds=480)
    assert parse_duration_line("  Duration: N/A, bitrate: N/A") is None


def test_format_size_human() -> None:
    assert format_size_human(None) == "Unknown"
    assert format_size_human(0) == "Unknown"
    assert format_size_human(512) == "512 B"
    assert format_size_human(1536) == "1.50 KB"


def test_file_size_text(tmp_path) -> None:
    target = tmp_path / "clip.mp4"
    target.write_bytes(b"x" * 2048)
    assert file_size_text(target) == "2.00 KB"
    assert file_size_text(tmp_path / "missing.mp4") == "Unknown"


def test_format_progress_line() -> None:
    assert format_progress_line(name="clip.mp4", percent=150, status="Working") == "clip.mp4  |  100%  |  Working"
