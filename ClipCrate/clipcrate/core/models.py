from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from enum import Flag, StrEnum, auto


class OperationStatus(StrEnum):
    IDLE = "idle"
    WORKING = "working"
    PAUSED = "paused"
    CANCELED = "canceled"
    FAILED = "failed"
    SUCCESS = "success"


TERMINAL_OPERATION_STATES = frozenset(
    {
        OperationStatus.CANCELED,
        OperationStatus.FAILED,
        OperationStatus.SUCCESS,
    }
)

_STATUS_TEXT: dict[OperationStatus, str] = {
    OperationStatus.CANCELED: "Canceled",
    OperationStatus.FAILED: "Failed",
    OperationStatus.SUCCESS: "Completed",
}


def status_text(status: OperationStatus | str) -> str:
    try:
        normalized = OperationStatus(str(status or "").strip().lower())
    except ValueError:
        return "???"
    return _STATUS_TEXT.get(normalized, "???")


def is_terminal_status(status: OperationStatus | str) -> bool:
    return str(status or "").strip().lower() in TERMINAL_OPERATION_STATES


class OperationCapability(Flag):
    NONE = 0
    OPEN = auto()
    PAUSE = auto()
    RESUME = auto()
    STOP = auto()


@dataclass(slots=True, frozen=True)
class CropRange:
    """Time range to keep when cropping. ``end=None`` keeps everything after ``start``."""

    start: timedelta
    end: timedelta | None = None

    def __post_init__(self) -> None:
        if self.start < timedelta(0):
            raise ValueError("Crop start must not be negative")
        if self.end is not None and self.end <= self.start:
            raise ValueError("Crop end must be after crop start")

    @property
    def to_end_of_file(self) -> bool:
        return self.end is None

    def length(self, total: timedelta | None = None) -> timedelta | None:
        if self.end is not None:
            return self.end - self.start
        if total is None:
            return None
        return max(timedelta(0), total - self.start)


@dataclass(slots=True)
class OperationResult:
    status: OperationStatus
    output_path: str = ""
    error: str = ""
    crop: CropRange | None = None


@dataclass(slots=True)
class AppConfig:
    schema_version: int
    ffmpeg_path: str
    output_location: str
    cleanup_on_stop: bool
    remove_on_stop: bool
    worker_threads: int
    stop_grace_seconds: float = 5.0
