from __future__ import annotations

import re
from datetime import timedelta

_TIMECODE_RE = re.compile(
    r"^\s*(?:(?:(?P<hours>\d+):)?(?P<minutes>\d{1,2}):)?(?P<seconds>\d{1,2}(?:\.\d+)?)\s*$"
)
_DURATION_RE = re.compile(r"Duration:\s*(?P<value>\d+:\d{2}:\d{2}(?:\.\d+)?)")


def format_timecode(value: timedelta) -> str:
    """Format as ``HH:MM:SS.mmm``, the form ffmpeg accepts for ``-ss``/``-to``."""
    total_ms = max(0, int(round(value.total_seconds() * 1000)))
    hours, remainder = divmod(total_ms, 3_600_000)
    minutes, remainder = divmod(remainder, 60_000)
    seconds, millis = divmod(remainder, 1000)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}.{millis:03d}"


def parse_timecode(text: str) -> timedelta:
    raw = str(text or "").strip()
    match = _TIMECODE_RE.match(raw)
    if not match:
        raise ValueError(f"Invalid time position: {text!r}")
    hours = int(match.group("hours") or 0)
    minutes = int(match.group("minutes") or 0)
    seconds = float(match.group("seconds"))
    if match.group("minutes") is not None and seconds >= 60:
        raise ValueError(f"Invalid time position: {text!r}")
    if match.group("hours") is not None and minutes >= 60:
        raise ValueError(f"Invalid time position: {text!r}")
    return timedelta(hours=hours, minutes=minutes, seconds=seconds)


def parse_duration_line(line: str) -> timedelta | None:
    match = _DURATION_RE.search(str(line or ""))
    if not match:
        return None
    try:
        return parse_timecode(match.group("value"))
    except ValueError:
        return None
