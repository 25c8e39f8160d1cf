from __future__ import annotations

from pathlib import Path


def format_size_human(size_bytes: int | None) -> str:
    if size_bytes is None:
        return "Unknown"
    try:
        value = float(int(size_bytes))
    except Exception:
        return "Unknown"
    if value <= 0:
        return "Unknown"
    units = ("B", "KB", "MB", "GB", "TB")
    unit_index = 0
    while value >= 1024.0 and unit_index < (len(units) - 1):
        value /= 1024.0
        unit_index += 1
    if unit_index == 0:
        return f"{int(value)} {units[unit_index]}"
    return f"{value:.2f} {units[unit_index]}"


def file_size_text(path: str | Path) -> str:
    try:
        return format_size_human(Path(path).stat().st_size)
    except (OSError, ValueError):
        return "Unknown"


def format_progress_line(*, name: str, percent: int, status: str) -> str:
    bounded = max(0, min(100, int(percent)))
    label = str(name or "").strip() or "operation"
    return f"{label}  |  {bounded:3d}%  |  {status}"
