from __future__ import annotations

import os
import shutil
import sys
from functools import lru_cache
from pathlib import Path

from .config import APP_NAME, ERROR_LOG_FILENAME


@lru_cache(maxsize=1)
def app_dir() -> Path:
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent
    return Path(__file__).resolve().parents[2]


@lru_cache(maxsize=1)
def appdata_dir() -> Path:
    base = os.environ.get("LOCALAPPDATA")
    if base:
        return Path(base).resolve() / APP_NAME
    return Path.home() / APP_NAME


def default_output_dir() -> Path:
    return Path.home() / "Videos" / APP_NAME


@lru_cache(maxsize=1)
def runtime_storage_dir() -> Path:
    target = appdata_dir()
    try:
        target.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise RuntimeError(
            f"Unable to create LOCALAPPDATA storage directory: {target}. "
            "Check folder permissions and available disk space."
        ) from exc
    return target


def error_log_path() -> Path:
    return runtime_storage_dir() / ERROR_LOG_FILENAME


def _binary_name_candidates(binary_name: str) -> list[str]:
    if os.name == "nt" and not binary_name.lower().endswith(".exe"):
        return [f"{binary_name}.exe", binary_name]
    return [binary_name]


def _unique_paths(paths: list[Path]) -> list[Path]:
    seen: set[Path] = set()
    unique: list[Path] = []
    for path in paths:
        resolved = path.resolve()
        if resolved in seen:
            continue
        seen.add(resolved)
        unique.append(resolved)
    return unique


def resolve_binary(binary_name: str, *, override: str = "") -> str | None:
    explicit = str(override or "").strip()
    if explicit:
        candidate = Path(explicit).expanduser()
        if candidate.is_file():
            return str(candidate.resolve())
        found = shutil.which(explicit)
        return str(Path(found).resolve()) if found else None

    names = _binary_name_candidates(binary_name)
    search_dirs = _unique_paths([runtime_storage_dir(), app_dir(), appdata_dir()])
    for base in search_dirs:
        for name in names:
            candidate = base / name
            if candidate.is_file():
                return str(candidate)

    for name in names:
        candidate = shutil.which(name)
        if candidate:
            return str(Path(candidate).resolve())
    return None
