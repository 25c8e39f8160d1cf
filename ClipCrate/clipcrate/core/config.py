from __future__ import annotations

import json
import os
from pathlib import Path

from .models import AppConfig

APP_NAME = "ClipCrate"
APP_VERSION = "1.0.0"

CONFIG_FILENAME = "ClipCrate_config.json"
ERROR_LOG_FILENAME = "errors.jsonl"
CONFIG_SCHEMA_VERSION = 1

WORKER_THREADS_MIN = 1
WORKER_THREADS_MAX = 16
STOP_GRACE_SECONDS_MIN = 0.5
STOP_GRACE_SECONDS_MAX = 60.0


def _paths():
    from . import paths as paths_module

    return paths_module


def _coerce_int(value: object, default: int, minimum: int, maximum: int) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        parsed = default
    return max(minimum, min(maximum, parsed))


def _coerce_float(value: object, default: float, minimum: float, maximum: float) -> float:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        parsed = default
    if parsed != parsed:
        parsed = default
    return max(minimum, min(maximum, parsed))


def _coerce_bool(value: object, *, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "1", "yes", "on"}:
            return True
        if lowered in {"false", "0", "no", "off"}:
            return False
    return default


def _coerce_non_empty_text(value: object, *, default: str) -> str:
    text = str(value or "").strip()
    return text if text else str(default)


def _default_worker_threads() -> int:
    cpu_count = os.cpu_count() or 4
    return max(WORKER_THREADS_MIN, min(WORKER_THREADS_MAX, int(cpu_count) // 2 or 1))


def default_config() -> AppConfig:
    return AppConfig(
        schema_version=CONFIG_SCHEMA_VERSION,
        ffmpeg_path="",
        output_location=str(_paths().default_output_dir()),
        cleanup_on_stop=True,
        remove_on_stop=False,
        worker_threads=_default_worker_threads(),
        stop_grace_seconds=5.0,
    )


def _sanitize_payload(payload: dict[str, object]) -> AppConfig:
    defaults = default_config()
    return AppConfig(
        schema_version=CONFIG_SCHEMA_VERSION,
        ffmpeg_path=str(payload.get("ffmpeg_path", defaults.ffmpeg_path) or "").strip(),
        output_location=_coerce_non_empty_text(
            payload.get("output_location", defaults.output_location),
            default=defaults.output_location,
        ),
        cleanup_on_stop=_coerce_bool(payload.get("cleanup_on_stop"), default=defaults.cleanup_on_stop),
        remove_on_stop=_coerce_bool(payload.get("remove_on_stop"), default=defaults.remove_on_stop),
        worker_threads=_coerce_int(
            payload.get("worker_threads", defaults.worker_threads),
            defaults.worker_threads,
            WORKER_THREADS_MIN,
            WORKER_THREADS_MAX,
        ),
        stop_grace_seconds=_coerce_float(
            payload.get("stop_grace_seconds", defaults.stop_grace_seconds),
            defaults.stop_grace_seconds,
            STOP_GRACE_SECONDS_MIN,
            STOP_GRACE_SECONDS_MAX,
        ),
    )


def config_path() -> Path:
    return _paths().runtime_storage_dir() / CONFIG_FILENAME


def _load_config_from_path(path: Path) -> AppConfig | None:
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        if isinstance(raw, dict):
            return _sanitize_payload(raw)
    except (OSError, UnicodeError, json.JSONDecodeError, TypeError, ValueError):
        return None
    return None


def load_config() -> AppConfig:
    primary = config_path()
    if primary.exists():
        loaded = _load_config_from_path(primary)
        if loaded is not None:
            return loaded
    return default_config()


def config_to_dict(config: AppConfig) -> dict[str, object]:
    return {
        "schema_version": CONFIG_SCHEMA_VERSION,
        "ffmpeg_path": str(config.ffmpeg_path or ""),
        "output_location": str(config.output_location),
        "cleanup_on_stop": bool(config.cleanup_on_stop),
        "remove_on_stop": bool(config.remove_on_stop),
        "worker_threads": int(config.worker_threads),
        "stop_grace_seconds": float(config.stop_grace_seconds),
    }


def save_config(config: AppConfig) -> str | None:
    payload = config_to_dict(config)
    path = config_path()
    tmp_path = path.with_suffix(f"{path.suffix}.tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        os.replace(str(tmp_path), str(path))
        return str(path)
    except (OSError, TypeError, ValueError):
        try:
            tmp_path.unlink(missing_ok=True)
        except OSError:
            pass
        return None
