from __future__ import annotations

import os
import re
import subprocess
import threading
from collections.abc import Callable
from datetime import timedelta
from pathlib import Path

from .paths import resolve_binary
from .timecode import format_timecode, parse_duration_line

ProgressCallback = Callable[[int, "subprocess.Popen[str] | None"], None]
LogCallback = Callable[[str], None]

QUIT_COMMAND = "q"
_PROGRESS_KEYS = frozenset(
    {
        "bitrate",
        "drop_frames",
        "dup_frames",
        "fps",
        "frame",
        "out_time",
        "out_time_ms",
        "out_time_us",
        "progress",
        "speed",
        "total_size",
    }
)
_STREAM_KEY_RE = re.compile(r"^stream_\d+_\d+_q$")
_IN_PLACE_SUFFIX = ".cropping"


class TranscoderError(RuntimeError):
    pass


class TranscoderNotFoundError(TranscoderError):
    pass


def is_process_running(process: subprocess.Popen[str] | None) -> bool:
    return process is not None and process.poll() is None


def send_quit(process: subprocess.Popen[str] | None) -> bool:
    """Ask a running ffmpeg to finish by typing ``q`` on its stdin."""
    if not is_process_running(process):
        return False
    stdin = process.stdin
    if stdin is None or stdin.closed:
        return False
    stdin.write(f"{QUIT_COMMAND}\n")
    stdin.flush()
    return True


def close_pipes(process: subprocess.Popen[str] | None) -> None:
    if process is None:
        return
    for pipe in (process.stdin, process.stdout):
        try:
            if pipe:
                pipe.close()
        except Exception:
            pass


def kill_process_tree(process: subprocess.Popen[str]) -> None:
    if process.poll() is not None:
        return
    try:
        if os.name == "nt":
            subprocess.run(
                ["taskkill", "/F", "/T", "/PID", str(process.pid)],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                check=False,
            )
        else:
            process.terminate()
            process.wait(timeout=1.0)
    except Exception:
        try:
            process.kill()
        except Exception:
            pass


def _percent_of(position_us: int, total: timedelta | None) -> int | None:
    if total is None:
        return None
    total_us = int(total.total_seconds() * 1_000_000)
    if total_us <= 0:
        return None
    return max(0, min(100, int((position_us * 100) / total_us)))


class FFmpegService:
    def __init__(self, ffmpeg_path: str = "", *, stop_grace_seconds: float = 5.0) -> None:
        self._ffmpeg_path = str(ffmpeg_path or "").strip()
        self._stop_grace_seconds = max(0.1, float(stop_grace_seconds))

    def resolve_executable(self) -> str:
        executable = resolve_binary("ffmpeg", override=self._ffmpeg_path)
        if not executable:
            raise TranscoderNotFoundError(
                "ffmpeg was not found. Install ffmpeg or set ffmpeg_path in the config file."
            )
        return executable

    @staticmethod
    def build_convert_command(executable: str, input_path: str, output_path: str) -> list[str]:
        return [
            executable,
            "-hide_banner",
            "-nostats",
            "-progress",
            "pipe:1",
            "-y",
            "-i",
            str(input_path),
            str(output_path),
        ]

    @staticmethod
    def build_crop_command(
        executable: str,
        input_path: str,
        output_path: str,
        start: timedelta,
        end: timedelta | None = None,
    ) -> list[str]:
        command = [
            executable,
            "-hide_banner",
            "-nostats",
            "-progress",
            "pipe:1",
            "-y",
            "-ss",
            format_timecode(start),
        ]
        if end is not None:
            command.extend(["-to", format_timecode(end)])
        command.extend(["-i", str(input_path), "-c", "copy", str(output_path)])
        return command

    def convert(
        self,
        input_path: str,
        output_path: str,
        *,
        cancel_token: threading.Event,
        progress_cb: ProgressCallback | None = None,
        log_cb: LogCallback | None = None,
    ) -> None:
        source = Path(input_path)
        if not source.is_file():
            raise FileNotFoundError(f"Input file does not exist: {input_path}")
        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        command = self.build_convert_command(self.resolve_executable(), input_path, output_path)
        self._run(
            command,
            cancel_token,
            total_for=lambda duration: duration,
            progress_cb=progress_cb,
            log_cb=log_cb,
        )

    def crop(
        self,
        input_path: str,
        output_path: str,
        start: timedelta,
        end: timedelta | None = None,
        *,
        cancel_token: threading.Event,
        progress_cb: ProgressCallback | None = None,
        log_cb: LogCallback | None = None,
    ) -> None:
        source = Path(input_path)
        if not source.is_file():
            raise FileNotFoundError(f"Input file does not exist: {input_path}")
        target = Path(output_path)
        in_place = source.resolve() == target.resolve()
        write_path = target.with_name(f"{target.stem}{_IN_PLACE_SUFFIX}{target.suffix}") if in_place else target
        write_path.parent.mkdir(parents=True, exist_ok=True)

        def total_for(duration: timedelta | None) -> timedelta | None:
            if end is not None:
                return end - start
            if duration is None:
                return None
            return max(timedelta(0), duration - start)

        command = self.build_crop_command(self.resolve_executable(), input_path, str(write_path), start, end)
        replaced = False
        try:
            self._run(
                command,
                cancel_token,
                total_for=total_for,
                progress_cb=progress_cb,
                log_cb=log_cb,
            )
            if in_place and not cancel_token.is_set():
                os.replace(str(write_path), str(target))
                replaced = True
        finally:
            if in_place and not replaced:
                try:
                    write_path.unlink(missing_ok=True)
                except OSError:
                    pass

    def _run(
        self,
        command: list[str],
        cancel_token: threading.Event,
        *,
        total_for: Callable[[timedelta | None], timedelta | None],
        progress_cb: ProgressCallback | None,
        log_cb: LogCallback | None,
    ) -> None:
        if cancel_token.is_set():
            return
        if log_cb:
            log_cb("$ " + subprocess.list2cmdline(command))
        creationflags = subprocess.CREATE_NO_WINDOW if os.name == "nt" else 0
        try:
            process = subprocess.Popen(
                command,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
                creationflags=creationflags,
            )
        except FileNotFoundError as exc:
            raise TranscoderNotFoundError(f"Unable to start ffmpeg: {exc}") from exc

        if progress_cb:
            progress_cb(0, process)

        total: timedelta | None = None
        last_percent = 0
        last_line = ""
        quit_sent = False
        try:
            stream = process.stdout
            if stream is None:
                raise TranscoderError("ffmpeg produced no output stream")

            for line in iter(stream.readline, ""):
                if cancel_token.is_set() and not quit_sent:
                    try:
                        quit_sent = send_quit(process)
                    except OSError:
                        quit_sent = True
                clean = line.strip()
                if not clean:
                    continue
                if total is None:
                    duration = parse_duration_line(clean)
                    if duration is not None:
                        total = total_for(duration)
                key, sep, value = clean.partition("=")
                if sep and (key in _PROGRESS_KEYS or _STREAM_KEY_RE.match(key)):
                    percent: int | None = None
                    if key == "out_time_us":
                        try:
                            percent = _percent_of(int(value), total)
                        except ValueError:
                            percent = None
                    elif key == "progress" and value == "end":
                        percent = 100
                    if percent is not None and percent != last_percent and progress_cb:
                        last_percent = percent
                        progress_cb(percent, process)
                    continue
                last_line = clean
                if log_cb:
                    log_cb(clean)

            try:
                return_code = process.wait(timeout=self._stop_grace_seconds)
            except subprocess.TimeoutExpired:
                kill_process_tree(process)
                return_code = process.wait()
        finally:
            if process.poll() is None:
                kill_process_tree(process)
            close_pipes(process)

        if cancel_token.is_set():
            return
        if return_code != 0:
            detail = f": {last_line}" if last_line else ""
            raise TranscoderError(f"ffmpeg exited with {return_code}{detail}")
