from __future__ import annotations

import argparse
import logging
import signal
import sys
from pathlib import Path
from typing import TextIO

from PySide6.QtCore import QCoreApplication, QObject, QTimer

from .core.config import APP_NAME, APP_VERSION, load_config
from .core.ffmpeg_service import FFmpegService
from .core.formatting import format_progress_line
from .core.models import AppConfig, CropRange, OperationStatus, status_text
from .core.timecode import format_timecode, parse_timecode
from .operations.base import Operation
from .operations.convert_operation import ConvertOperation, Transcoder
from .operations.pool import shared_executor, shutdown_shared_executor
from .operations.registry import running_operations
from .workers.operation_signals import OperationSignals

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2
EXIT_CANCELED = 130

_EXIT_CODES: dict[OperationStatus, int] = {
    OperationStatus.SUCCESS: EXIT_OK,
    OperationStatus.FAILED: EXIT_FAILED,
    OperationStatus.CANCELED: EXIT_CANCELED,
}


def exit_code_for_status(status: OperationStatus | str) -> int:
    try:
        normalized = OperationStatus(str(status or "").strip().lower())
    except ValueError:
        return EXIT_FAILED
    return _EXIT_CODES.get(normalized, EXIT_FAILED)


def build_crop_range(start_text: str | None, end_text: str | None) -> CropRange | None:
    start_raw = str(start_text or "").strip()
    end_raw = str(end_text or "").strip()
    if not start_raw:
        if end_raw:
            logger.warning("Ignoring --end %s because --start was not given", end_raw)
        return None
    start = parse_timecode(start_raw)
    end = parse_timecode(end_raw) if end_raw else None
    return CropRange(start=start, end=end)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=APP_NAME.lower(),
        description="Convert a media file with ffmpeg and optionally crop it.",
    )
    parser.add_argument("--version", action="version", version=f"{APP_NAME} {APP_VERSION}")
    parser.add_argument("-v", "--verbose", action="store_true", help="show ffmpeg output")
    subparsers = parser.add_subparsers(dest="command", required=True)

    convert = subparsers.add_parser("convert", help="convert INPUT into OUTPUT")
    convert.add_argument("input", help="file to convert")
    convert.add_argument("output", help="path of the converted file; the extension picks the format")
    convert.add_argument("--start", default=None, help="crop start, HH:MM:SS.mmm")
    convert.add_argument("--end", default=None, help="crop end, HH:MM:SS.mmm (default: end of file)")
    convert.add_argument(
        "--no-cleanup",
        action="store_true",
        help="keep the unfinished output file when stopped",
    )
    return parser


class AppController(QObject):
    def __init__(
        self,
        app: QCoreApplication,
        *,
        input_path: str,
        output_path: str,
        crop: CropRange | None = None,
        config: AppConfig | None = None,
        transcoder: Transcoder | None = None,
        verbose: bool = False,
        stream: TextIO | None = None,
    ) -> None:
        super().__init__()
        self._app = app
        self.config = config if config is not None else load_config()
        self._input_path = str(input_path)
        self._output_path = str(output_path)
        self._crop = crop
        self._verbose = bool(verbose)
        self._stream = stream if stream is not None else sys.stdout
        self.exit_code = EXIT_OK

        if transcoder is None:
            transcoder = FFmpegService(
                self.config.ffmpeg_path,
                stop_grace_seconds=self.config.stop_grace_seconds,
            )
        self.signals = OperationSignals(self)
        callbacks = self.signals.callbacks()
        self.operation = ConvertOperation(
            Path(self._output_path).name,
            transcoder=transcoder,
            executor=shared_executor(self.config.worker_threads),
            progress_cb=callbacks["progress_cb"],
            status_cb=callbacks["status_cb"],
            file_size_cb=callbacks["file_size_cb"],
            remove_cb=callbacks["remove_cb"],
            log_cb=callbacks["log_cb"],
        )
        self.signals.attach(self.operation)
        self.signals.progressChanged.connect(self._on_progress)
        self.signals.statusChanged.connect(self._on_status)
        self.signals.fileSizeChanged.connect(self._on_file_size)
        self.signals.logChanged.connect(self._on_log)
        self.signals.operationComplete.connect(self._on_complete)

    def run(self) -> None:
        crop_note = ""
        if self._crop is not None:
            end = format_timecode(self._crop.end) if self._crop.end is not None else "end"
            crop_note = f" (crop {format_timecode(self._crop.start)} - {end})"
        self._write(f"Converting {self._input_path} -> {self._output_path}{crop_note}")
        self.operation.convert(self._input_path, self._output_path, self._crop)

    def request_stop(self, *, cleanup: bool | None = None) -> bool:
        if not self.operation.can_stop():
            return False
        self._write("Stopping...")
        return self.operation.stop(
            remove=self.config.remove_on_stop,
            cleanup=self.config.cleanup_on_stop if cleanup is None else bool(cleanup),
        )

    def shutdown(self) -> None:
        running_operations().stop_all(cleanup=self.config.cleanup_on_stop)
        if not self.operation.wait(timeout=self.config.stop_grace_seconds):
            logger.warning("Worker did not finish within %.1f s", self.config.stop_grace_seconds)
        self.signals.detach()
        self.operation.dispose()
        shutdown_shared_executor(wait=False)

    def _write(self, text: str, *, end: str = "\n") -> None:
        self._stream.write(text + end)
        self._stream.flush()

    def _on_progress(self, percent: int) -> None:
        line = format_progress_line(
            name=self.operation.name,
            percent=percent,
            status=self.operation.status_text if self.operation.is_finished else "Working",
        )
        self._write(line, end="\r")

    def _on_status(self, text: str) -> None:
        logger.debug("%s status: %s", self.operation.name, text)

    def _on_file_size(self, text: str) -> None:
        self._write(f"Output size: {text}")

    def _on_log(self, message: str) -> None:
        if self._verbose:
            self._write(message)

    def _on_complete(self, operation: Operation, status: str) -> None:
        self.exit_code = exit_code_for_status(status)
        self._write("")
        self._write(f"{status_text(status)}: {self._output_path}")
        QTimer.singleShot(0, lambda: self._app.exit(self.exit_code))


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        crop = build_crop_range(args.start, args.end)
    except ValueError as exc:
        parser.print_usage(sys.stderr)
        sys.stderr.write(f"{parser.prog}: error: {exc}\n")
        return EXIT_USAGE

    app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])
    app.setApplicationName(APP_NAME)
    app.setApplicationVersion(APP_VERSION)

    controller = AppController(
        app,
        input_path=args.input,
        output_path=args.output,
        crop=crop,
        verbose=args.verbose,
    )
    if args.no_cleanup:
        controller.config.cleanup_on_stop = False

    previous_handler = signal.signal(signal.SIGINT, lambda *_: controller.request_stop())
    # Qt only yields to the interpreter between events; the timer lets Ctrl+C through.
    signal_pump = QTimer()
    signal_pump.timeout.connect(lambda: None)
    signal_pump.start(200)
    try:
        controller.run()
        app.exec()
        return controller.exit_code
    finally:
        signal_pump.stop()
        signal.signal(signal.SIGINT, previous_handler)
        controller.shutdown()


if __name__ == "__main__":
    raise SystemExit(main())
