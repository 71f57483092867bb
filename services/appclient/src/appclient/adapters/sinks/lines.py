from __future__ import annotations

from collections.abc import Callable
import logging
import threading

from appclient.domain.capture import CapturedLine, StreamName
from appclient.ports.line_sink import LineSinkPort

logger = logging.getLogger(__name__)


class EchoLineSink:
    """Writes each line with its ``[stdout]``/``[stderr]`` prefix."""

    def __init__(self, echo: Callable[[str], object]) -> None:
        self._echo = echo

    def emit(self, line: CapturedLine) -> None:
        self._echo(line.render())


class LoggingLineSink:
    def __init__(
        self,
        log: logging.Logger | None = None,
        stdout_level: int = logging.INFO,
        stderr_level: int = logging.INFO,
    ) -> None:
        self._log = log or logger
        self._levels = {StreamName.STDOUT: stdout_level, StreamName.STDERR: stderr_level}

    def emit(self, line: CapturedLine) -> None:
        self._log.log(self._levels[line.stream], "%s", line.render())


class BufferingLineSink:
    """Keeps every line in memory; meant for assertions in tests."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._lines: list[CapturedLine] = []

    def emit(self, line: CapturedLine) -> None:
        with self._lock:
            self._lines.append(line)

    def lines(self, stream: StreamName | None = None) -> list[CapturedLine]:
        with self._lock:
            snapshot = list(self._lines)
        if stream is None:
            return snapshot
        return [line for line in snapshot if line.stream == stream]

    def texts(self, stream: StreamName) -> list[str]:
        return [line.text for line in self.lines(stream)]


class TeeLineSink:
    def __init__(self, *sinks: LineSinkPort) -> None:
        self._sinks = sinks

    def emit(self, line: CapturedLine) -> None:
        for sink in self._sinks:
            sink.emit(line)
