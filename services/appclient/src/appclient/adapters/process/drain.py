from __future__ import annotations

import contextlib
import logging
import threading
from typing import IO

from appclient.adapters.errors import StreamReadError
from appclient.domain.capture import CapturedLine, DrainReport, StreamName
from appclient.ports.line_sink import LineSinkPort

logger = logging.getLogger(__name__)


def _strip_eol(raw: str) -> str:
    return raw[:-1] if raw.endswith("\n") else raw


class StreamDrainer:
    """Reads one child output stream to end-of-stream on its own thread.

    The drainer owns ``stream`` exclusively and closes it when done. A read
    failure ends this drainer only. A failing sink stops receiving lines but
    the stream is still read to end-of-stream, so the child never writes into
    a closed pipe. Both are logged and kept in :meth:`report`.
    """

    def __init__(self, stream: IO[str], name: StreamName, sink: LineSinkPort) -> None:
        self.name = name
        self._stream = stream
        self._sink = sink
        self._lines_read = 0
        self._finished = False
        self._error: StreamReadError | None = None
        self._sink_error: str | None = None
        self._thread = threading.Thread(
            target=self.run, name=f"{name.value} reader", daemon=True
        )

    def start(self) -> None:
        self._thread.start()

    def join(self, timeout: float | None = None) -> bool:
        self._thread.join(timeout)
        return not self._thread.is_alive()

    @property
    def alive(self) -> bool:
        return self._thread.is_alive()

    @property
    def error(self) -> StreamReadError | None:
        return self._error

    def _read_line(self) -> str:
        try:
            return self._stream.readline()
        except (OSError, ValueError) as e:
            self._error = StreamReadError(
                f"Failed reading {self.name.value}: {e}",
                details={"stream": self.name.value, "lines_read": self._lines_read},
                cause=e,
            )
            logger.warning("%s (after %d lines)", self._error, self._lines_read)
            return ""

    def _deliver(self, line: CapturedLine) -> None:
        # after a sink failure lines are still read, then discarded
        if self._sink_error is not None:
            return
        try:
            self._sink.emit(line)
        except Exception as e:
            self._sink_error = f"Line sink failed on {self.name.value}: {e!r}"
            logger.warning(
                "%s (at line %d), discarding the rest of %s",
                self._sink_error,
                line.index,
                self.name.value,
            )

    def run(self) -> None:
        try:
            for raw in iter(self._read_line, ""):
                self._deliver(CapturedLine(self.name, _strip_eol(raw), self._lines_read))
                self._lines_read += 1
        finally:
            with contextlib.suppress(OSError):
                self._stream.close()
            self._finished = True
            logger.debug(
                "Exiting %s reader, read %d lines", self.name.value, self._lines_read
            )

    def report(self) -> DrainReport:
        return DrainReport(
            stream=self.name,
            lines_read=self._lines_read,
            finished=self._finished,
            error=str(self._error) if self._error is not None else None,
            sink_error=self._sink_error,
        )
