from typing import Protocol

from appclient.domain.capture import CapturedLine


class LineSinkPort(Protocol):
    def emit(self, line: CapturedLine) -> None: ...
