from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class StreamName(str, Enum):
    STDOUT = "stdout"
    STDERR = "stderr"

    @property
    def prefix(self) -> str:
        return f"[{self.value}]"


@dataclass(frozen=True)
class CapturedLine:
    stream: StreamName
    text: str
    # position within its own stream, starting at 0
    index: int

    def render(self) -> str:
        return f"{self.stream.prefix} {self.text}"


@dataclass(frozen=True)
class DrainReport:
    stream: StreamName
    lines_read: int
    finished: bool = True
    error: str | None = None
    sink_error: str | None = None
