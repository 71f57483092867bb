from typing import Protocol

from appclient.domain.command import CommandSpec
from appclient.domain.run import RunResult


class ProcessSupervisorPort(Protocol):
    def launch(self, spec: CommandSpec, timeout: float | None = None) -> RunResult: ...
