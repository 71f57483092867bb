from typing import Protocol

from appclient.domain.command import CommandSpec


class ClientLauncherPort(Protocol):
    def prepare(self) -> CommandSpec: ...
