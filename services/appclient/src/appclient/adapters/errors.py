from dataclasses import dataclass

from appclient.domain.json_types import JsonDict


@dataclass
class AdapterError(Exception):
    message: str
    details: JsonDict | None = None
    hint: str | None = None
    cause: Exception | None = None

    def __str__(self) -> str:
        return self.message


class SpawnError(AdapterError):
    pass


class StreamReadError(AdapterError):
    pass


class SupervisorTimeout(AdapterError):
    pass


class NonZeroExit(AdapterError):
    pass


class LauncherConfigError(AdapterError):
    pass


class ClientArtifactMissing(AdapterError):
    pass
