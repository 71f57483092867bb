from appclient.domain.command import CommandSpec


class StaticLauncher:
    def __init__(self, spec: CommandSpec) -> None:
        self.spec = spec

    def prepare(self) -> CommandSpec:
        return self.spec
