from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
import os
from pathlib import Path
from types import MappingProxyType


@dataclass(frozen=True)
class CommandSpec:
    """A command line to supervise.

    ``env`` replaces the child's environment when given; ``None`` inherits the
    caller's environment unchanged.
    """

    argv: tuple[str, ...]
    cwd: Path | None = None
    env: Mapping[str, str] | None = None

    def __init__(
        self,
        argv: Sequence[str],
        cwd: str | Path | None = None,
        env: Mapping[str, str] | None = None,
    ):
        if isinstance(argv, str):
            raise TypeError("argv must be a sequence of strings, not a string")
        args = tuple(str(a) for a in argv)
        if not args or not args[0]:
            raise ValueError("argv must name an executable")
        object.__setattr__(self, "argv", args)
        object.__setattr__(self, "cwd", Path(cwd) if cwd is not None else None)
        frozen_env = (
            MappingProxyType({str(k): str(v) for k, v in env.items()})
            if env is not None
            else None
        )
        object.__setattr__(self, "env", frozen_env)

    @property
    def executable(self) -> str:
        return self.argv[0]

    def with_env_overlay(self, overlay: Mapping[str, str]) -> CommandSpec:
        base = dict(self.env) if self.env is not None else dict(os.environ)
        base.update(overlay)
        return CommandSpec(self.argv, cwd=self.cwd, env=base)

    def display(self) -> str:
        return " ".join(self.argv)
