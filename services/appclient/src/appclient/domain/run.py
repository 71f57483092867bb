from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, TypeAlias

from appclient.domain.capture import DrainReport

DEFAULT_TIMEOUT_SECONDS = 1000.0


class RunState(str, Enum):
    NOT_STARTED = "not_started"
    SPAWNING = "spawning"
    RUNNING = "running"
    SPAWN_FAILED = "spawn_failed"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"

    @property
    def terminal(self) -> bool:
        return not TRANSITIONS[self]


TRANSITIONS: dict[RunState, frozenset[RunState]] = {
    RunState.NOT_STARTED: frozenset({RunState.SPAWNING}),
    RunState.SPAWNING: frozenset({RunState.SPAWN_FAILED, RunState.RUNNING}),
    RunState.RUNNING: frozenset({RunState.COMPLETED, RunState.TIMED_OUT}),
    RunState.SPAWN_FAILED: frozenset(),
    RunState.COMPLETED: frozenset(),
    RunState.TIMED_OUT: frozenset(),
}


def advance(current: RunState, target: RunState) -> RunState:
    if target not in TRANSITIONS[current]:
        raise ValueError(f"Illegal run transition: {current.value} -> {target.value}")
    return target


def _no_drains() -> tuple[DrainReport, ...]:
    return ()


@dataclass(frozen=True)
class Completed:
    kind: ClassVar[str] = "completed"

    exit_code: int
    pid: int | None = None
    drains: tuple[DrainReport, ...] = field(default_factory=_no_drains)

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def failure_message(self) -> str | None:
        if self.ok:
            return None
        return f"non-zero exit {self.exit_code}"


@dataclass(frozen=True)
class TimedOut:
    kind: ClassVar[str] = "timed_out"

    timeout: float
    pid: int | None = None
    drains: tuple[DrainReport, ...] = field(default_factory=_no_drains)

    @property
    def ok(self) -> bool:
        return False

    @property
    def failure_message(self) -> str:
        return "timed out"


@dataclass(frozen=True)
class SpawnFailed:
    kind: ClassVar[str] = "spawn_failed"

    cause: str
    errno: int | None = None

    @property
    def ok(self) -> bool:
        return False

    @property
    def failure_message(self) -> str:
        return f"spawn failed: {self.cause}"

    @property
    def drains(self) -> tuple[DrainReport, ...]:
        return ()


RunResult: TypeAlias = Completed | TimedOut | SpawnFailed


def final_state(result: RunResult) -> RunState:
    if isinstance(result, SpawnFailed):
        return RunState.SPAWN_FAILED
    if isinstance(result, TimedOut):
        return RunState.TIMED_OUT
    return RunState.COMPLETED
