from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, TypeVar

from appclient.domain.diagnostics import Diagnostic, Severity
from appclient.domain.json_types import JsonDict

T = TypeVar("T")


def _new_diagnostics() -> list[Diagnostic]:
    return []


def _new_artifacts() -> list[JsonDict]:
    return []


@dataclass
class Result(Generic[T]):
    value: T | None = None
    diagnostics: list[Diagnostic] = field(default_factory=_new_diagnostics)
    artifacts: list[JsonDict] = field(default_factory=_new_artifacts)

    @property
    def exit_code(self) -> int:
        errors = [d for d in self.diagnostics if d.severity == Severity.ERROR]
        if any(d.is_execution for d in errors):
            return 3
        if errors:
            return 2
        return 0

    def has_errors(self) -> bool:
        return self.exit_code != 0
