from __future__ import annotations

from appclient.adapters.errors import NonZeroExit, SpawnError, SupervisorTimeout
from appclient.domain.command import CommandSpec
from appclient.domain.diagnostics import CommandLocation, Diagnostic, Severity
from appclient.domain.json_types import as_json_dict
from appclient.domain.run import Completed, RunResult, SpawnFailed, TimedOut


def diagnose(outcome: RunResult, spec: CommandSpec | None = None) -> list[Diagnostic]:
    location = CommandLocation(spec.argv) if spec is not None else None
    diagnostics: list[Diagnostic] = []
    if isinstance(outcome, SpawnFailed):
        diagnostics.append(
            Diagnostic(
                code="CLIENT_SPAWN_FAILED",
                rule="client.spawn",
                severity=Severity.ERROR,
                message=outcome.failure_message,
                location=location,
                details=as_json_dict({"errno": outcome.errno}),
                hint="Check that the client runner exists and is executable",
                is_execution=True,
            )
        )
        return diagnostics
    if isinstance(outcome, TimedOut):
        diagnostics.append(
            Diagnostic(
                code="CLIENT_TIMED_OUT",
                rule="client.timeout",
                severity=Severity.ERROR,
                message=outcome.failure_message,
                location=location,
                details=as_json_dict({"timeout": outcome.timeout, "pid": outcome.pid}),
            )
        )
    elif not outcome.ok:
        diagnostics.append(
            Diagnostic(
                code="CLIENT_NONZERO_EXIT",
                rule="client.exit_code",
                severity=Severity.ERROR,
                message=outcome.failure_message or "",
                location=location,
                details=as_json_dict({"exit_code": outcome.exit_code}),
            )
        )
    for drain in outcome.drains:
        if drain.sink_error is not None:
            diagnostics.append(
                Diagnostic(
                    code="CLIENT_OUTPUT_SINK_FAILED",
                    rule="client.output",
                    severity=Severity.WARN,
                    message=drain.sink_error,
                    location=location,
                    details=as_json_dict({"stream": drain.stream.value}),
                )
            )
        if drain.error is None:
            continue
        diagnostics.append(
            Diagnostic(
                code="CLIENT_STREAM_READ_FAILED",
                rule="client.output",
                severity=Severity.WARN,
                message=drain.error,
                location=location,
                details=as_json_dict(
                    {"stream": drain.stream.value, "lines_read": drain.lines_read}
                ),
            )
        )
    return diagnostics


def raise_for_outcome(outcome: RunResult) -> None:
    """Raise the error matching a failed run; do nothing for ``Completed(0)``."""
    if isinstance(outcome, SpawnFailed):
        raise SpawnError(
            outcome.failure_message, details=as_json_dict({"errno": outcome.errno})
        )
    if isinstance(outcome, TimedOut):
        raise SupervisorTimeout(
            outcome.failure_message,
            details=as_json_dict({"timeout": outcome.timeout, "pid": outcome.pid}),
        )
    if isinstance(outcome, Completed) and not outcome.ok:
        raise NonZeroExit(
            outcome.failure_message or "",
            details=as_json_dict({"exit_code": outcome.exit_code}),
        )
