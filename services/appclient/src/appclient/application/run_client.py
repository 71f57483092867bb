from __future__ import annotations

import logging

from appclient.adapters.errors import AdapterError
from appclient.application.verdict import diagnose
from appclient.domain.command import CommandSpec
from appclient.domain.diagnostics import Diagnostic, Severity
from appclient.domain.json_types import JsonDict, as_json_dict
from appclient.domain.run import Completed, RunResult, TimedOut
from appclient.domain.result import Result
from appclient.ports.client_launcher import ClientLauncherPort
from appclient.ports.process_supervisor import ProcessSupervisorPort

logger = logging.getLogger(__name__)


def run_artifact(spec: CommandSpec, outcome: RunResult) -> JsonDict:
    return as_json_dict(
        {
            "kind": "client_run",
            "argv": list(spec.argv),
            "cwd": str(spec.cwd) if spec.cwd is not None else None,
            "outcome": outcome.kind,
            "ok": outcome.ok,
            "exit_code": outcome.exit_code if isinstance(outcome, Completed) else None,
            "pid": outcome.pid if isinstance(outcome, (Completed, TimedOut)) else None,
            "message": outcome.failure_message,
            "drains": [
                {
                    "stream": d.stream.value,
                    "lines_read": d.lines_read,
                    "finished": d.finished,
                    "error": d.error,
                    "sink_error": d.sink_error,
                }
                for d in outcome.drains
            ],
        }
    )


def run_client(
    launcher: ClientLauncherPort,
    supervisor: ProcessSupervisorPort,
    timeout: float | None = None,
) -> Result[RunResult]:
    try:
        spec = launcher.prepare()
    except AdapterError as e:
        return Result(
            diagnostics=[
                Diagnostic(
                    code="CLIENT_LAUNCH_FAILED",
                    rule="client.launch",
                    severity=Severity.ERROR,
                    message=str(e),
                    hint=e.hint,
                    details=e.details,
                    is_execution=True,
                )
            ]
        )

    logger.info("Running client: %s", spec.display())
    outcome = supervisor.launch(spec, timeout=timeout)
    if outcome.ok:
        logger.info("Client run finished")
    else:
        logger.warning("Client run failed: %s", outcome.failure_message)
    return Result(
        value=outcome,
        diagnostics=diagnose(outcome, spec),
        artifacts=[run_artifact(spec, outcome)],
    )
