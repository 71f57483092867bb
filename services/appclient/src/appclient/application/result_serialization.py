from __future__ import annotations

from dataclasses import asdict
from datetime import datetime, timezone

from appclient.domain.diagnostics import Diagnostic, Location
from appclient.domain.json_types import JsonDict, as_json_dict
from appclient.domain.result import Result
from appclient.domain.run import RunResult

RESULT_SCHEMA_VERSION = 1


def _serialize_location(location: Location | None) -> JsonDict | None:
    if location is None:
        return None
    return as_json_dict(asdict(location))


def serialize_diagnostic(diag: Diagnostic) -> JsonDict:
    return as_json_dict(
        {
            "id": diag.id,
            "code": diag.code,
            "rule": diag.rule,
            "severity": diag.severity.value,
            "message": diag.message,
            "hint": diag.hint,
            "details": diag.details,
            "is_execution": diag.is_execution,
            "location": _serialize_location(diag.location),
        }
    )


def serialize_result(result: Result[RunResult], command: str, args: list[str]) -> JsonDict:
    outcome = result.value
    return as_json_dict(
        {
            "result_schema_version": RESULT_SCHEMA_VERSION,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "command": command,
            "args": args,
            "exit_code": result.exit_code,
            "outcome": outcome.kind if outcome is not None else None,
            "diagnostics": [serialize_diagnostic(d) for d in result.diagnostics],
            "artifacts": result.artifacts,
        }
    )
