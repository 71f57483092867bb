from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
import json
import os
from pathlib import Path
from typing import Any

import jsonschema
import yaml

from appclient.adapters.launcher.appclient import DEFAULT_CLIENT_JAR
from appclient.domain.diagnostics import Diagnostic, FileLocation, Severity
from appclient.domain.json_types import JsonDict, as_json_dict
from appclient.domain.result import Result
from appclient.domain.run import DEFAULT_TIMEOUT_SECONDS

CONFIG_FILENAME = "appclient.yaml"
SERVER_HOME_ENV = "GLASSFISH_HOME"
TIMEOUT_ENV = "APPCLIENT_TIMEOUT_SECONDS"


def schema_path() -> Path:
    return Path(__file__).resolve().parents[1] / "schemas" / "harness-config.schema.v1.json"


def _load_schema() -> JsonDict:
    return as_json_dict(json.loads(schema_path().read_text(encoding="utf-8")))


def _new_env() -> dict[str, str]:
    return {}


@dataclass(frozen=True)
class HarnessConfig:
    server_home: Path | None = None
    client_jar: Path = DEFAULT_CLIENT_JAR
    working_dir: Path | None = None
    env: dict[str, str] = field(default_factory=_new_env)
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    kill_grace_seconds: float = 5.0
    drain_grace_seconds: float = 5.0


def _optional_path(value: Any) -> Path | None:
    return Path(str(value)) if value else None


def _from_mapping(data: JsonDict) -> HarnessConfig:
    defaults = HarnessConfig()
    raw_env = data.get("env")
    env = {str(k): str(v) for k, v in raw_env.items()} if isinstance(raw_env, dict) else {}
    return HarnessConfig(
        server_home=_optional_path(data.get("server_home")),
        client_jar=Path(str(data.get("client_jar") or defaults.client_jar)),
        working_dir=_optional_path(data.get("working_dir")),
        env=env,
        timeout_seconds=float(data.get("timeout_seconds") or defaults.timeout_seconds),
        kill_grace_seconds=float(
            data.get("kill_grace_seconds") or defaults.kill_grace_seconds
        ),
        drain_grace_seconds=float(
            data.get("drain_grace_seconds") or defaults.drain_grace_seconds
        ),
    )


def validate_config_schema(data: JsonDict, path: Path | None = None) -> list[Diagnostic]:
    try:
        jsonschema.validate(data, _load_schema())
        return []
    except jsonschema.ValidationError as e:
        return [
            Diagnostic(
                code="CONFIG_SCHEMA_INVALID",
                rule="config.schema",
                severity=Severity.ERROR,
                message=e.message,
                location=FileLocation(str(path)) if path is not None else None,
                details=as_json_dict({"path": list(e.absolute_path)}),
            )
        ]


def _apply_env(config: HarnessConfig, environ: Mapping[str, str]) -> Result[HarnessConfig]:
    diagnostics: list[Diagnostic] = []
    server_home = environ.get(SERVER_HOME_ENV)
    if server_home:
        config = replace(config, server_home=Path(server_home))
    raw_timeout = environ.get(TIMEOUT_ENV)
    if raw_timeout:
        try:
            timeout = float(raw_timeout)
            if timeout <= 0:
                raise ValueError(raw_timeout)
            config = replace(config, timeout_seconds=timeout)
        except ValueError:
            diagnostics.append(
                Diagnostic(
                    code="CONFIG_ENV_INVALID",
                    rule="config.env",
                    severity=Severity.ERROR,
                    message=f"{TIMEOUT_ENV} must be a positive number, got {raw_timeout!r}",
                )
            )
    return Result(value=config, diagnostics=diagnostics)


def load_config(
    path: Path | None = None, environ: Mapping[str, str] | None = None
) -> Result[HarnessConfig]:
    """Read ``appclient.yaml`` (when present) and apply environment overrides.

    A missing file is not an error: every key has a default except
    ``server_home``, which the client launcher checks on its own.
    """
    config_path = path if path is not None else Path.cwd() / CONFIG_FILENAME
    env = os.environ if environ is None else environ
    if not config_path.exists():
        if path is not None:
            return Result(
                diagnostics=[
                    Diagnostic(
                        code="CONFIG_MISSING",
                        rule="config.exists",
                        severity=Severity.ERROR,
                        message=f"Config file not found: {config_path}",
                        location=FileLocation(str(config_path)),
                    )
                ]
            )
        return _apply_env(HarnessConfig(), env)
    try:
        raw: object = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        return Result(
            diagnostics=[
                Diagnostic(
                    code="CONFIG_PARSE_FAILED",
                    rule="config.parse",
                    severity=Severity.ERROR,
                    message=str(e),
                    location=FileLocation(str(config_path)),
                )
            ]
        )
    if not isinstance(raw, dict):
        return Result(
            diagnostics=[
                Diagnostic(
                    code="CONFIG_PARSE_FAILED",
                    rule="config.parse",
                    severity=Severity.ERROR,
                    message="Config must be a mapping",
                    location=FileLocation(str(config_path)),
                )
            ]
        )
    data = as_json_dict(raw)
    schema_diags = validate_config_schema(data, config_path)
    if schema_diags:
        return Result(diagnostics=schema_diags)
    return _apply_env(_from_mapping(data), env)
