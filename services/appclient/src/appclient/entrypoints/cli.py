from dataclasses import replace
from pathlib import Path
import json
import logging

import typer

from appclient.adapters.launcher.appclient import AppClientLauncher
from appclient.adapters.launcher.static import StaticLauncher
from appclient.adapters.process.supervisor import ThreadedProcessSupervisor
from appclient.adapters.sinks.lines import EchoLineSink
from appclient.application.config import load_config
from appclient.application.result_serialization import serialize_result
from appclient.application.run_client import run_client
from appclient.domain.command import CommandSpec
from appclient.domain.result import Result
from appclient.domain.run import DEFAULT_TIMEOUT_SECONDS, RunResult

app = typer.Typer(add_completion=False)


def _parse_env(pairs: list[str]) -> dict[str, str]:
    env: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"expected KEY=VALUE, got {pair!r}", param_hint="--env")
        env[key] = value
    return env


def _check_timeout(timeout: float | None) -> None:
    if timeout is not None and timeout <= 0:
        raise typer.BadParameter("must be positive", param_hint="--timeout")


def _report(result: Result[RunResult], command: str, args: list[str], json_output: bool) -> None:
    if json_output:
        typer.echo(json.dumps(serialize_result(result, command=command, args=args)))
        return
    for diag in result.diagnostics:
        typer.echo(f"{diag.severity.value}: {diag.code}: {diag.message}", err=True)
        if diag.hint:
            typer.echo(f"  hint: {diag.hint}", err=True)
    if result.value is not None and result.value.ok:
        typer.echo("Client process finished")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v")) -> None:
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )


@app.command()
def run(
    command: list[str] = typer.Argument(..., help="Command to run, after --"),
    timeout: float = typer.Option(DEFAULT_TIMEOUT_SECONDS, "--timeout"),
    cwd: Path | None = typer.Option(None, "--cwd"),
    env: list[str] = typer.Option(None, "--env", help="KEY=VALUE added to the inherited environment"),
    json_output: bool = typer.Option(False, "--json"),
):
    _check_timeout(timeout)
    overlay = _parse_env(env or [])
    spec = CommandSpec(command, cwd=cwd)
    if overlay:
        spec = spec.with_env_overlay(overlay)
    sink = EchoLineSink(lambda text: typer.echo(text, err=json_output))
    supervisor = ThreadedProcessSupervisor(timeout=timeout, sink=sink)
    result = run_client(StaticLauncher(spec), supervisor)
    _report(result, "run", list(command), json_output)
    raise typer.Exit(result.exit_code)


@app.command()
def client(
    config: Path | None = typer.Option(None, "--config"),
    server_home: Path | None = typer.Option(None, "--server-home"),
    client_jar: Path | None = typer.Option(None, "--client-jar"),
    timeout: float | None = typer.Option(None, "--timeout"),
    json_output: bool = typer.Option(False, "--json"),
):
    _check_timeout(timeout)
    loaded = load_config(config)
    if loaded.value is None or loaded.has_errors():
        failed: Result[RunResult] = Result(diagnostics=loaded.diagnostics)
        _report(failed, "client", [], json_output)
        raise typer.Exit(failed.exit_code)

    settings = loaded.value
    if server_home is not None:
        settings = replace(settings, server_home=server_home)
    if client_jar is not None:
        settings = replace(settings, client_jar=client_jar)
    if timeout is not None:
        settings = replace(settings, timeout_seconds=timeout)

    launcher = AppClientLauncher(
        settings.server_home,
        client_jar=settings.client_jar,
        working_dir=settings.working_dir,
        env=settings.env,
    )
    supervisor = ThreadedProcessSupervisor(
        timeout=settings.timeout_seconds,
        kill_grace=settings.kill_grace_seconds,
        drain_grace=settings.drain_grace_seconds,
        sink=EchoLineSink(lambda text: typer.echo(text, err=json_output)),
    )
    result = run_client(launcher, supervisor)
    _report(result, "client", [], json_output)
    raise typer.Exit(result.exit_code)
