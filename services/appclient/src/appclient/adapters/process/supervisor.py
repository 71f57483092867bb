from __future__ import annotations

import logging
import os
import signal
import subprocess

from appclient.adapters.errors import SpawnError
from appclient.adapters.process.drain import StreamDrainer
from appclient.adapters.sinks.lines import LoggingLineSink
from appclient.domain.capture import DrainReport, StreamName
from appclient.domain.command import CommandSpec
from appclient.domain.run import (
    DEFAULT_TIMEOUT_SECONDS,
    Completed,
    RunResult,
    RunState,
    SpawnFailed,
    TimedOut,
    advance,
    final_state,
)
from appclient.ports.line_sink import LineSinkPort

logger = logging.getLogger(__name__)

_POSIX = os.name == "posix"


def _require_positive(name: str, value: float) -> float:
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value!r}")
    return float(value)


def _signal_group(proc: subprocess.Popen[str], force: bool) -> None:
    """Signal the child's whole process group, or just the child off POSIX."""
    if not _POSIX:
        if proc.poll() is None:
            if force:
                proc.kill()
            else:
                proc.terminate()
        return
    sig = signal.SIGKILL if force else signal.SIGTERM
    try:
        # the child leads its own session, so its pgid is its pid
        os.killpg(proc.pid, sig)
    except ProcessLookupError:
        pass
    except PermissionError:
        if proc.poll() is None:
            proc.send_signal(sig)


class SupervisedRun:
    """One attempt at running one command; never reused."""

    def __init__(
        self,
        spec: CommandSpec,
        sink: LineSinkPort,
        kill_grace: float,
        drain_grace: float,
    ) -> None:
        self.spec = spec
        self.state = RunState.NOT_STARTED
        self._sink = sink
        self._kill_grace = kill_grace
        self._drain_grace = drain_grace

    def _to(self, target: RunState) -> None:
        self.state = advance(self.state, target)

    def _finish(self, result: RunResult) -> RunResult:
        self._to(final_state(result))
        return result

    def _spawn(self) -> subprocess.Popen[str]:
        isolation: dict[str, object] = {}
        if _POSIX:
            isolation["start_new_session"] = True
        else:
            isolation["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
        return subprocess.Popen(
            list(self.spec.argv),
            cwd=self.spec.cwd,
            env=dict(self.spec.env) if self.spec.env is not None else None,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
            **isolation,  # type: ignore[arg-type]
        )

    def execute(self, timeout: float) -> RunResult:
        self._to(RunState.SPAWNING)
        try:
            proc = self._spawn()
        except OSError as e:
            err = SpawnError(
                f"Could not start {self.spec.executable}",
                details={"argv": list(self.spec.argv), "cwd": str(self.spec.cwd)},
                cause=e,
            )
            logger.error("%s: %s", err, e)
            return self._finish(SpawnFailed(cause=str(e), errno=e.errno))
        self._to(RunState.RUNNING)
        logger.info("Started process %d: %s", proc.pid, self.spec.display())

        if proc.stdout is None or proc.stderr is None:
            self._terminate(proc)
            raise RuntimeError(f"Process {proc.pid} was started without output pipes")
        drainers = [
            StreamDrainer(proc.stdout, StreamName.STDOUT, self._sink),
            StreamDrainer(proc.stderr, StreamName.STDERR, self._sink),
        ]
        for drainer in drainers:
            drainer.start()

        try:
            exit_code = proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            logger.warning("Process %d timed out after %ss", proc.pid, timeout)
            self._terminate(proc)
            drains = self._finish_drains(proc, drainers)
            return self._finish(TimedOut(timeout=timeout, pid=proc.pid, drains=drains))
        except BaseException:
            self._terminate(proc)
            raise

        logger.info("Process %d finished with exit code %d", proc.pid, exit_code)
        drains = self._finish_drains(proc, drainers)
        return self._finish(Completed(exit_code=exit_code, pid=proc.pid, drains=drains))

    def _terminate(self, proc: subprocess.Popen[str]) -> None:
        _signal_group(proc, force=False)
        try:
            proc.wait(timeout=self._kill_grace)
            return
        except subprocess.TimeoutExpired:
            logger.warning(
                "Process %d ignored termination for %ss, killing",
                proc.pid,
                self._kill_grace,
            )
        _signal_group(proc, force=True)
        proc.wait()

    def _finish_drains(
        self, proc: subprocess.Popen[str], drainers: list[StreamDrainer]
    ) -> tuple[DrainReport, ...]:
        for drainer in drainers:
            drainer.join(self._drain_grace)
        if any(d.alive for d in drainers):
            # a leftover group member still holds a pipe open
            logger.warning(
                "Output of process %d still open after exit, killing its group",
                proc.pid,
            )
            _signal_group(proc, force=True)
            for drainer in drainers:
                drainer.join(self._drain_grace)
        for drainer in drainers:
            if drainer.alive:
                logger.error("%s reader of process %d did not finish", drainer.name.value, proc.pid)
        return tuple(d.report() for d in drainers)


class ThreadedProcessSupervisor:
    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        kill_grace: float = 5.0,
        drain_grace: float = 5.0,
        sink: LineSinkPort | None = None,
    ) -> None:
        self.timeout = _require_positive("timeout", timeout)
        self.kill_grace = _require_positive("kill_grace", kill_grace)
        self.drain_grace = _require_positive("drain_grace", drain_grace)
        self.sink: LineSinkPort = sink if sink is not None else LoggingLineSink()

    def launch(self, spec: CommandSpec, timeout: float | None = None) -> RunResult:
        limit = self.timeout if timeout is None else _require_positive("timeout", timeout)
        run = SupervisedRun(spec, self.sink, self.kill_grace, self.drain_grace)
        return run.execute(limit)
