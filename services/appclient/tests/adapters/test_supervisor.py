import errno
import logging
import os
import shutil
import subprocess
import time

import pytest

from appclient.adapters.process.supervisor import SupervisedRun, ThreadedProcessSupervisor
from appclient.adapters.sinks.lines import BufferingLineSink
from appclient.domain.capture import StreamName
from appclient.domain.command import CommandSpec
from appclient.domain.run import Completed, RunState, SpawnFailed, TimedOut

posix_only = pytest.mark.skipif(os.name != "posix", reason="needs POSIX process groups")


class CountingSink:
    def __init__(self):
        self.counts = {StreamName.STDOUT: 0, StreamName.STDERR: 0}
        self.last = {}

    def emit(self, line):
        self.counts[line.stream] += 1
        self.last[line.stream] = line.text


def _process_gone(pid):
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return True
    return False


@pytest.mark.skipif(shutil.which("echo") is None, reason="echo not on PATH")
def test_echo_completes_and_captures_stdout():
    sink = BufferingLineSink()
    supervisor = ThreadedProcessSupervisor(timeout=5, sink=sink)
    result = supervisor.launch(CommandSpec(["echo", "hello"]))
    assert isinstance(result, Completed)
    assert result.exit_code == 0
    assert sink.texts(StreamName.STDOUT) == ["hello"]
    assert sink.texts(StreamName.STDERR) == []


def test_nonzero_exit_code_is_reported(py):
    supervisor = ThreadedProcessSupervisor(timeout=30, sink=BufferingLineSink())
    result = supervisor.launch(CommandSpec(py("import sys; sys.exit(7)")))
    assert isinstance(result, Completed)
    assert result.exit_code == 7
    assert result.failure_message == "non-zero exit 7"


@posix_only
@pytest.mark.skipif(shutil.which("sleep") is None, reason="sleep not on PATH")
def test_sleep_past_timeout_is_terminated():
    supervisor = ThreadedProcessSupervisor(timeout=30, sink=BufferingLineSink())
    started = time.monotonic()
    result = supervisor.launch(CommandSpec(["sleep", "10"]), timeout=1)
    assert isinstance(result, TimedOut)
    assert result.timeout == 1
    assert time.monotonic() - started < 9
    assert result.pid is not None
    assert _process_gone(result.pid)


@posix_only
def test_child_ignoring_sigterm_is_killed(py):
    code = (
        "import signal, time\n"
        "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
        "print('ready', flush=True)\n"
        "time.sleep(60)\n"
    )
    sink = BufferingLineSink()
    supervisor = ThreadedProcessSupervisor(timeout=3, kill_grace=0.5, drain_grace=1, sink=sink)
    result = supervisor.launch(CommandSpec(py(code)))
    assert isinstance(result, TimedOut)
    assert result.pid is not None
    assert _process_gone(result.pid)
    assert sink.texts(StreamName.STDOUT) == ["ready"]


def test_large_stderr_output_does_not_deadlock(py):
    code = (
        "import sys\n"
        "chunk = 'x' * 1023 + '\\n'\n"
        "for _ in range(10 * 1024):\n"
        "    sys.stderr.write(chunk)\n"
        "print('done')\n"
    )
    sink = CountingSink()
    supervisor = ThreadedProcessSupervisor(timeout=120, sink=sink)
    result = supervisor.launch(CommandSpec(py(code)))
    assert isinstance(result, Completed)
    assert result.exit_code == 0
    assert sink.counts[StreamName.STDERR] == 10 * 1024
    assert sink.last[StreamName.STDOUT] == "done"
    reports = {d.stream: d for d in result.drains}
    assert reports[StreamName.STDERR].lines_read == 10 * 1024
    assert all(d.finished and d.error is None for d in result.drains)


def test_missing_binary_fails_to_spawn():
    supervisor = ThreadedProcessSupervisor(timeout=5)
    started = time.monotonic()
    result = supervisor.launch(CommandSpec(["/no/such/binary"]))
    assert isinstance(result, SpawnFailed)
    assert "no such file" in result.cause.lower()
    assert result.errno == errno.ENOENT
    assert time.monotonic() - started < 5


@posix_only
def test_non_executable_file_fails_to_spawn(tmp_path):
    script = tmp_path / "client.sh"
    script.write_text("#!/bin/sh\nexit 0\n")
    script.chmod(0o644)
    result = ThreadedProcessSupervisor(timeout=5).launch(CommandSpec([str(script)]))
    assert isinstance(result, SpawnFailed)
    assert result.errno == errno.EACCES


def test_missing_working_directory_fails_to_spawn(tmp_path, py):
    spec = CommandSpec(py("print('hi')"), cwd=tmp_path / "missing")
    result = ThreadedProcessSupervisor(timeout=5).launch(spec)
    assert isinstance(result, SpawnFailed)


def test_child_runs_in_requested_directory(tmp_path, py):
    sink = BufferingLineSink()
    spec = CommandSpec(py("import os; print(os.getcwd())"), cwd=tmp_path)
    result = ThreadedProcessSupervisor(timeout=30, sink=sink).launch(spec)
    assert result.ok
    assert os.path.realpath(sink.texts(StreamName.STDOUT)[0]) == os.path.realpath(tmp_path)


def test_environment_override_replaces_inherited(monkeypatch, py):
    monkeypatch.setenv("APPCLIENT_INHERITED", "yes")
    sink = BufferingLineSink()
    code = "import os; print(os.environ.get('ONLY')); print(os.environ.get('APPCLIENT_INHERITED'))"
    spec = CommandSpec(py(code), env={"ONLY": "1"})
    result = ThreadedProcessSupervisor(timeout=30, sink=sink).launch(spec)
    assert result.ok
    assert sink.texts(StreamName.STDOUT) == ["1", "None"]


def test_environment_is_inherited_by_default(monkeypatch, py):
    monkeypatch.setenv("APPCLIENT_INHERITED", "yes")
    sink = BufferingLineSink()
    spec = CommandSpec(py("import os; print(os.environ['APPCLIENT_INHERITED'])"))
    result = ThreadedProcessSupervisor(timeout=30, sink=sink).launch(spec)
    assert result.ok
    assert sink.texts(StreamName.STDOUT) == ["yes"]


def test_per_stream_order_is_preserved(py):
    code = (
        "import sys\n"
        "for i in range(2000):\n"
        "    print(f'out {i}')\n"
        "    print(f'err {i}', file=sys.stderr)\n"
    )
    sink = BufferingLineSink()
    result = ThreadedProcessSupervisor(timeout=60, sink=sink).launch(CommandSpec(py(code)))
    assert result.ok
    assert sink.texts(StreamName.STDOUT) == [f"out {i}" for i in range(2000)]
    assert sink.texts(StreamName.STDERR) == [f"err {i}" for i in range(2000)]
    assert [line.index for line in sink.lines(StreamName.STDERR)] == list(range(2000))


@posix_only
def test_grandchild_holding_pipe_is_cleaned_up(py):
    code = (
        "import subprocess, sys\n"
        "subprocess.Popen([sys.executable, '-c', 'import time; time.sleep(60)'])\n"
        "print('parent done', flush=True)\n"
    )
    sink = BufferingLineSink()
    supervisor = ThreadedProcessSupervisor(timeout=30, drain_grace=0.5, sink=sink)
    started = time.monotonic()
    result = supervisor.launch(CommandSpec(py(code)))
    assert isinstance(result, Completed)
    assert result.exit_code == 0
    assert time.monotonic() - started < 30
    assert sink.texts(StreamName.STDOUT) == ["parent done"]
    assert all(d.finished for d in result.drains)


def test_default_sink_logs_prefixed_lines(caplog, py):
    supervisor = ThreadedProcessSupervisor(timeout=30)
    with caplog.at_level(logging.INFO):
        result = supervisor.launch(CommandSpec(py("print('hello')")))
    assert result.ok
    assert any(r.getMessage() == "[stdout] hello" for r in caplog.records)


@pytest.mark.parametrize("kwargs", [{"timeout": 0}, {"kill_grace": -1}, {"drain_grace": 0}])
def test_rejects_non_positive_limits(kwargs):
    with pytest.raises(ValueError):
        ThreadedProcessSupervisor(**kwargs)


def test_rejects_non_positive_launch_timeout(py):
    with pytest.raises(ValueError):
        ThreadedProcessSupervisor().launch(CommandSpec(py("pass")), timeout=0)


class BrokenPipeSink:
    def __init__(self, streams=(StreamName.STDOUT, StreamName.STDERR), delegate=None):
        self.streams = set(streams)
        self.delegate = delegate

    def emit(self, line):
        if line.stream in self.streams:
            raise BrokenPipeError(32, "Broken pipe")
        if self.delegate is not None:
            self.delegate.emit(line)


def test_failing_sink_does_not_break_the_child(py):
    code = (
        "import sys\n"
        "for i in range(200000):\n"
        "    print(f'line {i}')\n"
    )
    supervisor = ThreadedProcessSupervisor(timeout=120, sink=BrokenPipeSink())
    result = supervisor.launch(CommandSpec(py(code)))
    assert isinstance(result, Completed)
    assert result.exit_code == 0
    reports = {d.stream: d for d in result.drains}
    stdout = reports[StreamName.STDOUT]
    assert stdout.lines_read == 200000
    assert stdout.finished
    assert stdout.error is None
    assert "BrokenPipeError" in (stdout.sink_error or "")
    assert reports[StreamName.STDERR].sink_error is None


def test_stderr_sink_failure_leaves_stdout_capture_intact(py):
    code = (
        "import sys\n"
        "for i in range(500):\n"
        "    print(f'out {i}')\n"
        "    print(f'err {i}', file=sys.stderr)\n"
    )
    buffer = BufferingLineSink()
    sink = BrokenPipeSink(streams=(StreamName.STDERR,), delegate=buffer)
    result = ThreadedProcessSupervisor(timeout=60, sink=sink).launch(CommandSpec(py(code)))
    assert isinstance(result, Completed)
    assert result.exit_code == 0
    assert buffer.texts(StreamName.STDOUT) == [f"out {i}" for i in range(500)]
    assert buffer.texts(StreamName.STDERR) == []
    reports = {d.stream: d for d in result.drains}
    assert reports[StreamName.STDOUT].sink_error is None
    assert reports[StreamName.STDOUT].error is None
    assert reports[StreamName.STDERR].sink_error is not None
    assert reports[StreamName.STDERR].error is None
    assert reports[StreamName.STDERR].lines_read == 500


@pytest.mark.parametrize(
    "argv,state",
    [
        (None, RunState.COMPLETED),
        (["/no/such/binary"], RunState.SPAWN_FAILED),
    ],
)
def test_run_state_matches_the_returned_result(py, argv, state):
    run = SupervisedRun(
        CommandSpec(argv or py("pass")), BufferingLineSink(), kill_grace=5, drain_grace=5
    )
    assert run.state == RunState.NOT_STARTED
    run.execute(30)
    assert run.state == state


@posix_only
@pytest.mark.skipif(shutil.which("sleep") is None, reason="sleep not on PATH")
def test_run_state_is_timed_out_after_timeout():
    run = SupervisedRun(CommandSpec(["sleep", "10"]), BufferingLineSink(), kill_grace=5, drain_grace=5)
    assert isinstance(run.execute(0.5), TimedOut)
    assert run.state == RunState.TIMED_OUT


def test_missing_output_pipes_raise_and_stop_the_child(monkeypatch, py):
    started = []

    def spawn_without_pipes(self):
        proc = subprocess.Popen(py("import time; time.sleep(30)"), start_new_session=os.name == "posix")
        started.append(proc)
        return proc

    monkeypatch.setattr(SupervisedRun, "_spawn", spawn_without_pipes)
    run = SupervisedRun(CommandSpec(py("pass")), BufferingLineSink(), kill_grace=5, drain_grace=5)
    with pytest.raises(RuntimeError, match="without output pipes"):
        run.execute(30)
    assert started[0].poll() is not None
