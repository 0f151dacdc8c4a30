"""
Tests for the process executor.

The child is the running Python interpreter, so these work wherever the
test suite runs.
"""

import os
import sys
import threading
import time
from pathlib import Path

import pytest

from nodestep.core.engine.process import TIMEOUT_EXIT_CODE, ProcessExecutor, build_env
from nodestep.core.errors import CancelledError, ProcessExecutionError, SpawnError
from nodestep.core.models.execution import ExecutionRequest


def _py(code: str, **kwargs) -> ExecutionRequest:
    return ExecutionRequest(executable=sys.executable, args=("-c", code), **kwargs)


class TestRun:
    """Tests for spawning and exit codes."""

    def test_captures_output(self):
        result = ProcessExecutor().run(_py("print('hello'); import sys; print('oops', file=sys.stderr)"))
        assert result.succeeded
        assert result.stdout.strip() == "hello"
        assert result.stderr.strip() == "oops"
        assert result.duration_ms >= 0

    def test_nonzero_exit_raises(self):
        with pytest.raises(ProcessExecutionError) as exc:
            ProcessExecutor().run(_py("import sys; print('bad'); sys.exit(3)"))
        assert exc.value.exit_code == 3
        assert "bad" in exc.value.output

    def test_ignore_exit_value(self):
        result = ProcessExecutor().run(_py("import sys; sys.exit(5)"), check=False)
        assert result.exit_code == 5
        assert not result.succeeded

    def test_working_dir(self, tmp_path: Path):
        result = ProcessExecutor().run(_py("import os; print(os.getcwd())", working_dir=tmp_path))
        assert Path(result.stdout.strip()).resolve() == tmp_path.resolve()

    def test_spawn_error(self, tmp_path: Path):
        with pytest.raises(SpawnError) as exc:
            ProcessExecutor().run(ExecutionRequest(executable=str(tmp_path / "no-such-binary")))
        assert exc.value.executable.endswith("no-such-binary")

    def test_streaming_mode(self):
        result = ProcessExecutor().run(_py("print('streamed')", capture=False))
        assert result.succeeded
        assert result.stdout == ""


class TestEnvironment:
    """Tests for env overrides and PATH handling."""

    def test_env_override(self):
        result = ProcessExecutor().run(
            _py("import os; print(os.environ['NODESTEP_TEST'])", env={"NODESTEP_TEST": "42"})
        )
        assert result.stdout.strip() == "42"

    def test_path_entries_prepended(self, tmp_path: Path):
        result = ProcessExecutor().run(
            _py("import os; print(os.environ['PATH'])", path_entries=(str(tmp_path),))
        )
        assert result.stdout.strip().split(os.pathsep)[0] == str(tmp_path)

    def test_build_env_windows_spelling(self):
        request = ExecutionRequest(executable="x", path_entries=("C:\\node",))
        env = build_env(request, base={"Path": "C:\\Windows"})
        assert "PATH" not in env
        assert env["Path"].startswith("C:\\node" + os.pathsep)

    def test_build_env_without_path(self):
        request = ExecutionRequest(executable="x", path_entries=("/opt/node/bin",), env={"A": "1"})
        env = build_env(request, base={})
        assert env == {"A": "1", "PATH": "/opt/node/bin"}


class TestTermination:
    """Tests for timeouts and cancellation."""

    def test_timeout(self):
        start = time.monotonic()
        with pytest.raises(ProcessExecutionError) as exc:
            ProcessExecutor(kill_grace=2).run(_py("import time; time.sleep(30)", timeout=0.5))
        assert exc.value.exit_code == TIMEOUT_EXIT_CODE
        assert time.monotonic() - start < 15

    def test_cancel(self):
        cancel = threading.Event()
        timer = threading.Timer(0.3, cancel.set)
        timer.start()
        start = time.monotonic()
        try:
            with pytest.raises(CancelledError):
                ProcessExecutor(kill_grace=2).run(_py("import time; time.sleep(30)"), cancel_event=cancel)
        finally:
            timer.cancel()
        assert time.monotonic() - start < 15

    def test_already_cancelled(self):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(CancelledError):
            ProcessExecutor().run(_py("print('never')"), cancel_event=cancel)
