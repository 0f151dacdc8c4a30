"""
Process executor — the single place child processes are spawned.

Every node, npm, npx and packager invocation goes through
``ProcessExecutor.run``. Environment assembly, PATH handling, timeouts,
cancellation and exit-code policy are centralised here.
"""

from __future__ import annotations

import logging
import os
import subprocess
import threading
import time

from nodestep.core.errors import CancelledError, ProcessExecutionError, SpawnError
from nodestep.core.models.execution import ExecutionRequest, ExecutionResult

logger = logging.getLogger(__name__)

TIMEOUT_EXIT_CODE = 124

_POLL_INTERVAL = 0.1


def build_env(request: ExecutionRequest, base: dict[str, str] | None = None) -> dict[str, str]:
    """Child environment: ``base`` (default ``os.environ``) + overrides + PATH entries.

    Windows spells the variable ``Path``; whichever spelling is present
    is the one updated.
    """
    env = dict(os.environ if base is None else base)
    env.update(request.env)

    if request.path_entries:
        key = "Path" if "Path" in env and "PATH" not in env else "PATH"
        current = env.get(key, "")
        entries = [*request.path_entries, current] if current else list(request.path_entries)
        env[key] = os.pathsep.join(entries)

    return env


class ProcessExecutor:
    """Runs ``ExecutionRequest``s to completion.

    Args:
        kill_grace: Seconds between ``terminate()`` and ``kill()`` on
            cancellation or timeout.
    """

    def __init__(self, kill_grace: float = 5.0):
        self._kill_grace = kill_grace

    def run(
        self,
        request: ExecutionRequest,
        *,
        check: bool = True,
        cancel_event: threading.Event | None = None,
    ) -> ExecutionResult:
        """Spawn the child, wait for it, and apply the exit-code policy.

        Args:
            request: What to run.
            check: Raise on a non-zero exit. ``False`` returns the result instead.
            cancel_event: When set, the child is terminated.

        Raises:
            SpawnError: The executable could not be started.
            ProcessExecutionError: Non-zero exit (with ``check``) or timeout (code 124).
            CancelledError: ``cancel_event`` was set before the child exited.
        """
        argv = [request.executable, *request.args]
        cwd = str(request.working_dir) if request.working_dir else None
        pipe = subprocess.PIPE if request.capture else None

        logger.info("Running: %s", request.command_line)
        if cwd:
            logger.debug("  cwd: %s", cwd)

        start = time.monotonic()
        try:
            proc = subprocess.Popen(
                argv,
                cwd=cwd,
                env=build_env(request),
                stdout=pipe,
                stderr=pipe,
                stdin=subprocess.DEVNULL,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except (FileNotFoundError, PermissionError, NotADirectoryError) as e:
            raise SpawnError(request.executable, e.strerror or str(e)) from e
        except OSError as e:
            raise SpawnError(request.executable, str(e)) from e

        stdout, stderr = self._wait(proc, request, start, cancel_event)
        duration_ms = int((time.monotonic() - start) * 1000)

        result = ExecutionResult(
            exit_code=proc.returncode,
            stdout=stdout or "",
            stderr=stderr or "",
            duration_ms=duration_ms,
        )
        logger.debug("%s exited with %d after %dms", request.executable, result.exit_code, duration_ms)

        if check and not result.succeeded:
            raise ProcessExecutionError(request.command_line, result.exit_code, result.output)
        return result

    def _wait(
        self,
        proc: subprocess.Popen,
        request: ExecutionRequest,
        start: float,
        cancel_event: threading.Event | None,
    ) -> tuple[str | None, str | None]:
        while True:
            if cancel_event is not None and cancel_event.is_set():
                self._stop(proc)
                logger.warning("Cancelled: %s", request.command_line)
                raise CancelledError(f"Cancelled: {request.command_line}")

            if request.timeout is not None and time.monotonic() - start > request.timeout:
                stdout, stderr = self._stop(proc)
                output = "\n".join(part for part in (stdout, stderr) if part)
                logger.warning("Timed out after %ss: %s", request.timeout, request.command_line)
                raise ProcessExecutionError(request.command_line, TIMEOUT_EXIT_CODE, output)

            try:
                return proc.communicate(timeout=_POLL_INTERVAL)
            except subprocess.TimeoutExpired:
                continue

    def _stop(self, proc: subprocess.Popen) -> tuple[str | None, str | None]:
        """terminate(), then kill() after the grace period."""
        proc.terminate()
        try:
            return proc.communicate(timeout=self._kill_grace)
        except subprocess.TimeoutExpired:
            proc.kill()
            return proc.communicate()
