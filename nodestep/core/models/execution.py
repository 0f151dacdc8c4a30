"""
Execution models — the request/result contract of the process executor.

A request is built fresh for every invocation and never reused. The
result captures the exit code and whatever output was collected.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


class ExecutionRequest(BaseModel):
    """One child process to spawn."""

    model_config = ConfigDict(frozen=True)

    executable: str
    args: tuple[str, ...] = ()
    working_dir: Path | None = None
    env: dict[str, str] = Field(default_factory=dict)
    path_entries: tuple[str, ...] = ()   # prepended to PATH
    capture: bool = True                 # False = stream to our stdout/stderr
    timeout: float | None = None

    @property
    def command_line(self) -> str:
        """Human-readable command line for logs and signatures."""
        return " ".join([self.executable, *self.args])


class ExecutionResult(BaseModel):
    """Outcome of a finished child process."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""
    duration_ms: int = 0

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0

    @property
    def output(self) -> str:
        """stdout and stderr joined, for error reporting."""
        return "\n".join(part for part in (self.stdout, self.stderr) if part)
