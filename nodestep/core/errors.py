"""
Error taxonomy — every failure the core can surface to a build host.

All errors derive from ``NodestepError`` so a host can catch the whole
family in one place. Only ``NetworkError`` is ever retried (inside the
downloader); everything else aborts the current step.
"""

from __future__ import annotations


class NodestepError(Exception):
    """Base class for all nodestep failures."""


class ConfigError(NodestepError):
    """Raised when nodestep configuration is invalid or missing."""


class UnsupportedPlatformError(NodestepError):
    """No Node.js distribution exists for this OS / CPU combination."""

    def __init__(self, system: str, machine: str):
        self.system = system
        self.machine = machine
        super().__init__(f"Unsupported platform: {system or '?'} / {machine or '?'}")


class NetworkError(NodestepError):
    """Download failed (non-2xx status, connection failure, truncated body)."""

    def __init__(self, url: str, reason: str, status: int | None = None):
        self.url = url
        self.reason = reason
        self.status = status
        status_part = f" (HTTP {status})" if status is not None else ""
        super().__init__(f"Download of {url} failed{status_part}: {reason}")


class ChecksumMismatchError(NodestepError):
    """Downloaded archive digest differs from the published one. Never retried."""

    def __init__(self, path: str, expected: str, actual: str):
        self.path = path
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Checksum mismatch for {path}: expected sha256 {expected or '<none>'}, "
            f"got {actual or '<none>'}"
        )


class UnsupportedArchiveError(NodestepError):
    """Archive container format is neither zip nor gzip-tar."""


class MalformedDistributionError(NodestepError):
    """Extracted tree lacks the node executable or the bundled npm."""


class RuntimeNotFoundError(NodestepError):
    """No usable system Node.js runtime (absent or version mismatch)."""


class PackagerNotConfiguredError(NodestepError):
    """A packager was requested that cannot be resolved or installed."""


class SpawnError(NodestepError):
    """The child process could not be started at all."""

    def __init__(self, executable: str, reason: str):
        self.executable = executable
        self.reason = reason
        super().__init__(f"Cannot start {executable}: {reason}")


class ProcessExecutionError(NodestepError):
    """The child process exited with a non-zero code."""

    def __init__(self, executable: str, exit_code: int, output: str = ""):
        self.executable = executable
        self.exit_code = exit_code
        self.output = output
        super().__init__(f"{executable} exited with code {exit_code}")


class CancelledError(NodestepError):
    """The enclosing build was aborted and the child process was terminated."""
