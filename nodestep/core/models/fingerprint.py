"""
Fingerprint models — what a host must persist between runs.

A fingerprint is taken after a successful step run. On the next run the
incremental gate recomputes it and compares. The model is plain JSON so
any host can store it wherever it keeps build state.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class FileSignature(BaseModel):
    """Existence, content and modification marker of one input file."""

    path: str                   # relative to the step's base directory
    exists: bool = True
    size: int = 0
    mtime_ns: int = 0
    sha256: str = ""


class Fingerprint(BaseModel):
    """Signature of a step's inputs (and its command line) at one point in time."""

    schema_version: int = 1
    signature: str = ""                                              # command line hash
    inputs: dict[str, list[FileSignature]] = Field(default_factory=dict)  # glob → matches
    recorded_at: str = Field(default_factory=_now_iso)

    def same_inputs(self, other: Fingerprint) -> bool:
        """Compare everything except the recording timestamp."""
        return (
            self.schema_version == other.schema_version
            and self.signature == other.signature
            and self.inputs == other.inputs
        )
