"""
Step report model — the outcome of one build step.

Build steps either run, are skipped by the incremental gate, or fail.
Reports capture which, so a host can summarize a batch without
exceptions crossing worker threads.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class StepReport(BaseModel):
    """Result of running one build step."""

    step_id: str
    status: Literal["ok", "skipped", "failed"] = "ok"

    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    exit_code: int | None = None
    output: str = ""
    error: str | None = None
    error_type: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def skipped(self) -> bool:
        return self.status == "skipped"

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @classmethod
    def success(cls, step_id: str, output: str = "", **kwargs: Any) -> StepReport:
        """Create a success report."""
        return cls(step_id=step_id, status="ok", output=output, **kwargs)

    @classmethod
    def failure(cls, step_id: str, error: str, **kwargs: Any) -> StepReport:
        """Create a failure report."""
        return cls(step_id=step_id, status="failed", error=error, **kwargs)

    @classmethod
    def skip(cls, step_id: str, reason: str = "", **kwargs: Any) -> StepReport:
        """Create a skip report (step was up to date)."""
        return cls(step_id=step_id, status="skipped", output=reason, **kwargs)
