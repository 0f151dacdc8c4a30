"""
Step runner — gate, execute and fingerprint build steps.

A build step is one packager or node invocation with declared inputs
and outputs. Running it is strictly sequential:

    gate (skip?) → action (provision → resolve → execute) → record fingerprint

Independent steps run concurrently on a bounded worker pool. Failures
are captured in per-step reports instead of escaping worker threads.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from nodestep.core.errors import NodestepError, ProcessExecutionError
from nodestep.core.models.execution import ExecutionResult
from nodestep.core.models.step import StepReport
from nodestep.core.persistence.fingerprint_store import FingerprintStore
from nodestep.core.services.incremental import compute_fingerprint, is_up_to_date

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 4

StepAction = Callable[[threading.Event | None], ExecutionResult]


@dataclass
class BuildStep:
    """One gated unit of work."""

    id: str
    action: StepAction
    inputs: tuple[str, ...] = ()
    outputs: tuple[str, ...] = ()
    output_dirs: tuple[str, ...] = ()
    base_dir: Path = Path(".")
    signature: str = ""


@dataclass
class StepRunReport:
    """Result of running a batch of steps."""

    reports: list[StepReport] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.reports)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.reports if r.ok)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.reports if r.failed)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.reports if r.skipped)

    @property
    def status(self) -> str:
        if self.failed == 0:
            return "ok"
        if self.succeeded + self.skipped > 0:
            return "partial"
        return "failed"

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "reports": [r.model_dump(mode="json") for r in self.reports],
        }


def run_step(
    step: BuildStep,
    store: FingerprintStore | None = None,
    *,
    force: bool = False,
    cancel_event: threading.Event | None = None,
) -> StepReport:
    """Run one step unless the incremental gate says it is up to date.

    ``force`` bypasses the gate. The fingerprint is only recorded after
    a successful run, so a failed or cancelled step always runs again.
    """
    if not force and store is not None:
        prior = store.load(step.id)
        if is_up_to_date(
            step.inputs, step.outputs, step.output_dirs, prior, step.base_dir, step.signature
        ):
            logger.info("⊘ %s is up to date", step.id)
            return StepReport.skip(step.id, "up to date")

    start = time.monotonic()
    try:
        result = step.action(cancel_event)
    except ProcessExecutionError as e:
        logger.info("✗ %s → exit %d", step.id, e.exit_code)
        return StepReport.failure(
            step.id,
            str(e),
            exit_code=e.exit_code,
            output=e.output,
            error_type=type(e).__name__,
            duration_ms=int((time.monotonic() - start) * 1000),
        )
    except NodestepError as e:
        logger.info("✗ %s → %s", step.id, e)
        return StepReport.failure(
            step.id,
            str(e),
            error_type=type(e).__name__,
            duration_ms=int((time.monotonic() - start) * 1000),
        )

    if store is not None:
        store.save(step.id, compute_fingerprint(step.inputs, step.base_dir, step.signature))

    logger.info("✓ %s", step.id)
    return StepReport.success(
        step.id,
        result.output,
        exit_code=result.exit_code,
        duration_ms=result.duration_ms,
    )


def run_steps(
    steps: Sequence[BuildStep],
    store: FingerprintStore | None = None,
    *,
    max_workers: int = DEFAULT_MAX_WORKERS,
    force: bool = False,
    cancel_event: threading.Event | None = None,
) -> StepRunReport:
    """Run independent steps concurrently; reports keep the input order."""
    report = StepRunReport()
    if not steps:
        return report

    with ThreadPoolExecutor(max_workers=max(1, max_workers), thread_name_prefix="nodestep") as pool:
        futures = [
            pool.submit(run_step, step, store, force=force, cancel_event=cancel_event)
            for step in steps
        ]
        report.reports = [f.result() for f in futures]

    return report
