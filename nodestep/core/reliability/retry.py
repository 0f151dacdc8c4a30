"""
Retry policy — bounded retries with exponential backoff and jitter.

Used by the downloader for transient network failures. Everything
else in the core fails fast.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how patiently to retry a transient failure."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0

    def delay_for(self, attempt: int) -> float:
        """Backoff before the attempt following ``attempt`` (1-based)."""
        delay = min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)
        jitter = random.uniform(0, delay * 0.3)
        return delay + jitter

    def call(
        self,
        fn: Callable[[], T],
        *,
        retry_on: tuple[type[BaseException], ...],
        label: str = "",
        sleep: Callable[[float], None] = time.sleep,
    ) -> T:
        """Run ``fn`` until it succeeds or attempts are exhausted.

        Only exceptions in ``retry_on`` are retried; the last one is
        re-raised when attempts run out.
        """
        attempts = max(1, self.max_attempts)
        for attempt in range(1, attempts + 1):
            try:
                return fn()
            except retry_on as exc:
                if attempt >= attempts:
                    logger.warning("%s failed after %d attempts: %s", label or "operation", attempt, exc)
                    raise
                delay = self.delay_for(attempt)
                logger.info(
                    "%s failed (attempt %d/%d): %s, retrying in %.1fs",
                    label or "operation",
                    attempt,
                    attempts,
                    exc,
                    delay,
                )
                sleep(delay)
        raise AssertionError("unreachable")
