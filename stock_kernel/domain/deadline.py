"""
Deadline -- bounded execution time for one orchestrated workflow.

Responsibility:
    Track elapsed time against a workflow's timeout and raise
    ``TransactionTimeout`` at the next checkpoint once it is exceeded.

Architecture position:
    Kernel > Domain.  The timer is injected (``time.monotonic`` in
    production, a controllable callable in tests); no other I/O.

Invariants enforced:
    - Once expired, every subsequent ``check`` raises.
    - Elapsed time is measured with a monotonic source, never wall-clock.
"""

from __future__ import annotations

import time
from collections.abc import Callable

from stock_kernel.exceptions import TransactionTimeout

Timer = Callable[[], float]


class Deadline:
    """A started countdown for one workflow invocation."""

    def __init__(
        self,
        workflow: str,
        timeout_seconds: float,
        timer: Timer = time.monotonic,
    ):
        if timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be positive, got {timeout_seconds}")
        self.workflow = workflow
        self.timeout_seconds = timeout_seconds
        self._timer = timer
        self._started = timer()

    def elapsed(self) -> float:
        return self._timer() - self._started

    def remaining(self) -> float:
        return max(0.0, self.timeout_seconds - self.elapsed())

    def expired(self) -> bool:
        return self.elapsed() > self.timeout_seconds

    def check(self, step: str | None = None) -> None:
        """Raise TransactionTimeout if the budget is spent.

        ``step`` names the checkpoint for the log record the orchestrator
        writes on timeout.
        """
        elapsed = self.elapsed()
        if elapsed > self.timeout_seconds:
            exc = TransactionTimeout(
                workflow=self.workflow,
                timeout_seconds=self.timeout_seconds,
                elapsed_seconds=elapsed,
            )
            exc.step = step
            raise exc
