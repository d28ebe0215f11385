"""
Module: stock_engines
Responsibility:
    Pure calculation layer for FIFO costing.  Re-exports the planners and
    result types used by stock_services.

Invariants enforced:
    - Purity: no I/O, no clock reads.
    - Decimal-only arithmetic.
    - Determinism: identical inputs produce identical plans.
"""

from stock_engines.fifo import (
    AllocationFailure,
    AllocationLine,
    AllocationResult,
    AllocationSuccess,
    BatchSnapshot,
    OutstandingConsumption,
    ReleaseLine,
    ReleasePlan,
    is_depleted,
    plan_fifo,
    plan_release,
)

__all__ = [
    "AllocationFailure",
    "AllocationLine",
    "AllocationResult",
    "AllocationSuccess",
    "BatchSnapshot",
    "OutstandingConsumption",
    "ReleaseLine",
    "ReleasePlan",
    "is_depleted",
    "plan_fifo",
    "plan_release",
]
