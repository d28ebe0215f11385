"""
stock_services -- stateful orchestration over stock_engines + stock_kernel.

Dependency direction:
    stock_services/ -> stock_engines/  (allowed)
    stock_services/ -> stock_kernel/   (allowed)
    stock_engines/  -> stock_services/ (FORBIDDEN)
    stock_kernel/   -> stock_services/ (FORBIDDEN)
"""

from stock_services.fifo_allocator import FifoAllocator, ReversalResult
from stock_services.transaction_orchestrator import (
    OutcomeStatus,
    TransactionOrchestrator,
    UnitOfWork,
    WorkflowOutcome,
)

__all__ = [
    "FifoAllocator",
    "ReversalResult",
    "OutcomeStatus",
    "TransactionOrchestrator",
    "UnitOfWork",
    "WorkflowOutcome",
]
