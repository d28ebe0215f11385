"""ORM models for the stock kernel."""

from stock_kernel.models.batch import InventoryBatchModel
from stock_kernel.models.financial_record import (
    FinancialRecordModel,
    SequenceCounterModel,
    TransactionType,
)
from stock_kernel.models.movement import BatchMovementModel, MovementKind

__all__ = [
    "InventoryBatchModel",
    "BatchMovementModel",
    "MovementKind",
    "FinancialRecordModel",
    "SequenceCounterModel",
    "TransactionType",
]
