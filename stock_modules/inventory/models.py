"""
Inventory Domain Models (``stock_modules.inventory.models``).

Frozen results of the stock operations that do not go through FIFO
selection: manual adjustments and branch transfers.  Batches themselves
are reported as ``stock_kernel.selectors.batch_selector.BatchInfo``.
"""

from dataclasses import dataclass
from decimal import Decimal

from stock_kernel.selectors.batch_selector import BatchInfo


@dataclass(frozen=True)
class StockAdjustment:
    batch: BatchInfo
    previous_quantity: Decimal
    adjustment: Decimal
    movement_id: int
    value_change: Decimal

    @property
    def new_quantity(self) -> Decimal:
        return self.batch.remaining_quantity


@dataclass(frozen=True)
class StockTransfer:
    """Stock moved from one branch to another at unchanged cost and date."""
    source: BatchInfo
    destination: BatchInfo
    quantity: Decimal
    to_branch_id: int
