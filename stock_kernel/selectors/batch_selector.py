"""
Module: stock_kernel.selectors.batch_selector
Responsibility: Read-only inventory queries for reporting: per-material
    batch summary, batch listings and movement history as DTOs.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Summary figures are rounded only at the presentation boundary
      (quantity_places / money_places); stored quantities are never rounded.
    - total_value is sum(remaining x unit_cost) per batch; average_cost is
      total_value / total_quantity, zero when there is no stock.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select

from stock_kernel.logging_config import get_logger
from stock_kernel.models.batch import InventoryBatchModel
from stock_kernel.models.movement import BatchMovementModel
from stock_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.batch")

ZERO = Decimal("0")


def quantize(value: Decimal, places: int) -> Decimal:
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class BatchSummary:
    material_id: int
    total_quantity: Decimal
    total_value: Decimal
    average_cost: Decimal
    batch_count: int
    oldest_date: date | None
    newest_date: date | None


@dataclass(frozen=True)
class BatchInfo:
    id: int
    batch_number: str
    material_id: int
    branch_id: int | None
    supplier_id: int | None
    purchase_date: date
    quantity_received: Decimal
    remaining_quantity: Decimal
    unit_cost: Decimal
    is_depleted: bool
    location: str | None
    condition: str

    @classmethod
    def from_model(cls, m: InventoryBatchModel) -> BatchInfo:
        return cls(
            id=m.id,
            batch_number=m.batch_number,
            material_id=m.material_id,
            branch_id=m.branch_id,
            supplier_id=m.supplier_id,
            purchase_date=m.purchase_date,
            quantity_received=m.quantity_received,
            remaining_quantity=m.remaining_quantity,
            unit_cost=m.unit_cost,
            is_depleted=m.is_depleted,
            location=m.location,
            condition=m.condition,
        )


@dataclass(frozen=True)
class MovementInfo:
    id: int
    batch_id: int
    kind: str
    movement_type: str
    quantity: Decimal
    reference_type: str | None
    reference_id: int | None
    reverses_movement_id: int | None
    notes: str | None


class BatchSelector(BaseSelector[InventoryBatchModel]):
    """Inventory reporting queries."""

    def __init__(self, session, quantity_places: int = 3, money_places: int = 3):
        super().__init__(session)
        self._quantity_places = quantity_places
        self._money_places = money_places

    def get_batch_summary(self, material_id: int) -> BatchSummary:
        """Stock on hand for a material across all eligible batches."""
        batches = self.session.execute(
            select(InventoryBatchModel)
            .where(
                InventoryBatchModel.material_id == material_id,
                InventoryBatchModel.is_depleted.is_(False),
                InventoryBatchModel.remaining_quantity > 0,
            )
            .order_by(InventoryBatchModel.purchase_date, InventoryBatchModel.id)
        ).scalars().all()

        total_quantity = ZERO
        total_value = ZERO
        for b in batches:
            total_quantity += b.remaining_quantity
            total_value += b.remaining_quantity * b.unit_cost

        average = total_value / total_quantity if total_quantity > 0 else ZERO

        summary = BatchSummary(
            material_id=material_id,
            total_quantity=quantize(total_quantity, self._quantity_places),
            total_value=quantize(total_value, self._money_places),
            average_cost=quantize(average, self._money_places),
            batch_count=len(batches),
            oldest_date=batches[0].purchase_date if batches else None,
            newest_date=batches[-1].purchase_date if batches else None,
        )
        logger.debug(
            "batch_summary_computed",
            extra={
                "material_id": material_id,
                "batch_count": summary.batch_count,
                "total_quantity": str(summary.total_quantity),
            },
        )
        return summary

    def list_batches(
        self,
        material_id: int,
        *,
        include_depleted: bool = False,
        branch_id: int | None = None,
    ) -> list[BatchInfo]:
        stmt = select(InventoryBatchModel).where(
            InventoryBatchModel.material_id == material_id
        )
        if not include_depleted:
            stmt = stmt.where(InventoryBatchModel.is_depleted.is_(False))
        if branch_id is not None:
            stmt = stmt.where(InventoryBatchModel.branch_id == branch_id)
        stmt = stmt.order_by(InventoryBatchModel.purchase_date, InventoryBatchModel.id)
        return [BatchInfo.from_model(m) for m in self.session.execute(stmt).scalars()]

    def movement_history(self, batch_id: int) -> list[MovementInfo]:
        rows = self.session.execute(
            select(BatchMovementModel)
            .where(BatchMovementModel.batch_id == batch_id)
            .order_by(BatchMovementModel.id)
        ).scalars()
        return [
            MovementInfo(
                id=m.id,
                batch_id=m.batch_id,
                kind=m.kind,
                movement_type=m.movement_type,
                quantity=m.quantity,
                reference_type=m.reference_type,
                reference_id=m.reference_id,
                reverses_movement_id=m.reverses_movement_id,
                notes=m.notes,
            )
            for m in rows
        ]
