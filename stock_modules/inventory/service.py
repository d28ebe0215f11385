"""
Inventory Service (``stock_modules.inventory.service``).

Responsibility
--------------
Entry points for stock that arrives or moves without FIFO selection:
receiving a new lot, manually adjusting a batch, and transferring part of a
batch to another branch.  Also exposes the read-side reporting the rest of
the system consumes (summary, batch listing, movement history, preview).

Architecture position
---------------------
**Modules layer** -- thin orchestration over ``BatchStore`` and
``BatchSelector``.  Every mutation is a TransactionOrchestrator body.

Invariants enforced
-------------------
* Every quantity change goes through ``BatchStore.apply_movement`` or
  ``BatchStore.create_batch``; nothing writes remaining_quantity directly.
* An adjustment may not take remaining below zero or above
  quantity_received; the request is refused before any write.
* A transfer keeps unit_cost and purchase_date, so the transferred stock
  keeps its FIFO position and cost basis at the destination.

Failure modes
-------------
* ``ValidationError`` -- bad quantities, blank reason, out-of-range
  adjustment, transfer larger than the batch's remaining quantity or to
  the batch's own branch.
* ``BatchNotFoundError`` -- unknown batch id.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from stock_engines.fifo import AllocationResult
from stock_kernel.exceptions import ValidationError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.financial_record import TransactionType
from stock_kernel.models.movement import MovementKind
from stock_kernel.selectors.batch_selector import BatchInfo, BatchSummary, MovementInfo
from stock_modules.inventory.models import StockAdjustment, StockTransfer
from stock_services.transaction_orchestrator import TransactionOrchestrator, UnitOfWork

logger = get_logger("modules.inventory.service")


class InventoryService:
    """
    Receiving, adjustment, transfer, and inventory reporting.

    Contract:
        Receives a TransactionOrchestrator; returns DTOs only.
    """

    def __init__(self, orchestrator: TransactionOrchestrator):
        self._orchestrator = orchestrator

    # =========================================================================
    # Receiving
    # =========================================================================

    def receive_stock(
        self,
        material_id: int,
        quantity: Decimal,
        unit_cost: Decimal,
        actor_id: int,
        *,
        purchase_date: date | None = None,
        supplier_id: int | None = None,
        purchase_order_id: int | None = None,
        branch_id: int | None = None,
        batch_number: str | None = None,
        expiry_date: date | None = None,
        location: str | None = None,
        condition: str = "new",
        notes: str | None = None,
        record_purchase: bool = False,
    ) -> BatchInfo:
        """
        Create a lot from a purchase completion or a manual stock-in.

        ``record_purchase`` also books a negative purchase financial record
        for quantity x unit_cost.
        """
        reference_type = "purchase_order" if purchase_order_id is not None else "manual_receipt"

        def body(uow: UnitOfWork) -> BatchInfo:
            batch = uow.batches.create_batch(
                material_id,
                quantity,
                unit_cost,
                actor_id,
                purchase_date=purchase_date,
                batch_number=batch_number,
                supplier_id=supplier_id,
                purchase_order_id=purchase_order_id,
                branch_id=branch_id,
                expiry_date=expiry_date,
                location=location,
                condition=condition,
                notes=notes,
                reference_type=reference_type,
                reference_id=purchase_order_id,
            )
            if record_purchase:
                uow.records.record(
                    TransactionType.PURCHASE,
                    -(quantity * unit_cost),
                    actor_id,
                    reference_type=reference_type,
                    reference_id=purchase_order_id,
                    material_id=material_id,
                    quantity=quantity,
                    unit_price=unit_cost,
                    description=f"Stock received - batch {batch.batch_number}",
                )
            return BatchInfo.from_model(batch)

        return self._orchestrator.execute(
            "stock_receipt", body, actor_id=actor_id,
        ).value

    # =========================================================================
    # Adjustment
    # =========================================================================

    def adjust_batch(
        self,
        batch_id: int,
        quantity: Decimal,
        reason: str,
        actor_id: int,
        *,
        notes: str | None = None,
        record_value: bool = False,
    ) -> StockAdjustment:
        """
        Apply a signed manual correction to one batch.

        ``record_value`` also books an adjustment financial record for
        quantity x unit_cost (negative for a write-down).
        """
        if quantity is None or quantity == 0:
            raise ValidationError("quantity", quantity, "adjustment must be non-zero")
        if not reason or not reason.strip():
            raise ValidationError("reason", reason, "must not be blank")

        def body(uow: UnitOfWork) -> StockAdjustment:
            batch = uow.batches.get_batch(batch_id, lock=True)
            previous = batch.remaining_quantity
            target = previous + quantity
            if target < 0:
                raise ValidationError(
                    "quantity", quantity,
                    f"cannot reduce below 0 (remaining {previous})",
                )
            if target > batch.quantity_received:
                raise ValidationError(
                    "quantity", quantity,
                    f"cannot exceed quantity received {batch.quantity_received}",
                )

            movement = uow.batches.apply_movement(
                batch,
                quantity,
                kind=MovementKind.ADJUSTMENT,
                movement_type="adjustment",
                actor_id=actor_id,
                reference_type="manual_adjustment",
                reference_id=None,
                notes=f"{reason}{f' - {notes}' if notes else ''}",
            )
            value_change = quantity * batch.unit_cost
            if record_value:
                uow.records.record(
                    TransactionType.ADJUSTMENT,
                    value_change,
                    actor_id,
                    reference_type="manual_adjustment",
                    reference_id=batch.id,
                    material_id=batch.material_id,
                    quantity=quantity,
                    unit_price=batch.unit_cost,
                    description=f"Batch {batch.batch_number} adjusted: {reason}",
                )
            logger.info(
                "batch_adjusted",
                extra={
                    "batch_id": batch.id,
                    "previous_quantity": str(previous),
                    "adjustment": str(quantity),
                    "reason": reason,
                },
            )
            return StockAdjustment(
                batch=BatchInfo.from_model(batch),
                previous_quantity=previous,
                adjustment=quantity,
                movement_id=movement.id,
                value_change=value_change,
            )

        return self._orchestrator.execute(
            "batch_adjustment",
            body,
            actor_id=actor_id,
            reference=f"batch:{batch_id}",
        ).value

    # =========================================================================
    # Transfer
    # =========================================================================

    def transfer_batch(
        self,
        batch_id: int,
        quantity: Decimal,
        to_branch_id: int,
        actor_id: int,
        *,
        notes: str | None = None,
    ) -> StockTransfer:
        """Move ``quantity`` of a batch to ``to_branch_id`` as a new batch."""
        if quantity is None or quantity <= 0:
            raise ValidationError("quantity", quantity, "must be greater than zero")

        def body(uow: UnitOfWork) -> StockTransfer:
            source = uow.batches.get_batch(batch_id, lock=True)
            if source.branch_id == to_branch_id:
                raise ValidationError(
                    "to_branch_id", to_branch_id, "batch is already at this branch",
                )
            if quantity > source.remaining_quantity:
                raise ValidationError(
                    "quantity", quantity,
                    f"exceeds available {source.remaining_quantity}",
                )

            suffix = uow.sequences.next_value(f"TRF-{source.id}")
            destination = uow.batches.create_batch(
                source.material_id,
                quantity,
                source.unit_cost,
                actor_id,
                purchase_date=source.purchase_date,
                batch_number=f"{source.batch_number}-TRF-{suffix:03d}",
                supplier_id=source.supplier_id,
                purchase_order_id=source.purchase_order_id,
                branch_id=to_branch_id,
                expiry_date=source.expiry_date,
                condition=source.condition,
                notes=f"Transferred from batch {source.batch_number}",
                reference_type="branch_transfer_in",
                reference_id=source.id,
                movement_kind=MovementKind.TRANSFER_IN,
                movement_type="transfer",
            )
            uow.batches.apply_movement(
                source,
                -quantity,
                kind=MovementKind.TRANSFER_OUT,
                movement_type="transfer",
                actor_id=actor_id,
                reference_type="branch_transfer_out",
                reference_id=destination.id,
                notes=f"Transfer to branch {to_branch_id}{f' - {notes}' if notes else ''}",
            )
            logger.info(
                "batch_transferred",
                extra={
                    "source_batch_id": source.id,
                    "destination_batch_id": destination.id,
                    "quantity": str(quantity),
                    "to_branch_id": to_branch_id,
                },
            )
            return StockTransfer(
                source=BatchInfo.from_model(source),
                destination=BatchInfo.from_model(destination),
                quantity=quantity,
                to_branch_id=to_branch_id,
            )

        return self._orchestrator.execute(
            "batch_transfer",
            body,
            actor_id=actor_id,
            reference=f"batch:{batch_id}",
        ).value

    # =========================================================================
    # Reporting
    # =========================================================================

    def batch_summary(self, material_id: int) -> BatchSummary:
        return self._orchestrator.execute(
            "batch_summary_read",
            lambda uow: uow.selector.get_batch_summary(material_id),
        ).value

    def list_batches(
        self,
        material_id: int,
        *,
        include_depleted: bool = False,
        branch_id: int | None = None,
    ) -> list[BatchInfo]:
        return self._orchestrator.execute(
            "batch_list_read",
            lambda uow: uow.selector.list_batches(
                material_id, include_depleted=include_depleted, branch_id=branch_id,
            ),
        ).value

    def movement_history(self, batch_id: int) -> list[MovementInfo]:
        def body(uow: UnitOfWork) -> list[MovementInfo]:
            uow.batches.get_batch(batch_id)
            return uow.selector.movement_history(batch_id)

        return self._orchestrator.execute("movement_history_read", body).value

    def preview_allocation(
        self,
        material_id: int,
        quantity: Decimal,
        *,
        branch_id: int | None = None,
    ) -> AllocationResult:
        """Dry-run FIFO cost for quoting; writes nothing."""
        return self._orchestrator.execute(
            "fifo_preview_read",
            lambda uow: uow.allocator.preview(material_id, quantity, branch_id=branch_id),
        ).value
