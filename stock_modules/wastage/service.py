"""
Wastage Service (``stock_modules.wastage.service``).

Responsibility
--------------
Submit, approve, reject and amend wastage records.  Approval consumes the
lost quantity from the batch ledger at actual FIFO cost and books the loss
as a negative wastage financial record; amendments adjust an approved
record by allocating or releasing only the difference.

Architecture position
---------------------
**Modules layer** -- thin workflow glue.  Every operation is a body
submitted to ``TransactionOrchestrator.execute``; this module never commits.

Invariants enforced
-------------------
* Approval is all-or-nothing: status, realized cost, consumption movements
  and the financial record commit together.  A shortfall leaves the record
  pending and is returned as a rejected outcome.
* The record row is locked for the duration of a transition, so two
  concurrent approvals of the same record cannot both succeed.
* The estimated cost written at submission is overwritten with the
  allocator's COGS at approval.
* An amendment releases the newest consumed portion first; it never runs
  a fresh FIFO pass for a reduction.

Failure modes
-------------
* ``InvalidStateError`` -- approve/reject from a non-pending record, amend
  from a non-approved record.
* ``JustificationRequiredError`` -- amendment without a justification.
* ``EntityNotFoundError`` -- unknown wastage id.
* ``ValidationError`` -- non-positive quantity, blank reason, unknown
  waste type.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import select

from stock_kernel.exceptions import (
    EntityNotFoundError,
    InsufficientStockError,
    JustificationRequiredError,
    ValidationError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.financial_record import TransactionType
from stock_modules.wastage.models import (
    AmendmentEntry,
    Wastage,
    WastageStatus,
    WasteType,
)
from stock_modules.wastage.orm import WastageModel
from stock_modules.wastage.workflows import WASTAGE_WORKFLOW
from stock_services.transaction_orchestrator import (
    TransactionOrchestrator,
    UnitOfWork,
    WorkflowOutcome,
)

logger = get_logger("modules.wastage.service")

REFERENCE_TYPE = "wastage"
NUMBER_CODE = "WST"


def _coerce_waste_type(value: WasteType | str) -> WasteType:
    if isinstance(value, WasteType):
        return value
    try:
        return WasteType(value)
    except ValueError:
        raise ValidationError("waste_type", value, "unknown waste type") from None


class WastageService:
    """
    Loss reporting over the batch ledger.

    Contract:
        Receives a TransactionOrchestrator; every public method runs as one
        orchestrated workflow and returns DTOs, never ORM rows.

    Non-goals:
        - Does NOT decide who may approve (permission checks belong to the
          caller).
    """

    def __init__(self, orchestrator: TransactionOrchestrator):
        self._orchestrator = orchestrator

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _load(uow: UnitOfWork, wastage_id: int) -> WastageModel:
        row = uow.session.execute(
            select(WastageModel)
            .where(WastageModel.id == wastage_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if row is None:
            raise EntityNotFoundError(REFERENCE_TYPE, wastage_id)
        return row

    # =========================================================================
    # Operations
    # =========================================================================

    def submit(
        self,
        material_id: int,
        quantity: Decimal,
        waste_type: WasteType | str,
        reason: str,
        actor_id: int,
        *,
        description: str | None = None,
        location: str | None = None,
        branch_id: int | None = None,
        wastage_date=None,
    ) -> Wastage:
        """Record a pending loss, costed at the material's current average."""
        if quantity is None or quantity <= 0:
            raise ValidationError("quantity", quantity, "must be greater than zero")
        if not reason or not reason.strip():
            raise ValidationError("reason", reason, "must not be blank")
        kind = _coerce_waste_type(waste_type)

        def body(uow: UnitOfWork) -> Wastage:
            summary = uow.selector.get_batch_summary(material_id)
            row = WastageModel(
                wastage_number=uow.document_number(NUMBER_CODE),
                material_id=material_id,
                branch_id=branch_id,
                quantity=quantity,
                unit_cost=summary.average_cost,
                total_cost=quantity * summary.average_cost,
                waste_type=kind.value,
                reason=reason.strip(),
                description=description,
                wastage_date=wastage_date or uow.clock.today(),
                location=location,
                status=WastageStatus.PENDING.value,
                amendment_count=0,
                amendment_history=[],
                created_by_id=actor_id,
            )
            uow.session.add(row)
            uow.session.flush()
            logger.info(
                "wastage_submitted",
                extra={
                    "wastage_id": row.id,
                    "wastage_number": row.wastage_number,
                    "material_id": material_id,
                    "quantity": str(quantity),
                    "estimated_cost": str(row.total_cost),
                },
            )
            return row.to_dto()

        return self._orchestrator.execute(
            "wastage_submit", body, actor_id=actor_id,
        ).value

    def approve(
        self,
        wastage_id: int,
        actor_id: int,
        *,
        notes: str | None = None,
    ) -> WorkflowOutcome[Wastage]:
        """
        Consume the wastage quantity via FIFO and book the actual loss.

        Returns:
            Committed outcome carrying the approved Wastage, or a rejected
            outcome with the shortfall (the record stays pending).
        """

        def body(uow: UnitOfWork) -> Wastage:
            row = self._load(uow, wastage_id)
            WASTAGE_WORKFLOW.transition_for(row.status, "approve", wastage_id)

            check = uow.allocator.preview(
                row.material_id, row.quantity, branch_id=row.branch_id,
            )
            if not check.can_fulfill:
                raise InsufficientStockError(
                    material_id=row.material_id,
                    requested=row.quantity,
                    available=check.total_available,
                )
            uow.checkpoint("wastage_stock_checked")

            result = uow.allocate_or_abort(
                row.material_id,
                row.quantity,
                "wastage",
                REFERENCE_TYPE,
                row.id,
                actor_id,
                branch_id=row.branch_id,
            )

            row.unit_cost = result.average_unit_cost
            row.total_cost = result.total_cogs
            row.status = WastageStatus.APPROVED.value
            row.approved_by_id = actor_id
            row.approved_at = uow.clock.now()
            row.approval_notes = notes
            row.updated_by_id = actor_id

            uow.records.record(
                TransactionType.WASTAGE,
                -result.total_cogs,
                actor_id,
                reference_type=REFERENCE_TYPE,
                reference_id=row.id,
                material_id=row.material_id,
                quantity=-row.quantity,
                unit_price=result.average_unit_cost,
                description=f"Wastage - {row.waste_type}: {row.reason}",
            )
            uow.session.flush()

            logger.info(
                "wastage_approved",
                extra={
                    "wastage_id": row.id,
                    "wastage_number": row.wastage_number,
                    "total_cogs": str(result.total_cogs),
                    "batches_used": result.batches_used,
                },
            )
            return row.to_dto()

        return self._orchestrator.execute(
            "wastage_approval",
            body,
            actor_id=actor_id,
            reference=f"{REFERENCE_TYPE}:{wastage_id}",
        )

    def reject(
        self,
        wastage_id: int,
        actor_id: int,
        *,
        notes: str | None = None,
    ) -> Wastage:
        """Status change only: no movement, no financial record."""

        def body(uow: UnitOfWork) -> Wastage:
            row = self._load(uow, wastage_id)
            WASTAGE_WORKFLOW.transition_for(row.status, "reject", wastage_id)
            row.status = WastageStatus.REJECTED.value
            row.approved_by_id = actor_id
            row.approved_at = uow.clock.now()
            row.approval_notes = notes
            row.updated_by_id = actor_id
            uow.session.flush()
            logger.info(
                "wastage_rejected",
                extra={"wastage_id": row.id, "wastage_number": row.wastage_number},
            )
            return row.to_dto()

        return self._orchestrator.execute(
            "wastage_rejection",
            body,
            actor_id=actor_id,
            reference=f"{REFERENCE_TYPE}:{wastage_id}",
        ).value

    def amend(
        self,
        wastage_id: int,
        new_quantity: Decimal,
        actor_id: int,
        justification: str,
    ) -> WorkflowOutcome[Wastage]:
        """
        Change the quantity of an approved wastage.

        An increase allocates only the difference via FIFO; a decrease
        returns the newest consumed portion to its batches.  The record's
        cost becomes old cost plus or minus the difference's cost, and the
        difference is booked as an adjustment: negative for additional
        loss, positive for recovery.
        """
        if justification is None or not justification.strip():
            raise JustificationRequiredError(REFERENCE_TYPE, wastage_id)
        if new_quantity is None or new_quantity < 0:
            raise ValidationError("new_quantity", new_quantity, "must not be negative")

        def body(uow: UnitOfWork) -> Wastage:
            row = self._load(uow, wastage_id)
            WASTAGE_WORKFLOW.transition_for(row.status, "amend", wastage_id)

            previous_quantity = row.quantity
            previous_cost = row.total_cost
            delta = new_quantity - previous_quantity
            if delta == 0:
                raise ValidationError(
                    "new_quantity", new_quantity, "equals the current quantity",
                )

            if delta > 0:
                result = uow.allocate_or_abort(
                    row.material_id,
                    delta,
                    "wastage_amendment",
                    REFERENCE_TYPE,
                    row.id,
                    actor_id,
                    branch_id=row.branch_id,
                )
                delta_cost = result.total_cogs
            else:
                plan = uow.release(
                    REFERENCE_TYPE,
                    row.id,
                    -delta,
                    actor_id,
                    movement_type="wastage_amendment",
                )
                delta_cost = -plan.total_cost

            new_cost = previous_cost + delta_cost
            now = uow.clock.now()
            entry = AmendmentEntry(
                amended_at=now,
                amended_by_id=actor_id,
                previous_quantity=previous_quantity,
                new_quantity=new_quantity,
                previous_total_cost=previous_cost,
                new_total_cost=new_cost,
                justification=justification.strip(),
            )

            row.quantity = new_quantity
            row.total_cost = new_cost
            if new_quantity > 0:
                row.unit_cost = new_cost / new_quantity
            row.amendment_history = [*(row.amendment_history or []), entry.to_json()]
            row.amendment_count = (row.amendment_count or 0) + 1
            row.last_amended_at = now
            row.last_amended_by_id = actor_id
            row.updated_by_id = actor_id

            uow.records.record(
                TransactionType.ADJUSTMENT,
                -delta_cost,
                actor_id,
                reference_type=REFERENCE_TYPE,
                reference_id=row.id,
                material_id=row.material_id,
                quantity=-delta,
                description=(
                    f"Wastage amendment {row.wastage_number}: "
                    f"{previous_quantity} -> {new_quantity} | {entry.justification}"
                ),
            )
            uow.session.flush()

            logger.info(
                "wastage_amended",
                extra={
                    "wastage_id": row.id,
                    "previous_quantity": str(previous_quantity),
                    "new_quantity": str(new_quantity),
                    "delta_cost": str(delta_cost),
                    "amendment_count": row.amendment_count,
                },
            )
            return row.to_dto()

        return self._orchestrator.execute(
            "wastage_amendment",
            body,
            actor_id=actor_id,
            reference=f"{REFERENCE_TYPE}:{wastage_id}",
        )

    def get(self, wastage_id: int) -> Wastage:
        def body(uow: UnitOfWork) -> Wastage:
            row = uow.session.get(WastageModel, wastage_id)
            if row is None:
                raise EntityNotFoundError(REFERENCE_TYPE, wastage_id)
            return row.to_dto()

        return self._orchestrator.execute("wastage_read", body).value
