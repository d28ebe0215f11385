"""
stock_services.fifo_allocator -- FIFO costing over the batch ledger.

Responsibility:
    Consume a material's batches oldest-first and price the consumption at
    each batch's own unit cost (``allocate``), show the same result without
    writing (``preview``), return a reference's consumption to the exact
    batches it came from (``reverse``), and give back part of it, newest
    portion first (``release``).

Architecture position:
    Services -- stateful orchestration over engines + kernel.
    Locks and mutates through ``stock_kernel.services.batch_store``; decides
    quantities and cost through ``stock_engines.fifo``.  Flush-only: the
    TransactionOrchestrator owns the transaction.

Invariants enforced:
    - All-or-nothing: candidate batches are locked, the complete plan is
      computed, and only a fully satisfiable plan is applied.  A shortfall
      returns an AllocationFailure and writes nothing.
    - Preview parity: preview and allocate feed the same planner with the
      same snapshot type; only the locking and the writes differ.
    - Exact reversal: reversal never re-runs FIFO selection; each
      compensating movement targets the batch of the consumption it
      reverses and names it in reverses_movement_id.
    - Idempotent reversal: only outstanding (not yet returned) quantity is
      reversed, computed after the batches are locked.  A second reverse
      for the same reference returns reversed_count == 0.
    - No double-spend: the lock is taken before the plan is computed and is
      held until the enclosing transaction ends.

Failure modes:
    - ValidationError for non-positive quantities, or a release larger
      than the outstanding consumption.
    - ConsistencyError from the BatchStore if a movement would leave a
      batch out of range (a bug; the orchestrator rolls back).
    - TransactionTimeout from the optional deadline between batches.

Audit relevance:
    Every consumption writes a movement whose note records quantity, unit
    cost and line COGS, so historical cost can be re-derived from the
    movement log alone.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.orm import Session

from stock_engines.fifo import (
    DEFAULT_DEPLETION_EPSILON,
    AllocationFailure,
    AllocationResult,
    BatchSnapshot,
    OutstandingConsumption,
    ReleasePlan,
    plan_fifo,
    plan_release,
)
from stock_kernel.domain.clock import Clock
from stock_kernel.domain.deadline import Deadline
from stock_kernel.exceptions import ValidationError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.batch import InventoryBatchModel
from stock_kernel.models.movement import MovementKind
from stock_kernel.selectors.batch_selector import quantize
from stock_kernel.services.batch_store import BatchStore

logger = get_logger("services.fifo_allocator")

ZERO = Decimal("0")


@dataclass(frozen=True)
class ReversalResult:
    reference_type: str
    reference_id: int
    reversed_count: int
    quantity_restored: Decimal
    cost_restored: Decimal
    batch_ids: tuple[int, ...] = ()


def _snapshot(batch: InventoryBatchModel) -> BatchSnapshot:
    return BatchSnapshot(
        batch_id=batch.id,
        batch_number=batch.batch_number,
        purchase_date=batch.purchase_date,
        remaining_quantity=batch.remaining_quantity,
        unit_cost=batch.unit_cost,
        supplier_id=batch.supplier_id,
    )


class FifoAllocator:
    """
    FIFO consumption, preview, reversal and partial release.

    Contract:
        Receives a Session (and optionally a BatchStore sharing it).  All
        writes go through BatchStore.apply_movement.

    Guarantees:
        - ``allocate`` either applies a complete plan or writes nothing.
        - ``reverse`` restores every touched batch's remaining quantity and
          depletion flag to their pre-allocation values when no other
          movement touched those batches in between.

    Non-goals:
        - Does NOT commit or roll back.
        - Does NOT raise for insufficient stock; callers that need to abort
          a larger unit of work raise InsufficientStockError themselves.
    """

    def __init__(
        self,
        session: Session,
        batch_store: BatchStore | None = None,
        clock: Clock | None = None,
        depletion_epsilon: Decimal = DEFAULT_DEPLETION_EPSILON,
        quantity_places: int = 3,
        money_places: int = 3,
    ):
        self.session = session
        self._quantity_places = quantity_places
        self._money_places = money_places
        self.batches = batch_store or BatchStore(
            session, clock=clock, depletion_epsilon=depletion_epsilon
        )

    def _qty(self, value: Decimal) -> Decimal:
        return quantize(value, self._quantity_places)

    def _money(self, value: Decimal) -> Decimal:
        return quantize(value, self._money_places)

    # =========================================================================
    # Allocation
    # =========================================================================

    def allocate(
        self,
        material_id: int,
        quantity: Decimal,
        movement_type: str,
        reference_type: str,
        reference_id: int,
        actor_id: int,
        *,
        branch_id: int | None = None,
        deadline: Deadline | None = None,
    ) -> AllocationResult:
        """
        Consume ``quantity`` of ``material_id`` oldest-first.

        Returns:
            AllocationSuccess with one line per batch touched, or
            AllocationFailure (requested, available, shortfall) with no
            batch changed.
        """
        if quantity is None or quantity <= ZERO:
            raise ValidationError("quantity", quantity, "must be greater than zero")

        t0 = time.monotonic()
        logger.info(
            "fifo_allocation_started",
            extra={
                "material_id": material_id,
                "quantity": str(quantity),
                "movement_type": movement_type,
                "reference_type": reference_type,
                "reference_id": reference_id,
                "branch_id": branch_id,
            },
        )

        locked = self.batches.list_eligible_batches(material_id, branch_id, lock=True)
        if deadline is not None:
            deadline.check("fifo_batches_locked")

        result = plan_fifo(
            material_id=material_id,
            requested=quantity,
            batches=[_snapshot(b) for b in locked],
        )

        if isinstance(result, AllocationFailure):
            logger.warning(
                "fifo_allocation_insufficient_stock",
                extra={
                    "material_id": material_id,
                    "requested": str(result.requested),
                    "available": str(result.available),
                    "shortfall": str(result.shortfall),
                    "reason": result.reason,
                },
            )
            return result

        by_id = {b.id: b for b in locked}
        for line in result.lines:
            if deadline is not None:
                deadline.check("fifo_apply_movement")
            self.batches.apply_movement(
                by_id[line.batch_id],
                -line.quantity,
                kind=MovementKind.CONSUMPTION,
                movement_type=movement_type,
                actor_id=actor_id,
                reference_type=reference_type,
                reference_id=reference_id,
                notes=(
                    f"FIFO allocation: {self._qty(line.quantity)} units "
                    f"@ {self._money(line.unit_cost)}/unit = {self._money(line.cost)} COGS"
                ),
            )

        duration_ms = round((time.monotonic() - t0) * 1000, 2)
        logger.info(
            "fifo_allocation_completed",
            extra={
                "material_id": material_id,
                "quantity": str(quantity),
                "total_cogs": str(result.total_cogs),
                "batches_used": result.batches_used,
                "reference_type": reference_type,
                "reference_id": reference_id,
                "duration_ms": duration_ms,
            },
        )
        return result

    def preview(
        self,
        material_id: int,
        quantity: Decimal,
        *,
        branch_id: int | None = None,
    ) -> AllocationResult:
        """What ``allocate`` would do against the current batch state."""
        if quantity is None or quantity <= ZERO:
            raise ValidationError("quantity", quantity, "must be greater than zero")

        batches = self.batches.list_eligible_batches(material_id, branch_id)
        result = plan_fifo(
            material_id=material_id,
            requested=quantity,
            batches=[_snapshot(b) for b in batches],
        )
        logger.debug(
            "fifo_preview_computed",
            extra={
                "material_id": material_id,
                "quantity": str(quantity),
                "can_fulfill": result.can_fulfill,
                "total_available": str(result.total_available),
                "total_cogs": str(result.total_cogs),
            },
        )
        return result

    # =========================================================================
    # Reversal
    # =========================================================================

    def reverse(
        self,
        reference_type: str,
        reference_id: int,
        actor_id: int,
        *,
        movement_type: str = "reversal",
        deadline: Deadline | None = None,
    ) -> ReversalResult:
        """
        Return every outstanding consumption for a reference to its own batch.

        Safe to call when there is nothing to reverse, and safe to call
        twice: the second call finds nothing outstanding.
        """
        consumptions = self.batches.consumptions_for_reference(reference_type, reference_id)
        if not consumptions:
            logger.info(
                "fifo_reversal_nothing_to_reverse",
                extra={"reference_type": reference_type, "reference_id": reference_id},
            )
            return ReversalResult(reference_type, reference_id, 0, ZERO, ZERO)

        locked = self.batches.lock_batches(m.batch_id for m in consumptions)
        outstanding = self.batches.outstanding_consumptions(reference_type, reference_id)

        quantity_restored = ZERO
        cost_restored = ZERO
        touched: list[int] = []
        for movement, qty in outstanding:
            if deadline is not None:
                deadline.check("fifo_reverse_movement")
            batch = locked[movement.batch_id]
            self.batches.apply_movement(
                batch,
                qty,
                kind=MovementKind.REVERSAL,
                movement_type=movement_type,
                actor_id=actor_id,
                reference_type=reference_type,
                reference_id=reference_id,
                reverses_movement_id=movement.id,
                notes=(
                    f"Reversal of movement {movement.id}: {self._qty(qty)} units "
                    f"@ {self._money(batch.unit_cost)}/unit"
                ),
            )
            quantity_restored += qty
            cost_restored += qty * batch.unit_cost
            if batch.id not in touched:
                touched.append(batch.id)

        result = ReversalResult(
            reference_type=reference_type,
            reference_id=reference_id,
            reversed_count=len(outstanding),
            quantity_restored=quantity_restored,
            cost_restored=cost_restored,
            batch_ids=tuple(touched),
        )
        logger.info(
            "fifo_reversal_completed",
            extra={
                "reference_type": reference_type,
                "reference_id": reference_id,
                "reversed_count": result.reversed_count,
                "quantity_restored": str(quantity_restored),
                "cost_restored": str(cost_restored),
            },
        )
        return result

    def release(
        self,
        reference_type: str,
        reference_id: int,
        quantity: Decimal,
        actor_id: int,
        *,
        movement_type: str = "release",
        deadline: Deadline | None = None,
    ) -> ReleasePlan:
        """
        Return ``quantity`` of a reference's consumption, newest portion
        first, to the batches it came from.

        Returns:
            The applied ReleasePlan; ``total_cost`` is the cost given back.
        """
        consumptions = self.batches.consumptions_for_reference(reference_type, reference_id)
        locked = self.batches.lock_batches(m.batch_id for m in consumptions)
        outstanding = self.batches.outstanding_consumptions(reference_type, reference_id)

        plan = plan_release(
            quantity=quantity,
            consumptions=[
                OutstandingConsumption(
                    movement_id=m.id,
                    batch_id=m.batch_id,
                    outstanding=qty,
                    unit_cost=locked[m.batch_id].unit_cost,
                )
                for m, qty in outstanding
            ],
        )

        for line in plan.lines:
            if deadline is not None:
                deadline.check("fifo_release_movement")
            self.batches.apply_movement(
                locked[line.batch_id],
                line.quantity,
                kind=MovementKind.REVERSAL,
                movement_type=movement_type,
                actor_id=actor_id,
                reference_type=reference_type,
                reference_id=reference_id,
                reverses_movement_id=line.movement_id,
                notes=(
                    f"Partial release of movement {line.movement_id}: "
                    f"{self._qty(line.quantity)} units"
                ),
            )

        logger.info(
            "fifo_release_completed",
            extra={
                "reference_type": reference_type,
                "reference_id": reference_id,
                "quantity": str(quantity),
                "cost_released": str(plan.total_cost),
                "movements_touched": len(plan.lines),
            },
        )
        return plan
