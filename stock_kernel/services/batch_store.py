"""
BatchStore -- inventory batches and their append-only movement log.

Responsibility:
    Create batches on receipt, find and lock the batches a FIFO request may
    consume, and apply signed quantity changes.  ``apply_movement`` is the
    ONLY code path that writes ``remaining_quantity``; every call appends
    exactly one BatchMovementModel row in the same flush.

Architecture position:
    Kernel > Services.  Flush-only (see services/base.py).  Consumed by the
    FifoAllocator and the inventory module; never by selectors.

Invariants enforced:
    - 0 <= remaining_quantity <= quantity_received after every movement
      (ConsistencyError before anything is written).
    - Sum of a batch's movement quantities == remaining_quantity (the
      receipt movement is written with the batch).
    - is_depleted is recomputed on every movement with
      stock_engines.fifo.is_depleted, the same threshold the planner uses;
      remaining_quantity itself is never rounded.
    - Scope fallback: a branch filter narrows eligible batches only when at
      least one eligible batch carries that branch; otherwise the unscoped
      set is used.  The decision is an explicit existence check and is
      logged.  If the locked scoped read comes back empty the unscoped
      set is read instead.

Locking discipline:
    ``list_eligible_batches(lock=True)`` and ``lock_batches`` issue
    ``SELECT ... FOR UPDATE`` ordered by id, so two transactions locking
    overlapping batch sets always queue in the same order.  Callers must
    hold the lock on a batch before passing it to ``apply_movement``.  On
    SQLite the whole transaction already holds the write lock (BEGIN
    IMMEDIATE, see db/engine.py).

Failure modes:
    - ValidationError for quantity_received <= 0, unit_cost < 0, or a zero
      movement.
    - ConsistencyError when a movement would leave the batch out of range.
    - BatchNotFoundError for unknown batch ids.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stock_engines.fifo import DEFAULT_DEPLETION_EPSILON, is_depleted
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.exceptions import (
    BatchNotFoundError,
    ConsistencyError,
    ValidationError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.batch import InventoryBatchModel
from stock_kernel.models.movement import BatchMovementModel, MovementKind
from stock_kernel.services.base import BaseService
from stock_kernel.services.sequence_service import SequenceService

logger = get_logger("services.batch_store")


class BatchStore(BaseService[InventoryBatchModel]):
    """
    Durable store of inventory lots and the movements applied to them.

    Contract:
        Every public mutator flushes and returns the persisted rows.  The
        caller's transaction decides whether they survive.

    Guarantees:
        - Eligible batches come back in (purchase_date, id) order.
        - No method commits, rolls back, or deletes.

    Non-goals:
        - Does not decide WHICH batches to consume (stock_engines.fifo).
        - Does not compute cost.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        depletion_epsilon: Decimal = DEFAULT_DEPLETION_EPSILON,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._epsilon = depletion_epsilon
        self._sequences = SequenceService(session)

    # =========================================================================
    # Creation
    # =========================================================================

    def create_batch(
        self,
        material_id: int,
        quantity_received: Decimal,
        unit_cost: Decimal,
        actor_id: int,
        *,
        purchase_date: date | None = None,
        batch_number: str | None = None,
        supplier_id: int | None = None,
        purchase_order_id: int | None = None,
        branch_id: int | None = None,
        expiry_date: date | None = None,
        location: str | None = None,
        condition: str = "new",
        notes: str | None = None,
        reference_type: str = "manual_receipt",
        reference_id: int | None = None,
        movement_kind: MovementKind = MovementKind.RECEIPT,
        movement_type: str = "receipt",
    ) -> InventoryBatchModel:
        """
        Insert a lot with remaining_quantity = quantity_received and write
        its positive receipt movement.

        Raises:
            ValidationError: quantity_received <= 0 or unit_cost < 0.
        """
        if quantity_received is None or quantity_received <= 0:
            raise ValidationError(
                "quantity_received", quantity_received, "must be greater than zero"
            )
        if unit_cost is None or unit_cost < 0:
            raise ValidationError("unit_cost", unit_cost, "must not be negative")

        if batch_number is None:
            seq = self._sequences.next_value(f"BATCH-{material_id}")
            batch_number = f"BATCH-{material_id}-{seq:06d}"

        batch = InventoryBatchModel(
            material_id=material_id,
            batch_number=batch_number,
            supplier_id=supplier_id,
            purchase_order_id=purchase_order_id,
            branch_id=branch_id,
            purchase_date=purchase_date or self._clock.today(),
            quantity_received=quantity_received,
            remaining_quantity=quantity_received,
            unit_cost=unit_cost,
            is_depleted=False,
            expiry_date=expiry_date,
            location=location,
            condition=condition,
            notes=notes,
            created_by_id=actor_id,
        )
        self.session.add(batch)
        self.session.flush()

        self._append_movement(
            batch,
            quantity_received,
            kind=movement_kind,
            movement_type=movement_type,
            actor_id=actor_id,
            reference_type=reference_type,
            reference_id=reference_id,
            notes=notes,
        )
        self.session.flush()

        logger.info(
            "batch_created",
            extra={
                "batch_id": batch.id,
                "batch_number": batch.batch_number,
                "material_id": material_id,
                "quantity_received": str(quantity_received),
                "unit_cost": str(unit_cost),
                "purchase_date": batch.purchase_date.isoformat(),
                "branch_id": branch_id,
                "reference_type": reference_type,
                "reference_id": reference_id,
            },
        )
        return batch

    # =========================================================================
    # Lookup and locking
    # =========================================================================

    def get_batch(self, batch_id: int, *, lock: bool = False) -> InventoryBatchModel:
        stmt = select(InventoryBatchModel).where(InventoryBatchModel.id == batch_id)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        batch = self.session.execute(stmt).scalar_one_or_none()
        if batch is None:
            raise BatchNotFoundError(batch_id)
        return batch

    def lock_batches(self, batch_ids: Iterable[int]) -> dict[int, InventoryBatchModel]:
        """Lock the given batches in id order and return them keyed by id."""
        ids = sorted(set(batch_ids))
        if not ids:
            return {}
        rows = self.session.execute(
            select(InventoryBatchModel)
            .where(InventoryBatchModel.id.in_(ids))
            .order_by(InventoryBatchModel.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalars().all()
        found = {b.id: b for b in rows}
        missing = [i for i in ids if i not in found]
        if missing:
            raise BatchNotFoundError(missing[0])
        return found

    def _eligible_filter(self, material_id: int):
        return (
            InventoryBatchModel.material_id == material_id,
            InventoryBatchModel.is_depleted.is_(False),
            InventoryBatchModel.remaining_quantity > 0,
        )

    def has_scoped_batches(self, material_id: int, branch_id: int) -> bool:
        return (
            self.session.execute(
                select(InventoryBatchModel.id)
                .where(
                    *self._eligible_filter(material_id),
                    InventoryBatchModel.branch_id == branch_id,
                )
                .limit(1)
            ).first()
            is not None
        )

    def _fetch_eligible(
        self,
        material_id: int,
        branch_id: int | None,
        lock: bool,
    ) -> list[InventoryBatchModel]:
        conditions = list(self._eligible_filter(material_id))
        if branch_id is not None:
            conditions.append(InventoryBatchModel.branch_id == branch_id)

        stmt = select(InventoryBatchModel).where(*conditions)
        if lock:
            stmt = (
                stmt.order_by(InventoryBatchModel.id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
        else:
            stmt = stmt.order_by(
                InventoryBatchModel.purchase_date,
                InventoryBatchModel.id,
            )

        batches = list(self.session.execute(stmt).scalars().all())
        if lock:
            batches.sort(key=lambda b: (b.purchase_date, b.id))
        return batches

    def list_eligible_batches(
        self,
        material_id: int,
        branch_id: int | None = None,
        *,
        lock: bool = False,
    ) -> list[InventoryBatchModel]:
        """
        Non-depleted batches with stock, oldest first.

        Args:
            material_id: Material to scan.
            branch_id: Optional scope.  Applied only if at least one
                eligible batch carries it.
            lock: Take row locks (id order) on the returned batches.
        """
        scoped = branch_id is not None and self.has_scoped_batches(material_id, branch_id)
        if branch_id is not None and not scoped:
            logger.debug(
                "eligible_batches_scope_fallback",
                extra={"material_id": material_id, "branch_id": branch_id},
            )

        batches = self._fetch_eligible(material_id, branch_id if scoped else None, lock)
        if scoped and not batches:
            # The existence check is unlocked; the branch may have been
            # drained before the locked read.
            logger.debug(
                "eligible_batches_scope_fallback",
                extra={
                    "material_id": material_id,
                    "branch_id": branch_id,
                    "after_lock": lock,
                },
            )
            batches = self._fetch_eligible(material_id, None, lock)

        logger.debug(
            "eligible_batches_listed",
            extra={
                "material_id": material_id,
                "branch_id": branch_id,
                "batch_count": len(batches),
                "locked": lock,
            },
        )
        return batches

    # =========================================================================
    # Mutation
    # =========================================================================

    def apply_movement(
        self,
        batch: InventoryBatchModel,
        quantity: Decimal,
        *,
        kind: MovementKind,
        movement_type: str,
        actor_id: int,
        reference_type: str | None = None,
        reference_id: int | None = None,
        notes: str | None = None,
        reverses_movement_id: int | None = None,
    ) -> BatchMovementModel:
        """
        Apply a signed quantity change to a locked batch.

        Preconditions:
            ``batch`` was loaded with a row lock in the current transaction.

        Raises:
            ValidationError: quantity is zero.
            ConsistencyError: result would be < 0 or > quantity_received.
        """
        if quantity == 0:
            raise ValidationError("quantity", quantity, "movement quantity must be non-zero")

        new_remaining = batch.remaining_quantity + quantity
        if new_remaining < 0 or new_remaining > batch.quantity_received:
            error = ConsistencyError(
                batch_id=batch.id,
                remaining_quantity=batch.remaining_quantity,
                delta=quantity,
                quantity_received=batch.quantity_received,
            )
            logger.error(
                "batch_consistency_violation",
                extra={
                    "batch_id": batch.id,
                    "remaining_quantity": str(batch.remaining_quantity),
                    "delta": str(quantity),
                    "quantity_received": str(batch.quantity_received),
                    "kind": kind.value,
                    "reference_type": reference_type,
                    "reference_id": reference_id,
                },
            )
            raise error

        was_depleted = batch.is_depleted
        batch.remaining_quantity = new_remaining
        batch.is_depleted = is_depleted(new_remaining, self._epsilon)
        batch.updated_by_id = actor_id

        movement = self._append_movement(
            batch,
            quantity,
            kind=kind,
            movement_type=movement_type,
            actor_id=actor_id,
            reference_type=reference_type,
            reference_id=reference_id,
            notes=notes,
            reverses_movement_id=reverses_movement_id,
        )
        self.session.flush()

        logger.info(
            "batch_movement_applied",
            extra={
                "batch_id": batch.id,
                "movement_id": movement.id,
                "kind": kind.value,
                "movement_type": movement_type,
                "quantity": str(quantity),
                "remaining_quantity": str(new_remaining),
                "is_depleted": batch.is_depleted,
                "depletion_changed": was_depleted != batch.is_depleted,
            },
        )
        return movement

    def _append_movement(
        self,
        batch: InventoryBatchModel,
        quantity: Decimal,
        *,
        kind: MovementKind,
        movement_type: str,
        actor_id: int,
        reference_type: str | None,
        reference_id: int | None,
        notes: str | None,
        reverses_movement_id: int | None = None,
    ) -> BatchMovementModel:
        movement = BatchMovementModel(
            batch_id=batch.id,
            kind=kind.value,
            movement_type=movement_type,
            quantity=quantity,
            reference_type=reference_type,
            reference_id=reference_id,
            movement_date=self._clock.now(),
            notes=notes,
            created_by_id=actor_id,
            reverses_movement_id=reverses_movement_id,
        )
        self.session.add(movement)
        return movement

    # =========================================================================
    # Movement log queries
    # =========================================================================

    def list_movements(self, batch_id: int) -> list[BatchMovementModel]:
        """Movement history of one batch, oldest first."""
        return list(
            self.session.execute(
                select(BatchMovementModel)
                .where(BatchMovementModel.batch_id == batch_id)
                .order_by(BatchMovementModel.id)
            ).scalars().all()
        )

    def consumptions_for_reference(
        self,
        reference_type: str,
        reference_id: int,
    ) -> list[BatchMovementModel]:
        return list(
            self.session.execute(
                select(BatchMovementModel)
                .where(
                    BatchMovementModel.reference_type == reference_type,
                    BatchMovementModel.reference_id == reference_id,
                    BatchMovementModel.kind == MovementKind.CONSUMPTION.value,
                )
                .order_by(BatchMovementModel.id)
            ).scalars().all()
        )

    def reversed_quantities(self, movement_ids: Iterable[int]) -> dict[int, Decimal]:
        """Total already returned against each consumption movement id."""
        ids = list(movement_ids)
        if not ids:
            return {}
        rows = self.session.execute(
            select(
                BatchMovementModel.reverses_movement_id,
                func.sum(BatchMovementModel.quantity),
            )
            .where(BatchMovementModel.reverses_movement_id.in_(ids))
            .group_by(BatchMovementModel.reverses_movement_id)
        ).all()
        return {movement_id: Decimal(str(total)) for movement_id, total in rows}

    def outstanding_consumptions(
        self,
        reference_type: str,
        reference_id: int,
    ) -> list[tuple[BatchMovementModel, Decimal]]:
        """
        Consumption movements for a reference with quantity not yet returned.

        Call after locking the affected batches so that a concurrent
        reversal has either committed (and is counted) or is waiting.
        """
        consumptions = self.consumptions_for_reference(reference_type, reference_id)
        returned = self.reversed_quantities(m.id for m in consumptions)
        result: list[tuple[BatchMovementModel, Decimal]] = []
        for movement in consumptions:
            outstanding = -movement.quantity - returned.get(movement.id, Decimal("0"))
            if outstanding > 0:
                result.append((movement, outstanding))
        return result
