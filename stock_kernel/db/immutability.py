"""
ORM-Level Immutability Enforcement for the Stock Ledger.

===============================================================================
WHY THIS EXISTS
===============================================================================

FIFO costing is only exact if history cannot be edited.  A reversal must be
able to trust that the consumption row it compensates still says what it
said when it was written, and that the batch it returns stock to still has
the unit cost it was received at.

SQLAlchemy fires mapper events before UPDATE/DELETE statements are sent:

    session.flush()
         |
         v
    [before_update] --> _check_*() --> ImmutabilityViolationError
         |
         v
    [before_delete] --> _check_*_delete() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity               | Rule
---------------------|-------------------------------------------------------
BatchMovementModel   | ALWAYS immutable, never deleted
FinancialRecordModel | ALWAYS immutable, never deleted
InventoryBatchModel  | Never deleted; quantity_received, unit_cost,
                     | purchase_date, material_id frozen after insert.
                     | remaining_quantity / is_depleted stay mutable
                     | (BatchStore.apply_movement owns them).

updated_at / updated_by_id are audit metadata and are always allowed to
change.

===============================================================================
USAGE
===============================================================================

    from stock_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()   # idempotent; engine init calls it

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
    ...
    register_immutability_listeners()
"""

from sqlalchemy import event
from sqlalchemy.orm.attributes import get_history

from stock_kernel.exceptions import ImmutabilityViolationError
from stock_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

FROZEN_BATCH_FIELDS = (
    "material_id",
    "quantity_received",
    "unit_cost",
    "purchase_date",
)


def _blocked(entity_type: str, entity_id, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": entity_id,
            "operation": operation,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
    )


def _check_movement_update(mapper, connection, target):
    raise _blocked(
        "BatchMovement",
        target.id,
        "UPDATE",
        "Batch movements are append-only; write a compensating movement instead",
    )


def _check_movement_delete(mapper, connection, target):
    raise _blocked(
        "BatchMovement",
        target.id,
        "DELETE",
        "Batch movements cannot be deleted",
    )


def _check_financial_record_update(mapper, connection, target):
    raise _blocked(
        "FinancialRecord",
        target.id,
        "UPDATE",
        "Financial records are append-only; write an opposite-signed record instead",
    )


def _check_financial_record_delete(mapper, connection, target):
    raise _blocked(
        "FinancialRecord",
        target.id,
        "DELETE",
        "Financial records cannot be deleted",
    )


def _check_batch_update(mapper, connection, target):
    changed = [f for f in FROZEN_BATCH_FIELDS if get_history(target, f).has_changes()]
    if changed:
        raise _blocked(
            "InventoryBatch",
            target.id,
            "UPDATE",
            f"Fields {', '.join(changed)} are fixed at receipt",
        )


def _check_batch_delete(mapper, connection, target):
    raise _blocked(
        "InventoryBatch",
        target.id,
        "DELETE",
        "Inventory batches are never deleted; depleted batches stay on record",
    )


def _listeners():
    from stock_kernel.models.batch import InventoryBatchModel
    from stock_kernel.models.financial_record import FinancialRecordModel
    from stock_kernel.models.movement import BatchMovementModel

    return (
        (BatchMovementModel, "before_update", _check_movement_update),
        (BatchMovementModel, "before_delete", _check_movement_delete),
        (FinancialRecordModel, "before_update", _check_financial_record_update),
        (FinancialRecordModel, "before_delete", _check_financial_record_delete),
        (InventoryBatchModel, "before_update", _check_batch_update),
        (InventoryBatchModel, "before_delete", _check_batch_delete),
    )


def register_immutability_listeners():
    """Register all immutability listeners.  Safe to call more than once."""
    for target, event_name, fn in _listeners():
        if not event.contains(target, event_name, fn):
            event.listen(target, event_name, fn)


def unregister_immutability_listeners():
    """
    Remove immutability listeners.

    WARNING: Only use this in tests that deliberately tamper with history.
    """
    for target, event_name, fn in _listeners():
        if event.contains(target, event_name, fn):
            event.remove(target, event_name, fn)
