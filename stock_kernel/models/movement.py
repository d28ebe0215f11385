"""
Module: stock_kernel.models.movement
Responsibility: ORM persistence for the movement log, the append-only record
    of every quantity change ever applied to an inventory batch.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    M1 -- Rows are immutable once written (db/immutability.py blocks UPDATE
          and DELETE).
    M2 -- For every batch, the sum of its movement quantities (receipt
          included) equals the batch's remaining_quantity.
    M3 -- A reversal row names the consumption row it compensates through
          reverses_movement_id; the sum of reversals against one consumption
          never exceeds that consumption's magnitude.

Failure modes:
    - ImmutabilityViolationError on UPDATE or DELETE.
    - IntegrityError if batch_id or reverses_movement_id dangle.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    BigInteger,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base


class MovementKind(str, Enum):
    """Ledger-level classification of a movement."""

    RECEIPT = "receipt"
    CONSUMPTION = "consumption"
    REVERSAL = "reversal"
    ADJUSTMENT = "adjustment"
    TRANSFER_OUT = "transfer_out"
    TRANSFER_IN = "transfer_in"


class BatchMovementModel(Base):
    """
    One atomic, signed quantity change applied to exactly one batch.

    Contract:
        Positive quantity is an inflow, negative an outflow.  ``kind`` drives
        ledger semantics (only CONSUMPTION rows are reversible);
        ``movement_type`` is the caller's business label ("sale",
        "wastage", "wastage_amendment", ...).

    Non-goals:
        - Does not carry cost.  Cost is always quantity x the batch's
          immutable unit_cost, so it cannot drift from the batch.
    """

    __tablename__ = "batch_movements"

    __table_args__ = (
        # Query: consumptions to reverse for a business reference
        Index("idx_movement_reference", "reference_type", "reference_id", "kind"),
        Index("idx_movement_batch", "batch_id", "id"),
        Index("idx_movement_reverses", "reverses_movement_id"),
    )

    batch_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("inventory_batches.id"),
        nullable=False,
    )

    kind: Mapped[str] = mapped_column(String(20), nullable=False)

    movement_type: Mapped[str] = mapped_column(String(50), nullable=False)

    # Signed: positive = inflow, negative = outflow
    quantity: Mapped[Decimal] = mapped_column(nullable=False)

    reference_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    reference_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    movement_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_by_id: Mapped[int] = mapped_column(BigInteger, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    reverses_movement_id: Mapped[int | None] = mapped_column(
        BigInteger,
        ForeignKey("batch_movements.id"),
        nullable=True,
    )

    @property
    def is_outflow(self) -> bool:
        return self.quantity < 0

    def __repr__(self) -> str:
        return (
            f"<BatchMovement {self.id} batch={self.batch_id} "
            f"{self.kind}/{self.movement_type} {self.quantity} "
            f"ref={self.reference_type}:{self.reference_id}>"
        )
