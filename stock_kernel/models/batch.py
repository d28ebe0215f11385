"""
Module: stock_kernel.models.batch
Responsibility: ORM persistence for inventory batches (lots).  Each batch is
    one receipt event of a material at a specific unit cost and date, and is
    the unit the FIFO allocator consumes from.
Architecture position: Kernel > Models.  May import from db/base.py only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    B1 -- quantity_received > 0 (CHECK constraint; validated by BatchStore).
    B2 -- unit_cost >= 0 (CHECK constraint; validated by BatchStore).
    B3 -- 0 <= remaining_quantity <= quantity_received (CHECK constraint;
          BatchStore.apply_movement raises ConsistencyError first).
    B4 -- quantity_received, unit_cost, purchase_date and material_id are
          frozen after insert (db/immutability.py).
    B5 -- (material_id, purchase_date, id) ordering defines FIFO position.

Failure modes:
    - IntegrityError on a CHECK violation that bypassed the service layer.
    - IntegrityError on duplicate batch_number.

Audit relevance:
    remaining_quantity and is_depleted are the only mutable inventory fields,
    and they change only through BatchStore.apply_movement, which appends a
    BatchMovementModel row for every change.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    Index,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TrackedBase


class InventoryBatchModel(TrackedBase):
    """
    Persistent storage for inventory batches.

    Contract:
        One row per receipt event.  Rows are never deleted.  The
        remaining_quantity column is a running balance maintained by
        BatchStore.apply_movement; its value always equals the sum of the
        batch's movement quantities.

    Guarantees:
        - The FIFO index covers (material_id, is_depleted, purchase_date, id).
        - is_depleted mirrors remaining_quantity <= depletion epsilon.

    Non-goals:
        - Does not reference materials, suppliers or branches by foreign key;
          those entities are owned by other aggregates.
    """

    __tablename__ = "inventory_batches"

    __table_args__ = (
        CheckConstraint("quantity_received > 0", name="ck_batch_quantity_positive"),
        CheckConstraint("unit_cost >= 0", name="ck_batch_unit_cost_non_negative"),
        CheckConstraint(
            "remaining_quantity >= 0 AND remaining_quantity <= quantity_received",
            name="ck_batch_remaining_within_received",
        ),
        # Query: eligible batches for a material in FIFO order
        Index(
            "idx_batch_fifo",
            "material_id",
            "is_depleted",
            "purchase_date",
            "id",
        ),
        Index("idx_batch_material_branch", "material_id", "branch_id"),
        Index("idx_batch_purchase_order", "purchase_order_id"),
    )

    material_id: Mapped[int] = mapped_column(BigInteger, nullable=False)

    batch_number: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        unique=True,
    )

    supplier_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    purchase_order_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    # Scope tag; NULL on batches that predate branch tagging
    branch_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    # FIFO ordering date
    purchase_date: Mapped[date] = mapped_column(Date, nullable=False)

    # INVARIANT B1/B4
    quantity_received: Mapped[Decimal] = mapped_column(nullable=False)

    # INVARIANT B3: running balance, mutated only via apply_movement
    remaining_quantity: Mapped[Decimal] = mapped_column(nullable=False)

    # INVARIANT B2/B4
    unit_cost: Mapped[Decimal] = mapped_column(nullable=False)

    is_depleted: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    location: Mapped[str | None] = mapped_column(String(100), nullable=True)
    condition: Mapped[str] = mapped_column(String(30), nullable=False, default="new")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    @property
    def value(self) -> Decimal:
        """Carrying value of the remaining stock in this batch."""
        return self.remaining_quantity * self.unit_cost

    def __repr__(self) -> str:
        return (
            f"<InventoryBatch {self.id} {self.batch_number}: "
            f"material={self.material_id} "
            f"remaining={self.remaining_quantity}/{self.quantity_received} "
            f"@ {self.unit_cost}>"
        )
