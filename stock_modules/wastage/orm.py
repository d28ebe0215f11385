"""
Module: stock_modules.wastage.orm
Responsibility: SQLAlchemy persistence for wastage records.  Maps the frozen
    ``Wastage`` DTO to the ``wastages`` table, including the JSON amendment
    history kept for audit.

Architecture position: Modules > Wastage > ORM.  Inherits from TrackedBase
    (stock_kernel.db.base).  References materials and branches by id with no
    foreign key; the batch ledger links back via
    (reference_type="wastage", reference_id=id).

Invariants enforced:
    - Monetary and quantity fields use Decimal (Numeric(38,9)).
    - Status and waste type are stored as String(50).
    - wastage_number is unique.

Failure modes:
    - IntegrityError on duplicate wastage_number.
"""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import JSON, Date, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TrackedBase


class WastageModel(TrackedBase):
    """
    ORM model for a wastage record.

    Maps to: stock_modules.wastage.models.Wastage (frozen dataclass).

    Guarantees:
        - amendment_history is a JSON list of AmendmentEntry.to_json() dicts,
          appended to, never rewritten.
    """

    __tablename__ = "wastages"

    __table_args__ = (
        Index("idx_wastage_material", "material_id"),
        Index("idx_wastage_status", "status"),
        Index("idx_wastage_date", "wastage_date"),
    )

    wastage_number: Mapped[str] = mapped_column(String(100), unique=True)
    material_id: Mapped[int] = mapped_column()
    branch_id: Mapped[int | None] = mapped_column(nullable=True)

    quantity: Mapped[Decimal] = mapped_column()
    unit_cost: Mapped[Decimal] = mapped_column()
    total_cost: Mapped[Decimal] = mapped_column()

    waste_type: Mapped[str] = mapped_column(String(50))
    reason: Mapped[str] = mapped_column(Text)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    wastage_date: Mapped[date] = mapped_column(Date)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)

    status: Mapped[str] = mapped_column(String(50), default="pending")
    approved_by_id: Mapped[int | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    approval_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Amendments (approved records only)
    amendment_count: Mapped[int] = mapped_column(default=0)
    amendment_history: Mapped[list] = mapped_column(JSON, default=list)
    last_amended_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    last_amended_by_id: Mapped[int | None] = mapped_column(nullable=True)

    def to_dto(self):
        """Convert ORM model to frozen Wastage DTO."""
        from stock_modules.wastage.models import (
            AmendmentEntry,
            Wastage,
            WastageStatus,
            WasteType,
        )
        return Wastage(
            id=self.id,
            wastage_number=self.wastage_number,
            material_id=self.material_id,
            quantity=self.quantity,
            unit_cost=self.unit_cost,
            total_cost=self.total_cost,
            waste_type=WasteType(self.waste_type),
            reason=self.reason,
            wastage_date=self.wastage_date,
            reported_by_id=self.created_by_id,
            status=WastageStatus(self.status),
            description=self.description,
            location=self.location,
            branch_id=self.branch_id,
            approved_by_id=self.approved_by_id,
            approved_at=self.approved_at,
            approval_notes=self.approval_notes,
            amendment_count=self.amendment_count or 0,
            amendments=tuple(
                AmendmentEntry.from_json(e) for e in (self.amendment_history or [])
            ),
        )

    def __repr__(self) -> str:
        return (
            f"<WastageModel {self.wastage_number}: material={self.material_id} "
            f"qty={self.quantity} status={self.status}>"
        )
