"""
Wastage Domain Models (``stock_modules.wastage.models``).

Responsibility
--------------
Frozen value objects for reported stock losses: the wastage record itself,
its status and loss classification, and the audit entries written each time
an approved record is amended.

Architecture
------------
Layer: **Modules** -- pure domain data structures.  No database identity
beyond the integer id, no I/O.  Used as DTOs between the service layer and
callers; the ORM lives in ``stock_modules.wastage.orm``.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum


class WastageStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class WasteType(Enum):
    """Classification of a loss."""
    SPILLAGE = "spillage"
    CONTAMINATION = "contamination"
    EXPIRY = "expiry"
    DAMAGE = "damage"
    THEFT = "theft"
    EVAPORATION = "evaporation"
    SORTING_LOSS = "sorting_loss"
    QUALITY_REJECTION = "quality_rejection"
    TRANSPORT_LOSS = "transport_loss"
    HANDLING_DAMAGE = "handling_damage"
    OTHER = "other"


@dataclass(frozen=True)
class AmendmentEntry:
    """One change to the quantity of an approved wastage."""
    amended_at: datetime
    amended_by_id: int
    previous_quantity: Decimal
    new_quantity: Decimal
    previous_total_cost: Decimal
    new_total_cost: Decimal
    justification: str

    def to_json(self) -> dict:
        return {
            "amended_at": self.amended_at.isoformat(),
            "amended_by_id": self.amended_by_id,
            "previous_quantity": str(self.previous_quantity),
            "new_quantity": str(self.new_quantity),
            "previous_total_cost": str(self.previous_total_cost),
            "new_total_cost": str(self.new_total_cost),
            "justification": self.justification,
        }

    @classmethod
    def from_json(cls, data: dict) -> "AmendmentEntry":
        return cls(
            amended_at=datetime.fromisoformat(data["amended_at"]),
            amended_by_id=data["amended_by_id"],
            previous_quantity=Decimal(data["previous_quantity"]),
            new_quantity=Decimal(data["new_quantity"]),
            previous_total_cost=Decimal(data["previous_total_cost"]),
            new_total_cost=Decimal(data["new_total_cost"]),
            justification=data["justification"],
        )


@dataclass(frozen=True)
class Wastage:
    """
    A reported loss of one material.

    ``unit_cost``/``total_cost`` are an estimate (average cost) while
    pending and the actual FIFO cost once approved.
    """
    id: int
    wastage_number: str
    material_id: int
    quantity: Decimal
    unit_cost: Decimal
    total_cost: Decimal
    waste_type: WasteType
    reason: str
    wastage_date: date
    reported_by_id: int
    status: WastageStatus = WastageStatus.PENDING
    description: str | None = None
    location: str | None = None
    branch_id: int | None = None
    approved_by_id: int | None = None
    approved_at: datetime | None = None
    approval_notes: str | None = None
    amendment_count: int = 0
    amendments: tuple[AmendmentEntry, ...] = field(default_factory=tuple)

    @property
    def is_amended(self) -> bool:
        return self.amendment_count > 0
