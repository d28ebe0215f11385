"""
Sales Domain Models (``stock_modules.sales.models``).

Responsibility
--------------
Frozen value objects for sales orders and their lines.  ``cogs`` is zero
until delivery, then holds the FIFO cost of the batches actually consumed;
cancellation of a delivered order resets it to zero.

Architecture
------------
Layer: **Modules** -- pure domain data structures, no I/O.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

ZERO = Decimal("0")


class SalesOrderStatus(Enum):
    DRAFT = "draft"
    CONFIRMED = "confirmed"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class SalesOrderLineRequest:
    """One requested line when an order is created."""
    material_id: int
    quantity: Decimal
    unit_price: Decimal


@dataclass(frozen=True)
class SalesOrderLine:
    id: int
    material_id: int
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal
    cogs: Decimal = ZERO

    @property
    def gross_margin(self) -> Decimal:
        return self.total_price - self.cogs


@dataclass(frozen=True)
class SalesOrder:
    id: int
    order_number: str
    customer_id: int
    order_date: date
    status: SalesOrderStatus
    total_amount: Decimal
    cogs: Decimal = ZERO
    branch_id: int | None = None
    notes: str | None = None
    delivered_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None
    lines: tuple[SalesOrderLine, ...] = field(default_factory=tuple)

    @property
    def gross_margin(self) -> Decimal:
        return self.total_amount - self.cogs
