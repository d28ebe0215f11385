"""
Module: stock_kernel.models.financial_record
Responsibility: ORM persistence for signed financial records (the
    "transactions" table) written by approval and cancellation workflows,
    and the per-tenant counter rows that number them.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    F1 -- Records are append-only; corrections are new records with the
          opposite sign (db/immutability.py blocks UPDATE and DELETE).
    F2 -- transaction_number is unique.
    F3 -- amount sign: negative = outflow (COGS, wastage, spend), positive =
          inflow (recovery, compensating reversal).

Failure modes:
    - IntegrityError on duplicate transaction_number.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import BigInteger, Date, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base, TrackedBase


class TransactionType(str, Enum):
    """Business type of a financial record, with its number code."""

    SALE = "sale"
    PURCHASE = "purchase"
    WASTAGE = "wastage"
    PETTY_CASH = "petty_cash"
    TRANSFER = "transfer"
    ADJUSTMENT = "adjustment"

    @property
    def number_code(self) -> str:
        return _NUMBER_CODES[self]


_NUMBER_CODES = {
    TransactionType.SALE: "S",
    TransactionType.PURCHASE: "P",
    TransactionType.WASTAGE: "W",
    TransactionType.PETTY_CASH: "PC",
    TransactionType.TRANSFER: "T",
    TransactionType.ADJUSTMENT: "ADJ",
}


class FinancialRecordModel(TrackedBase):
    """
    One signed monetary event caused by a workflow.

    Contract:
        Written in the same database transaction as the inventory movements
        and status change that justify it.
    """

    __tablename__ = "transactions"

    __table_args__ = (
        Index("idx_transaction_reference", "reference_type", "reference_id"),
        Index("idx_transaction_type_date", "transaction_type", "transaction_date"),
    )

    transaction_number: Mapped[str] = mapped_column(
        String(40),
        nullable=False,
        unique=True,
    )

    transaction_type: Mapped[str] = mapped_column(String(30), nullable=False)

    reference_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    reference_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    material_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    quantity: Mapped[Decimal | None] = mapped_column(nullable=True)
    unit_price: Mapped[Decimal | None] = mapped_column(nullable=True)

    # INVARIANT F3: signed
    amount: Mapped[Decimal] = mapped_column(nullable=False)

    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<FinancialRecord {self.transaction_number} "
            f"{self.transaction_type} {self.amount}>"
        )


class SequenceCounterModel(Base):
    """
    Monotonic counter row, one per (prefix, type code).

    Locked with SELECT ... FOR UPDATE by SequenceService so concurrent
    workflows never draw the same number.
    """

    __tablename__ = "sequence_counters"

    __table_args__ = (
        UniqueConstraint("name", name="uq_sequence_counter_name"),
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
