"""
Petty-Cash Domain Models (``stock_modules.expense.models``).

Responsibility
--------------
Frozen value objects for petty-cash cards, the expenses charged to them,
and the card ledger that records every balance change.

Architecture
------------
Layer: **Modules** -- pure domain data structures, no I/O.

Invariants
----------
- All monetary fields use ``Decimal`` -- never ``float``.
- A ledger entry's ``balance_after - balance_before`` equals the change it
  made to the card balance (zero for approvals, which only move the amount
  into ``total_spent``).
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum


class CardStatus(Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    EXPIRED = "expired"
    CLOSED = "closed"


class ExpenseStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class LedgerEntryType(Enum):
    """What caused a card balance entry."""
    INITIAL_BALANCE = "initial_balance"
    RELOAD = "reload"
    EXPENSE = "expense"
    EXPENSE_APPROVED = "expense_approved"
    EXPENSE_REJECTED = "expense_rejected"


@dataclass(frozen=True)
class PettyCashCard:
    id: int
    card_number: str
    initial_balance: Decimal
    current_balance: Decimal
    total_spent: Decimal
    issue_date: date
    status: CardStatus = CardStatus.ACTIVE
    assigned_to_id: int | None = None
    staff_name: str | None = None
    department: str | None = None
    monthly_limit: Decimal | None = None


@dataclass(frozen=True)
class PettyCashExpense:
    """An expense charged to a card; its amount leaves the balance on submission."""
    id: int
    expense_number: str
    card_id: int
    category: str
    description: str
    amount: Decimal
    expense_date: date
    submitted_by_id: int
    status: ExpenseStatus = ExpenseStatus.PENDING
    vendor: str | None = None
    receipt_number: str | None = None
    approved_by_id: int | None = None
    approved_at: datetime | None = None
    approval_notes: str | None = None


@dataclass(frozen=True)
class CardLedgerEntry:
    id: int
    entry_number: str
    card_id: int
    entry_type: LedgerEntryType
    amount: Decimal
    balance_before: Decimal
    balance_after: Decimal
    expense_id: int | None = None
    description: str | None = None
