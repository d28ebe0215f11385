"""
Module: stock_modules.expense.orm
Responsibility: SQLAlchemy persistence for petty-cash cards, expenses and
    the card ledger.

Architecture position: Modules > Expense > ORM.  Inherits from TrackedBase
    (stock_kernel.db.base).  Expenses and ledger entries reference their card
    with a foreign key; users are referenced by id only.

Invariants enforced:
    - All monetary fields use Decimal (Numeric(38,9)).
    - card_number, expense_number and entry_number are unique.
    - Card ledger rows are append-only: the service never updates them.

Failure modes:
    - IntegrityError on a duplicate card or expense number, or an expense
      referencing a missing card.
"""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Date, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TrackedBase


# =============================================================================
# PettyCashCardModel
# =============================================================================

class PettyCashCardModel(TrackedBase):
    """
    ORM model for a petty-cash card.

    Maps to: stock_modules.expense.models.PettyCashCard.
    """

    __tablename__ = "petty_cash_cards"

    __table_args__ = (
        Index("idx_pc_card_status", "status"),
        Index("idx_pc_card_assigned", "assigned_to_id"),
    )

    card_number: Mapped[str] = mapped_column(String(100), unique=True)
    assigned_to_id: Mapped[int | None] = mapped_column(nullable=True)
    staff_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    department: Mapped[str | None] = mapped_column(String(100), nullable=True)

    initial_balance: Mapped[Decimal] = mapped_column()
    current_balance: Mapped[Decimal] = mapped_column()
    total_spent: Mapped[Decimal] = mapped_column()
    monthly_limit: Mapped[Decimal | None] = mapped_column(nullable=True)

    issue_date: Mapped[date] = mapped_column(Date)
    status: Mapped[str] = mapped_column(String(50), default="active")

    def to_dto(self):
        from stock_modules.expense.models import CardStatus, PettyCashCard
        return PettyCashCard(
            id=self.id,
            card_number=self.card_number,
            initial_balance=self.initial_balance,
            current_balance=self.current_balance,
            total_spent=self.total_spent,
            issue_date=self.issue_date,
            status=CardStatus(self.status),
            assigned_to_id=self.assigned_to_id,
            staff_name=self.staff_name,
            department=self.department,
            monthly_limit=self.monthly_limit,
        )

    def __repr__(self) -> str:
        return f"<PettyCashCardModel {self.card_number}: balance={self.current_balance}>"


# =============================================================================
# PettyCashExpenseModel
# =============================================================================

class PettyCashExpenseModel(TrackedBase):
    """
    ORM model for an expense charged to a petty-cash card.

    Maps to: stock_modules.expense.models.PettyCashExpense.
    """

    __tablename__ = "petty_cash_expenses"

    __table_args__ = (
        Index("idx_pc_expense_card", "card_id"),
        Index("idx_pc_expense_status", "status"),
        Index("idx_pc_expense_date", "expense_date"),
        Index("idx_pc_expense_category", "category"),
    )

    expense_number: Mapped[str] = mapped_column(String(100), unique=True)
    card_id: Mapped[int] = mapped_column(ForeignKey("petty_cash_cards.id"))
    category: Mapped[str] = mapped_column(String(100))
    description: Mapped[str] = mapped_column(Text)
    amount: Mapped[Decimal] = mapped_column()
    expense_date: Mapped[date] = mapped_column(Date)
    vendor: Mapped[str | None] = mapped_column(String(200), nullable=True)
    receipt_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(String(50), default="pending")
    approved_by_id: Mapped[int | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    approval_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_dto(self):
        from stock_modules.expense.models import ExpenseStatus, PettyCashExpense
        return PettyCashExpense(
            id=self.id,
            expense_number=self.expense_number,
            card_id=self.card_id,
            category=self.category,
            description=self.description,
            amount=self.amount,
            expense_date=self.expense_date,
            submitted_by_id=self.created_by_id,
            status=ExpenseStatus(self.status),
            vendor=self.vendor,
            receipt_number=self.receipt_number,
            approved_by_id=self.approved_by_id,
            approved_at=self.approved_at,
            approval_notes=self.approval_notes,
        )

    def __repr__(self) -> str:
        return f"<PettyCashExpenseModel {self.expense_number}: {self.amount} {self.status}>"


# =============================================================================
# PettyCashLedgerModel
# =============================================================================

class PettyCashLedgerModel(TrackedBase):
    """
    ORM model for one card balance event.

    Maps to: stock_modules.expense.models.CardLedgerEntry.
    """

    __tablename__ = "petty_cash_transactions"

    __table_args__ = (
        Index("idx_pc_ledger_card", "card_id"),
        Index("idx_pc_ledger_expense", "expense_id"),
    )

    entry_number: Mapped[str] = mapped_column(String(100), unique=True)
    card_id: Mapped[int] = mapped_column(ForeignKey("petty_cash_cards.id"))
    expense_id: Mapped[int | None] = mapped_column(
        ForeignKey("petty_cash_expenses.id"), nullable=True,
    )
    entry_type: Mapped[str] = mapped_column(String(50))
    amount: Mapped[Decimal] = mapped_column()
    balance_before: Mapped[Decimal] = mapped_column()
    balance_after: Mapped[Decimal] = mapped_column()
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    entry_date: Mapped[date] = mapped_column(Date)

    def to_dto(self):
        from stock_modules.expense.models import CardLedgerEntry, LedgerEntryType
        return CardLedgerEntry(
            id=self.id,
            entry_number=self.entry_number,
            card_id=self.card_id,
            entry_type=LedgerEntryType(self.entry_type),
            amount=self.amount,
            balance_before=self.balance_before,
            balance_after=self.balance_after,
            expense_id=self.expense_id,
            description=self.description,
        )
