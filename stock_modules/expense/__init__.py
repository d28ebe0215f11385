"""
Petty-Cash Expense Module (``stock_modules.expense``).

Cards, expenses charged to them, and the card ledger.  Expense approval is
an orchestrated workflow with a financial record but no inventory effect.
"""

from stock_modules.expense.models import (
    CardLedgerEntry,
    CardStatus,
    ExpenseStatus,
    LedgerEntryType,
    PettyCashCard,
    PettyCashExpense,
)
from stock_modules.expense.service import PettyCashService
from stock_modules.expense.workflows import EXPENSE_WORKFLOW

__all__ = [
    "CardLedgerEntry",
    "CardStatus",
    "EXPENSE_WORKFLOW",
    "ExpenseStatus",
    "LedgerEntryType",
    "PettyCashCard",
    "PettyCashExpense",
    "PettyCashService",
]
