"""
Petty-Cash Service (``stock_modules.expense.service``).

Responsibility
--------------
Issue and reload petty-cash cards, and submit, approve and reject the
expenses charged to them.  Every balance change writes a card ledger entry
with the balance before and after.

Architecture position
---------------------
**Modules layer** -- workflow glue over the TransactionOrchestrator.  No
inventory involvement: these workflows never touch the batch ledger.

Invariants enforced
-------------------
* The expense amount leaves the card balance at submission; approval moves
  it into ``total_spent`` and books a negative petty-cash financial
  record; rejection puts it back on the balance.
* An expense larger than the card's current balance is refused.
* ``current_balance + total_spent + pending amounts`` is unchanged by
  approval and rejection.
* Card and expense rows are locked (expense first, then card) for every
  transition.

Failure modes
-------------
* ``ValidationError`` -- non-positive amount, amount above balance or
  monthly limit, inactive card.
* ``InvalidStateError`` -- approve/reject of a non-pending expense.
* ``EntityNotFoundError`` -- unknown card or expense.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import func, select

from stock_kernel.exceptions import EntityNotFoundError, ValidationError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.financial_record import TransactionType
from stock_modules.expense.models import (
    CardLedgerEntry,
    CardStatus,
    ExpenseStatus,
    LedgerEntryType,
    PettyCashCard,
    PettyCashExpense,
)
from stock_modules.expense.orm import (
    PettyCashCardModel,
    PettyCashExpenseModel,
    PettyCashLedgerModel,
)
from stock_modules.expense.workflows import EXPENSE_WORKFLOW
from stock_services.transaction_orchestrator import TransactionOrchestrator, UnitOfWork

logger = get_logger("modules.expense.service")

REFERENCE_TYPE = "petty_cash_expense"
ZERO = Decimal("0")


def _month_bounds(day: date) -> tuple[date, date]:
    start = day.replace(day=1)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end


class PettyCashService:
    """
    Petty-cash cards and expense approval.

    Contract:
        Receives a TransactionOrchestrator; every public method is one
        orchestrated workflow and returns DTOs.
    """

    def __init__(self, orchestrator: TransactionOrchestrator):
        self._orchestrator = orchestrator

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _lock(uow: UnitOfWork, model, entity_type: str, entity_id: int):
        row = uow.session.execute(
            select(model)
            .where(model.id == entity_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if row is None:
            raise EntityNotFoundError(entity_type, entity_id)
        return row

    @staticmethod
    def _ledger(
        uow: UnitOfWork,
        card: PettyCashCardModel,
        entry_type: LedgerEntryType,
        amount: Decimal,
        balance_before: Decimal,
        actor_id: int,
        *,
        expense_id: int | None = None,
        description: str | None = None,
    ) -> PettyCashLedgerModel:
        entry = PettyCashLedgerModel(
            entry_number=uow.document_number("PCT"),
            card_id=card.id,
            expense_id=expense_id,
            entry_type=entry_type.value,
            amount=amount,
            balance_before=balance_before,
            balance_after=card.current_balance,
            description=description,
            entry_date=uow.clock.today(),
            created_by_id=actor_id,
        )
        uow.session.add(entry)
        return entry

    # =========================================================================
    # Cards
    # =========================================================================

    def issue_card(
        self,
        card_number: str,
        initial_balance: Decimal,
        actor_id: int,
        *,
        assigned_to_id: int | None = None,
        staff_name: str | None = None,
        department: str | None = None,
        monthly_limit: Decimal | None = None,
    ) -> PettyCashCard:
        if initial_balance is None or initial_balance < 0:
            raise ValidationError("initial_balance", initial_balance, "must not be negative")
        if monthly_limit is not None and monthly_limit <= 0:
            raise ValidationError("monthly_limit", monthly_limit, "must be greater than zero")

        def body(uow: UnitOfWork) -> PettyCashCard:
            card = PettyCashCardModel(
                card_number=card_number,
                assigned_to_id=assigned_to_id,
                staff_name=staff_name,
                department=department,
                initial_balance=initial_balance,
                current_balance=initial_balance,
                total_spent=ZERO,
                monthly_limit=monthly_limit,
                issue_date=uow.clock.today(),
                status=CardStatus.ACTIVE.value,
                created_by_id=actor_id,
            )
            uow.session.add(card)
            uow.session.flush()
            self._ledger(
                uow, card, LedgerEntryType.INITIAL_BALANCE, initial_balance, ZERO,
                actor_id, description=f"Initial balance for card {card_number}",
            )
            uow.session.flush()
            logger.info(
                "petty_cash_card_issued",
                extra={"card_id": card.id, "initial_balance": str(initial_balance)},
            )
            return card.to_dto()

        return self._orchestrator.execute(
            "petty_cash_card_issue", body, actor_id=actor_id,
        ).value

    def reload_card(
        self,
        card_id: int,
        amount: Decimal,
        actor_id: int,
        *,
        notes: str | None = None,
    ) -> PettyCashCard:
        if amount is None or amount <= 0:
            raise ValidationError("amount", amount, "must be greater than zero")

        def body(uow: UnitOfWork) -> PettyCashCard:
            card = self._lock(uow, PettyCashCardModel, "petty_cash_card", card_id)
            if card.status != CardStatus.ACTIVE.value:
                raise ValidationError("card_id", card_id, f"card is {card.status}")
            before = card.current_balance
            card.current_balance = before + amount
            card.updated_by_id = actor_id
            self._ledger(
                uow, card, LedgerEntryType.RELOAD, amount, before, actor_id,
                description=notes or f"Reload of card {card.card_number}",
            )
            uow.session.flush()
            logger.info(
                "petty_cash_card_reloaded",
                extra={
                    "card_id": card_id,
                    "amount": str(amount),
                    "balance_after": str(card.current_balance),
                },
            )
            return card.to_dto()

        return self._orchestrator.execute(
            "petty_cash_card_reload", body, actor_id=actor_id,
        ).value

    # =========================================================================
    # Expenses
    # =========================================================================

    def submit_expense(
        self,
        card_id: int,
        amount: Decimal,
        category: str,
        description: str,
        actor_id: int,
        *,
        expense_date: date | None = None,
        vendor: str | None = None,
        receipt_number: str | None = None,
        notes: str | None = None,
    ) -> PettyCashExpense:
        """Charge an expense to a card; the amount leaves the balance now."""
        if amount is None or amount <= 0:
            raise ValidationError("amount", amount, "must be greater than zero")
        if not category:
            raise ValidationError("category", category, "must not be blank")

        def body(uow: UnitOfWork) -> PettyCashExpense:
            card = self._lock(uow, PettyCashCardModel, "petty_cash_card", card_id)
            if card.status != CardStatus.ACTIVE.value:
                raise ValidationError("card_id", card_id, f"card is {card.status}")
            if amount > card.current_balance:
                raise ValidationError(
                    "amount", amount,
                    f"exceeds card balance {card.current_balance}",
                )

            spent_on = expense_date or uow.clock.today()
            if card.monthly_limit is not None:
                start, end = _month_bounds(spent_on)
                month_total = uow.session.execute(
                    select(func.coalesce(func.sum(PettyCashExpenseModel.amount), 0))
                    .where(
                        PettyCashExpenseModel.card_id == card_id,
                        PettyCashExpenseModel.status != ExpenseStatus.REJECTED.value,
                        PettyCashExpenseModel.expense_date >= start,
                        PettyCashExpenseModel.expense_date < end,
                    )
                ).scalar_one()
                if Decimal(str(month_total)) + amount > card.monthly_limit:
                    raise ValidationError(
                        "amount", amount,
                        f"exceeds monthly limit {card.monthly_limit} "
                        f"(already charged {month_total})",
                    )

            expense = PettyCashExpenseModel(
                expense_number=uow.document_number("EXP"),
                card_id=card_id,
                category=category,
                description=description,
                amount=amount,
                expense_date=spent_on,
                vendor=vendor,
                receipt_number=receipt_number,
                notes=notes,
                status=ExpenseStatus.PENDING.value,
                created_by_id=actor_id,
            )
            uow.session.add(expense)
            uow.session.flush()

            before = card.current_balance
            card.current_balance = before - amount
            card.updated_by_id = actor_id
            self._ledger(
                uow, card, LedgerEntryType.EXPENSE, -amount, before, actor_id,
                expense_id=expense.id,
                description=f"Expense {expense.expense_number} submitted",
            )
            uow.session.flush()
            logger.info(
                "petty_cash_expense_submitted",
                extra={
                    "expense_id": expense.id,
                    "card_id": card_id,
                    "amount": str(amount),
                    "balance_after": str(card.current_balance),
                },
            )
            return expense.to_dto()

        return self._orchestrator.execute(
            "petty_cash_expense_submit", body, actor_id=actor_id,
        ).value

    def approve_expense(
        self,
        expense_id: int,
        actor_id: int,
        *,
        notes: str | None = None,
    ) -> PettyCashExpense:
        def body(uow: UnitOfWork) -> PettyCashExpense:
            expense = self._lock(uow, PettyCashExpenseModel, REFERENCE_TYPE, expense_id)
            EXPENSE_WORKFLOW.transition_for(expense.status, "approve", expense_id)
            card = self._lock(uow, PettyCashCardModel, "petty_cash_card", expense.card_id)

            card.total_spent = card.total_spent + expense.amount
            card.updated_by_id = actor_id
            self._mark(uow, expense, ExpenseStatus.APPROVED, actor_id, notes)

            uow.records.record(
                TransactionType.PETTY_CASH,
                -expense.amount,
                actor_id,
                reference_type=REFERENCE_TYPE,
                reference_id=expense.id,
                description=(
                    f"Petty cash expense {expense.expense_number} - "
                    f"{expense.category}: {expense.description}"
                ),
            )
            self._ledger(
                uow, card, LedgerEntryType.EXPENSE_APPROVED, -expense.amount,
                card.current_balance, actor_id,
                expense_id=expense.id,
                description=f"Expense {expense.expense_number} approved",
            )
            uow.session.flush()
            logger.info(
                "petty_cash_expense_approved",
                extra={
                    "expense_id": expense.id,
                    "amount": str(expense.amount),
                    "total_spent": str(card.total_spent),
                },
            )
            return expense.to_dto()

        return self._orchestrator.execute(
            "petty_cash_expense_approval",
            body,
            actor_id=actor_id,
            reference=f"{REFERENCE_TYPE}:{expense_id}",
        ).value

    def reject_expense(
        self,
        expense_id: int,
        actor_id: int,
        *,
        notes: str | None = None,
    ) -> PettyCashExpense:
        """Refuse the expense and put its amount back on the card."""

        def body(uow: UnitOfWork) -> PettyCashExpense:
            expense = self._lock(uow, PettyCashExpenseModel, REFERENCE_TYPE, expense_id)
            EXPENSE_WORKFLOW.transition_for(expense.status, "reject", expense_id)
            card = self._lock(uow, PettyCashCardModel, "petty_cash_card", expense.card_id)

            before = card.current_balance
            card.current_balance = before + expense.amount
            card.updated_by_id = actor_id
            self._mark(uow, expense, ExpenseStatus.REJECTED, actor_id, notes)
            self._ledger(
                uow, card, LedgerEntryType.EXPENSE_REJECTED, expense.amount,
                before, actor_id,
                expense_id=expense.id,
                description=f"Expense {expense.expense_number} rejected - balance restored",
            )
            uow.session.flush()
            logger.info(
                "petty_cash_expense_rejected",
                extra={
                    "expense_id": expense.id,
                    "amount": str(expense.amount),
                    "balance_after": str(card.current_balance),
                },
            )
            return expense.to_dto()

        return self._orchestrator.execute(
            "petty_cash_expense_rejection",
            body,
            actor_id=actor_id,
            reference=f"{REFERENCE_TYPE}:{expense_id}",
        ).value

    @staticmethod
    def _mark(
        uow: UnitOfWork,
        expense: PettyCashExpenseModel,
        status: ExpenseStatus,
        actor_id: int,
        notes: str | None,
    ) -> None:
        expense.status = status.value
        expense.approved_by_id = actor_id
        expense.approved_at = uow.clock.now()
        expense.approval_notes = notes
        expense.updated_by_id = actor_id

    # =========================================================================
    # Queries
    # =========================================================================

    def get_card(self, card_id: int) -> PettyCashCard:
        def body(uow: UnitOfWork) -> PettyCashCard:
            card = uow.session.get(PettyCashCardModel, card_id)
            if card is None:
                raise EntityNotFoundError("petty_cash_card", card_id)
            return card.to_dto()

        return self._orchestrator.execute("petty_cash_card_read", body).value

    def card_ledger(self, card_id: int) -> list[CardLedgerEntry]:
        def body(uow: UnitOfWork) -> list[CardLedgerEntry]:
            rows = uow.session.execute(
                select(PettyCashLedgerModel)
                .where(PettyCashLedgerModel.card_id == card_id)
                .order_by(PettyCashLedgerModel.id)
            ).scalars()
            return [r.to_dto() for r in rows]

        return self._orchestrator.execute("petty_cash_ledger_read", body).value
