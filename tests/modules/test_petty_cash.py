"""
Petty-cash cards and expense approval: balance deducted on submission,
restored on rejection, booked as a financial record on approval, with
every balance change written to the card ledger.
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from stock_kernel.exceptions import EntityNotFoundError, InvalidStateError, ValidationError
from stock_kernel.models.financial_record import FinancialRecordModel
from stock_modules.expense.models import CardStatus, ExpenseStatus, LedgerEntryType
from stock_modules.expense.orm import PettyCashCardModel

ACTOR = 1
APPROVER = 2


@pytest.fixture
def card(petty_cash_service):
    return petty_cash_service.issue_card(
        "CARD-001", Decimal("500.000"), ACTOR,
        staff_name="Ama", department="Kitchen",
    )


@pytest.fixture
def spend(petty_cash_service, card):
    def _spend(amount, category="supplies", **kw):
        return petty_cash_service.submit_expense(
            card.id, Decimal(amount), category, "Cleaning materials", ACTOR, **kw,
        )

    return _spend


def _petty_cash_records(read):
    return read(
        lambda s: [
            (r.transaction_type, r.amount, r.reference_id, r.transaction_number)
            for r in s.execute(
                select(FinancialRecordModel).order_by(FinancialRecordModel.id)
            ).scalars()
        ]
    )


class TestCards:
    def test_issue_writes_initial_ledger_entry(self, petty_cash_service, card):
        assert card.current_balance == Decimal("500.000")
        assert card.total_spent == Decimal("0")
        assert card.status == CardStatus.ACTIVE

        ledger = petty_cash_service.card_ledger(card.id)
        assert len(ledger) == 1
        assert ledger[0].entry_type == LedgerEntryType.INITIAL_BALANCE
        assert ledger[0].balance_before == Decimal("0")
        assert ledger[0].balance_after == Decimal("500")
        assert ledger[0].entry_number == "PM-PCT-000001"

    def test_reload_adds_to_balance(self, petty_cash_service, card):
        reloaded = petty_cash_service.reload_card(card.id, Decimal("100"), ACTOR)

        assert reloaded.current_balance == Decimal("600")
        entry = petty_cash_service.card_ledger(card.id)[-1]
        assert entry.entry_type == LedgerEntryType.RELOAD
        assert (entry.balance_before, entry.balance_after) == (Decimal("500"), Decimal("600"))

    def test_negative_initial_balance_rejected(self, petty_cash_service):
        with pytest.raises(ValidationError):
            petty_cash_service.issue_card("CARD-X", Decimal("-1"), ACTOR)

    def test_unknown_card(self, petty_cash_service):
        with pytest.raises(EntityNotFoundError):
            petty_cash_service.get_card(404)


class TestSubmitExpense:
    def test_submission_deducts_balance_immediately(self, petty_cash_service, card, spend):
        expense = spend("120.500")

        assert expense.status == ExpenseStatus.PENDING
        assert expense.expense_number == "PM-EXP-000001"
        assert petty_cash_service.get_card(card.id).current_balance == Decimal("379.500")
        entry = petty_cash_service.card_ledger(card.id)[-1]
        assert entry.entry_type == LedgerEntryType.EXPENSE
        assert entry.amount == Decimal("-120.500")
        assert entry.expense_id == expense.id

    def test_amount_above_balance_rejected(self, petty_cash_service, card, spend):
        with pytest.raises(ValidationError):
            spend("500.001")
        assert petty_cash_service.get_card(card.id).current_balance == Decimal("500")

    def test_monthly_limit_counts_pending_and_approved(self, petty_cash_service):
        limited = petty_cash_service.issue_card(
            "CARD-LIM", Decimal("1000"), ACTOR, monthly_limit=Decimal("100"),
        )

        def submit(amount, day):
            return petty_cash_service.submit_expense(
                limited.id, Decimal(amount), "fuel", "Generator", ACTOR,
                expense_date=day,
            )

        first = submit("60", date(2025, 1, 3))
        with pytest.raises(ValidationError):
            submit("50", date(2025, 1, 20))

        petty_cash_service.reject_expense(first.id, APPROVER)
        submit("50", date(2025, 1, 20))
        # A new month starts from zero
        submit("90", date(2025, 2, 1))

    def test_inactive_card_cannot_spend(self, card, spend, read):
        def suspend(s):
            s.get(PettyCashCardModel, card.id).status = CardStatus.SUSPENDED.value
            s.commit()

        read(suspend)
        with pytest.raises(ValidationError):
            spend("1")


class TestApproveExpense:
    def test_approval_books_record_and_total_spent(
        self, petty_cash_service, card, spend, read,
    ):
        expense = spend("80")

        approved = petty_cash_service.approve_expense(expense.id, APPROVER, notes="receipt ok")

        assert approved.status == ExpenseStatus.APPROVED
        assert approved.approved_by_id == APPROVER
        updated = petty_cash_service.get_card(card.id)
        assert updated.total_spent == Decimal("80")
        assert updated.current_balance == Decimal("420")
        assert _petty_cash_records(read) == [
            ("petty_cash", Decimal("-80"), expense.id, "PM-PC-000001"),
        ]
        entry = petty_cash_service.card_ledger(card.id)[-1]
        assert entry.entry_type == LedgerEntryType.EXPENSE_APPROVED
        assert entry.balance_before == entry.balance_after == Decimal("420")

    def test_decided_expense_cannot_be_decided_again(self, petty_cash_service, spend):
        expense = spend("10")
        petty_cash_service.approve_expense(expense.id, APPROVER)

        with pytest.raises(InvalidStateError):
            petty_cash_service.approve_expense(expense.id, APPROVER)
        with pytest.raises(InvalidStateError):
            petty_cash_service.reject_expense(expense.id, APPROVER)


class TestRejectExpense:
    def test_rejection_restores_balance_without_record(
        self, petty_cash_service, card, spend, read,
    ):
        expense = spend("75")

        rejected = petty_cash_service.reject_expense(expense.id, APPROVER, notes="personal")

        assert rejected.status == ExpenseStatus.REJECTED
        assert petty_cash_service.get_card(card.id).current_balance == Decimal("500")
        assert _petty_cash_records(read) == []
        types = [e.entry_type for e in petty_cash_service.card_ledger(card.id)]
        assert types == [
            LedgerEntryType.INITIAL_BALANCE,
            LedgerEntryType.EXPENSE,
            LedgerEntryType.EXPENSE_REJECTED,
        ]
