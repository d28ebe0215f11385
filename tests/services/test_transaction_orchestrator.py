"""
TransactionOrchestrator: all-or-nothing commits, insufficient stock as a
rejected outcome, and bounded execution time with full rollback.
"""

import re
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from stock_kernel.exceptions import InvalidStateError, TransactionTimeout
from stock_kernel.models.batch import InventoryBatchModel
from stock_kernel.models.financial_record import FinancialRecordModel, TransactionType
from stock_kernel.models.movement import BatchMovementModel
from stock_services.transaction_orchestrator import (
    OutcomeStatus,
    TransactionOrchestrator,
)

ACTOR = 1
MATERIAL = 1


class SteppingTimer:
    """Monotonic fake: each call advances by ``step`` seconds."""

    def __init__(self, step: float):
        self.step = step
        self.now = 0.0

    def __call__(self) -> float:
        value = self.now
        self.now += self.step
        return value


def _count(read, model):
    return read(lambda s: s.execute(select(func.count()).select_from(model)).scalar_one())


def _remaining(read, batch_id):
    return read(lambda s: s.get(InventoryBatchModel, batch_id).remaining_quantity)


class TestCommit:
    def test_body_value_returned_and_persisted(self, orchestrator, standard_batches, read):
        b1, _ = standard_batches

        def body(uow):
            result = uow.allocate_or_abort(
                MATERIAL, Decimal("120"), "sale", "sales_order", 1, ACTOR,
            )
            uow.records.record(
                TransactionType.SALE, -result.total_cogs, ACTOR,
                reference_type="sales_order", reference_id=1,
            )
            return result.total_cogs

        outcome = orchestrator.execute("sales_delivery", body, actor_id=ACTOR)

        assert outcome.status == OutcomeStatus.COMMITTED
        assert outcome.committed and not outcome.rejected
        assert outcome.value == Decimal("1240.000")
        assert _remaining(read, b1.id) == Decimal("0")
        assert _count(read, FinancialRecordModel) == 1

    def test_document_number_uses_tenant_prefix(self, orchestrator):
        outcome = orchestrator.execute("n", lambda uow: uow.document_number("WST"))
        assert outcome.value == "PM-WST-000001"

    def test_defaults_without_settings(self, session_factory):
        orchestrator = TransactionOrchestrator(session_factory)
        assert orchestrator.timeout_seconds == 30.0
        assert orchestrator.execute("n", lambda uow: uow.document_number("X")).value == (
            "TX-X-000001"
        )


class TestRejectedOutcome:
    def test_insufficient_stock_rolls_back_earlier_steps(
        self, orchestrator, standard_batches, read,
    ):
        b1, b2 = standard_batches
        movements_before = _count(read, BatchMovementModel)

        def body(uow):
            # First line fits, second does not: neither may survive
            uow.allocate_or_abort(MATERIAL, Decimal("100"), "sale", "sales_order", 1, ACTOR)
            uow.records.record(TransactionType.SALE, Decimal("-1"), ACTOR)
            uow.allocate_or_abort(MATERIAL, Decimal("120"), "sale", "sales_order", 1, ACTOR)

        outcome = orchestrator.execute("sales_delivery", body)

        assert outcome.rejected
        assert outcome.value is None
        assert outcome.material_id == MATERIAL
        assert outcome.requested == Decimal("120")
        assert outcome.available == Decimal("50")
        assert outcome.shortfall == Decimal("70")
        assert _remaining(read, b1.id) == Decimal("100")
        assert _remaining(read, b2.id) == Decimal("50")
        assert _count(read, BatchMovementModel) == movements_before
        assert _count(read, FinancialRecordModel) == 0

    def test_rejection_logged(self, orchestrator, standard_batches, captured_logs):
        orchestrator.execute(
            "sales_delivery",
            lambda uow: uow.allocate_or_abort(
                MATERIAL, Decimal("500"), "sale", "sales_order", 1, ACTOR,
            ),
        )
        rejected = [
            r for r in captured_logs()
            if r["message"] == "workflow_rejected_insufficient_stock"
        ]
        assert rejected
        assert Decimal(rejected[0]["shortfall"]) == Decimal("350")


class TestExceptionRollback:
    def test_other_exceptions_propagate_after_rollback(
        self, orchestrator, standard_batches, read,
    ):
        b1, _ = standard_batches

        def body(uow):
            uow.allocate_or_abort(MATERIAL, Decimal("10"), "sale", "sales_order", 1, ACTOR)
            raise InvalidStateError("sales_order", 1, "cancelled", "deliver")

        with pytest.raises(InvalidStateError):
            orchestrator.execute("sales_delivery", body)

        assert _remaining(read, b1.id) == Decimal("100")


class TestTimeout:
    def test_expiry_between_batches_rolls_back(
        self, session_factory, settings, clock, standard_batches, read, captured_logs,
    ):
        b1, b2 = standard_batches
        # Every timer read costs 1s; the second batch line lands past 2.5s
        orchestrator = TransactionOrchestrator(
            session_factory, settings, clock=clock, timer=SteppingTimer(1.0),
        )

        def body(uow):
            return uow.allocate_or_abort(
                MATERIAL, Decimal("120"), "sale", "sales_order", 1, ACTOR,
            )

        with pytest.raises(TransactionTimeout) as exc_info:
            orchestrator.execute("sales_delivery", body, timeout=2.5)

        assert exc_info.value.workflow == "sales_delivery"
        assert exc_info.value.timeout_seconds == 2.5
        assert exc_info.value.step == "fifo_apply_movement"
        assert _remaining(read, b1.id) == Decimal("100")
        assert _remaining(read, b2.id) == Decimal("50")
        assert any(r["message"] == "workflow_timed_out" for r in captured_logs())

    def test_expiry_before_commit_discards_body_writes(
        self, session_factory, settings, clock, read,
    ):
        timer = SteppingTimer(0.0)
        orchestrator = TransactionOrchestrator(
            session_factory, settings, clock=clock, timer=timer,
        )

        def slow_body(uow):
            uow.records.record(TransactionType.ADJUSTMENT, Decimal("5"), ACTOR)
            timer.now += 10.0

        with pytest.raises(TransactionTimeout) as exc_info:
            orchestrator.execute("slow", slow_body, timeout=1.0)

        assert exc_info.value.step == "commit"
        assert _count(read, FinancialRecordModel) == 0

    def test_checkpoint_within_budget_passes(self, orchestrator):
        outcome = orchestrator.execute("quick", lambda uow: uow.checkpoint("step"))
        assert outcome.committed

    @pytest.mark.parametrize("timeout", [0, 0.0, -1.0])
    def test_non_positive_timeout_rejected_not_defaulted(self, orchestrator, read, timeout):
        def body(uow):
            uow.records.record(TransactionType.ADJUSTMENT, Decimal("5"), ACTOR)

        with pytest.raises(ValueError):
            orchestrator.execute("n", body, timeout=timeout)

        assert _count(read, FinancialRecordModel) == 0


class TestMovementNotes:
    def test_notes_use_configured_decimal_places(self, orchestrator, standard_batches, read):
        orchestrator.execute(
            "sales_delivery",
            lambda uow: uow.allocate_or_abort(
                MATERIAL, Decimal("120"), "sale", "sales_order", 1, ACTOR,
            ),
        )
        orchestrator.execute("sales_cancel", lambda uow: uow.reverse("sales_order", 1, ACTOR))

        notes = read(
            lambda s: [
                m.notes
                for m in s.execute(
                    select(BatchMovementModel)
                    .where(BatchMovementModel.reference_type == "sales_order")
                    .order_by(BatchMovementModel.id)
                ).scalars()
            ]
        )
        assert notes[1] == "FIFO allocation: 20.000 units @ 12.000/unit = 240.000 COGS"
        reversals = [n for n in notes if n.startswith("Reversal of movement")]
        assert len(reversals) == 2
        assert any(n.endswith(": 20.000 units @ 12.000/unit") for n in reversals)
        assert not any(re.search(r"\.\d{4,}", n) for n in notes)
