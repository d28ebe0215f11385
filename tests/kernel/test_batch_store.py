"""
BatchStore tests: receipt, movement application, range enforcement, and
the eligibility scan the FIFO allocator relies on.
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from stock_engines.fifo import is_depleted
from stock_kernel.exceptions import BatchNotFoundError, ConsistencyError, ValidationError
from stock_kernel.models.movement import BatchMovementModel, MovementKind
from stock_kernel.services.batch_store import BatchStore

ACTOR = 1
MATERIAL = 7


def _movement_sum(session, batch_id):
    total = session.execute(
        select(func.sum(BatchMovementModel.quantity)).where(
            BatchMovementModel.batch_id == batch_id
        )
    ).scalar_one()
    return Decimal(str(total))


class TestCreateBatch:
    def test_receipt_sets_remaining_and_writes_movement(self, session, batch_store):
        batch = batch_store.create_batch(
            MATERIAL, Decimal("100"), Decimal("10.000"), ACTOR,
            purchase_date=date(2025, 1, 1),
        )

        assert batch.id is not None
        assert batch.remaining_quantity == Decimal("100")
        assert batch.is_depleted is False
        movements = batch_store.list_movements(batch.id)
        assert len(movements) == 1
        assert movements[0].kind == MovementKind.RECEIPT.value
        assert movements[0].quantity == Decimal("100")
        assert movements[0].reference_type == "manual_receipt"

    def test_generated_batch_numbers_are_sequential(self, session, batch_store):
        b1 = batch_store.create_batch(MATERIAL, Decimal("1"), Decimal("1"), ACTOR)
        b2 = batch_store.create_batch(MATERIAL, Decimal("1"), Decimal("1"), ACTOR)

        assert b1.batch_number == f"BATCH-{MATERIAL}-000001"
        assert b2.batch_number == f"BATCH-{MATERIAL}-000002"

    def test_purchase_date_defaults_to_clock_today(self, session, batch_store, clock):
        batch = batch_store.create_batch(MATERIAL, Decimal("5"), Decimal("2"), ACTOR)
        assert batch.purchase_date == clock.today()

    @pytest.mark.parametrize("quantity", [Decimal("0"), Decimal("-1")])
    def test_non_positive_quantity_rejected(self, session, batch_store, quantity):
        with pytest.raises(ValidationError) as exc_info:
            batch_store.create_batch(MATERIAL, quantity, Decimal("1"), ACTOR)
        assert exc_info.value.field == "quantity_received"

    def test_negative_unit_cost_rejected(self, session, batch_store):
        with pytest.raises(ValidationError) as exc_info:
            batch_store.create_batch(MATERIAL, Decimal("1"), Decimal("-0.01"), ACTOR)
        assert exc_info.value.field == "unit_cost"

    def test_zero_unit_cost_allowed(self, session, batch_store):
        batch = batch_store.create_batch(MATERIAL, Decimal("3"), Decimal("0"), ACTOR)
        assert batch.unit_cost == Decimal("0")


class TestApplyMovement:
    def test_outflow_reduces_remaining_and_logs_movement(self, session, batch_store):
        batch = batch_store.create_batch(MATERIAL, Decimal("10"), Decimal("2"), ACTOR)
        locked = batch_store.get_batch(batch.id, lock=True)

        movement = batch_store.apply_movement(
            locked, Decimal("-4"),
            kind=MovementKind.CONSUMPTION, movement_type="sale",
            actor_id=ACTOR, reference_type="sales_order", reference_id=1,
        )

        assert locked.remaining_quantity == Decimal("6")
        assert movement.quantity == Decimal("-4")
        assert movement.is_outflow
        assert _movement_sum(session, batch.id) == locked.remaining_quantity

    def test_depletion_flag_follows_epsilon(self, session, batch_store):
        batch = batch_store.create_batch(MATERIAL, Decimal("1"), Decimal("2"), ACTOR)

        batch_store.apply_movement(
            batch, Decimal("-0.9995"),
            kind=MovementKind.CONSUMPTION, movement_type="sale", actor_id=ACTOR,
        )
        assert batch.is_depleted is True
        assert batch.remaining_quantity == Decimal("0.0005")

        batch_store.apply_movement(
            batch, Decimal("0.5"),
            kind=MovementKind.REVERSAL, movement_type="reversal", actor_id=ACTOR,
        )
        assert batch.is_depleted is False

    @pytest.mark.parametrize(
        "consumed, expected",
        [("0.6", False), ("0.75", True), ("0.8", True)],
    )
    def test_configured_epsilon_matches_planner_threshold(
        self, session, clock, consumed, expected,
    ):
        epsilon = Decimal("0.25")
        store = BatchStore(session, clock=clock, depletion_epsilon=epsilon)
        batch = store.create_batch(MATERIAL, Decimal("1"), Decimal("2"), ACTOR)

        store.apply_movement(
            batch, -Decimal(consumed),
            kind=MovementKind.CONSUMPTION, movement_type="sale", actor_id=ACTOR,
        )

        assert batch.is_depleted is expected
        assert batch.is_depleted is is_depleted(batch.remaining_quantity, epsilon)

    def test_overdraw_raises_consistency_error_and_writes_nothing(self, session, batch_store):
        batch = batch_store.create_batch(MATERIAL, Decimal("5"), Decimal("2"), ACTOR)

        with pytest.raises(ConsistencyError) as exc_info:
            batch_store.apply_movement(
                batch, Decimal("-6"),
                kind=MovementKind.CONSUMPTION, movement_type="sale", actor_id=ACTOR,
            )

        assert exc_info.value.batch_id == batch.id
        assert batch.remaining_quantity == Decimal("5")
        assert len(batch_store.list_movements(batch.id)) == 1

    def test_inflow_above_received_raises_consistency_error(self, session, batch_store):
        batch = batch_store.create_batch(MATERIAL, Decimal("5"), Decimal("2"), ACTOR)

        with pytest.raises(ConsistencyError):
            batch_store.apply_movement(
                batch, Decimal("1"),
                kind=MovementKind.ADJUSTMENT, movement_type="adjustment", actor_id=ACTOR,
            )

    def test_zero_movement_rejected(self, session, batch_store):
        batch = batch_store.create_batch(MATERIAL, Decimal("5"), Decimal("2"), ACTOR)
        with pytest.raises(ValidationError):
            batch_store.apply_movement(
                batch, Decimal("0"),
                kind=MovementKind.ADJUSTMENT, movement_type="adjustment", actor_id=ACTOR,
            )


class TestEligibleBatches:
    def test_fifo_order_by_purchase_date_then_id(self, session, batch_store):
        late = batch_store.create_batch(
            MATERIAL, Decimal("1"), Decimal("1"), ACTOR, purchase_date=date(2025, 2, 1),
        )
        early = batch_store.create_batch(
            MATERIAL, Decimal("1"), Decimal("1"), ACTOR, purchase_date=date(2025, 1, 1),
        )
        same_day = batch_store.create_batch(
            MATERIAL, Decimal("1"), Decimal("1"), ACTOR, purchase_date=date(2025, 1, 1),
        )

        for lock in (False, True):
            ids = [b.id for b in batch_store.list_eligible_batches(MATERIAL, lock=lock)]
            assert ids == [early.id, same_day.id, late.id]

    def test_depleted_and_other_materials_excluded(self, session, batch_store):
        keep = batch_store.create_batch(MATERIAL, Decimal("2"), Decimal("1"), ACTOR)
        gone = batch_store.create_batch(MATERIAL, Decimal("2"), Decimal("1"), ACTOR)
        batch_store.create_batch(MATERIAL + 1, Decimal("2"), Decimal("1"), ACTOR)
        batch_store.apply_movement(
            gone, Decimal("-2"),
            kind=MovementKind.CONSUMPTION, movement_type="sale", actor_id=ACTOR,
        )

        assert [b.id for b in batch_store.list_eligible_batches(MATERIAL)] == [keep.id]

    def test_branch_scope_applied_when_branch_has_stock(self, session, batch_store):
        batch_store.create_batch(MATERIAL, Decimal("2"), Decimal("1"), ACTOR, branch_id=1)
        b2 = batch_store.create_batch(MATERIAL, Decimal("2"), Decimal("1"), ACTOR, branch_id=2)

        scoped = batch_store.list_eligible_batches(MATERIAL, branch_id=2)
        assert [b.id for b in scoped] == [b2.id]

    def test_branch_scope_falls_back_when_branch_has_no_stock(self, session, batch_store):
        b1 = batch_store.create_batch(MATERIAL, Decimal("2"), Decimal("1"), ACTOR, branch_id=1)
        untagged = batch_store.create_batch(MATERIAL, Decimal("2"), Decimal("1"), ACTOR)

        fallback = batch_store.list_eligible_batches(MATERIAL, branch_id=9)
        assert {b.id for b in fallback} == {b1.id, untagged.id}

    def test_branch_drained_before_lock_falls_back_to_unscoped(
        self, session, batch_store, monkeypatch,
    ):
        branch = batch_store.create_batch(
            MATERIAL, Decimal("2"), Decimal("1"), ACTOR, branch_id=2,
        )
        untagged = batch_store.create_batch(MATERIAL, Decimal("2"), Decimal("1"), ACTOR)
        check = batch_store.has_scoped_batches

        def drained_after_check(material_id, branch_id):
            found = check(material_id, branch_id)
            batch_store.apply_movement(
                branch, Decimal("-2"),
                kind=MovementKind.CONSUMPTION, movement_type="sale", actor_id=ACTOR,
            )
            return found

        monkeypatch.setattr(batch_store, "has_scoped_batches", drained_after_check)

        locked = batch_store.list_eligible_batches(MATERIAL, branch_id=2, lock=True)
        assert [b.id for b in locked] == [untagged.id]


class TestLookup:
    def test_unknown_batch_raises(self, session, batch_store):
        with pytest.raises(BatchNotFoundError) as exc_info:
            batch_store.get_batch(999)
        assert exc_info.value.batch_id == 999

    def test_lock_batches_reports_missing_id(self, session, batch_store):
        batch = batch_store.create_batch(MATERIAL, Decimal("2"), Decimal("1"), ACTOR)
        with pytest.raises(BatchNotFoundError):
            batch_store.lock_batches([batch.id, 12345])

    def test_lock_batches_empty_input(self, session, batch_store):
        assert batch_store.lock_batches([]) == {}
