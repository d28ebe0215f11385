"""
FifoAllocator against a real database: allocation, preview parity, exact
reversal, idempotent reversal and partial release.

Standard fixture: B1 (Jan 1, 100 @ 10.000) and B2 (Jan 5, 50 @ 12.000).
"""

from datetime import date
from decimal import Decimal

import pytest

from stock_engines.fifo import AllocationFailure, AllocationSuccess
from stock_kernel.exceptions import ValidationError
from stock_kernel.models.movement import MovementKind
from stock_services.fifo_allocator import FifoAllocator

ACTOR = 1
MATERIAL = 1


@pytest.fixture
def allocator(session, batch_store):
    return FifoAllocator(session, batch_store=batch_store)


@pytest.fixture
def batches(batch_store):
    b1 = batch_store.create_batch(
        MATERIAL, Decimal("100"), Decimal("10.000"), ACTOR, purchase_date=date(2025, 1, 1),
    )
    b2 = batch_store.create_batch(
        MATERIAL, Decimal("50"), Decimal("12.000"), ACTOR, purchase_date=date(2025, 1, 5),
    )
    return b1, b2


def _allocate(allocator, qty, ref_id=1, ref_type="sales_order"):
    return allocator.allocate(MATERIAL, Decimal(qty), "sale", ref_type, ref_id, ACTOR)


class TestAllocate:
    def test_spanning_allocation_costs_each_batch_at_its_own_price(self, allocator, batches):
        b1, b2 = batches

        result = _allocate(allocator, "120")

        assert isinstance(result, AllocationSuccess)
        assert result.total_cogs == Decimal("1240.000")
        assert b1.remaining_quantity == Decimal("0")
        assert b1.is_depleted is True
        assert b2.remaining_quantity == Decimal("30")
        assert b2.is_depleted is False

    def test_consumption_movements_written_per_batch(self, allocator, batch_store, batches):
        b1, b2 = batches
        _allocate(allocator, "120", ref_id=9)

        consumed = batch_store.consumptions_for_reference("sales_order", 9)
        assert [(m.batch_id, m.quantity) for m in consumed] == [
            (b1.id, Decimal("-100")),
            (b2.id, Decimal("-20")),
        ]
        assert all(m.kind == MovementKind.CONSUMPTION.value for m in consumed)
        assert "@ 12.000/unit" in consumed[1].notes

    def test_shortfall_returns_failure_and_changes_nothing(self, allocator, batch_store, batches):
        b1, b2 = batches

        result = _allocate(allocator, "220")

        assert isinstance(result, AllocationFailure)
        assert result.requested == Decimal("220")
        assert result.available == Decimal("150")
        assert result.shortfall == Decimal("70")
        assert b1.remaining_quantity == Decimal("100")
        assert b2.remaining_quantity == Decimal("50")
        assert batch_store.consumptions_for_reference("sales_order", 1) == []

    def test_only_requested_material_consumed(self, allocator, batch_store, batches):
        other = batch_store.create_batch(
            MATERIAL + 1, Decimal("10"), Decimal("1"), ACTOR, purchase_date=date(2024, 1, 1),
        )
        _allocate(allocator, "5")
        assert other.remaining_quantity == Decimal("10")

    @pytest.mark.parametrize("qty", ["0", "-1"])
    def test_non_positive_quantity_rejected(self, allocator, batches, qty):
        with pytest.raises(ValidationError):
            _allocate(allocator, qty)

    def test_deadline_checked_while_allocating(self, allocator, batches):
        class RecordingDeadline:
            def __init__(self):
                self.steps = []

            def check(self, step=None):
                self.steps.append(step)

        deadline = RecordingDeadline()
        allocator.allocate(MATERIAL, Decimal("120"), "sale", "sales_order", 1, ACTOR,
                           deadline=deadline)
        assert deadline.steps[0] == "fifo_batches_locked"
        assert deadline.steps.count("fifo_apply_movement") == 2


class TestPreview:
    @pytest.mark.parametrize("qty", ["30", "120", "150", "151"])
    def test_preview_matches_allocation(self, allocator, batches, qty):
        preview = allocator.preview(MATERIAL, Decimal(qty))
        actual = _allocate(allocator, qty)

        assert preview.can_fulfill == actual.can_fulfill
        assert preview.total_cogs == actual.total_cogs
        assert [(ln.batch_id, ln.quantity) for ln in preview.lines] == [
            (ln.batch_id, ln.quantity) for ln in actual.lines
        ]

    def test_preview_writes_nothing(self, allocator, batch_store, batches):
        b1, _ = batches
        allocator.preview(MATERIAL, Decimal("120"))

        assert b1.remaining_quantity == Decimal("100")
        assert len(batch_store.list_movements(b1.id)) == 1


class TestReverse:
    def test_round_trip_restores_batches(self, allocator, batches):
        b1, b2 = batches
        _allocate(allocator, "120", ref_id=4)

        result = allocator.reverse("sales_order", 4, ACTOR)

        assert result.reversed_count == 2
        assert result.quantity_restored == Decimal("120")
        assert result.cost_restored == Decimal("1240.000")
        assert set(result.batch_ids) == {b1.id, b2.id}
        assert b1.remaining_quantity == Decimal("100")
        assert b1.is_depleted is False
        assert b2.remaining_quantity == Decimal("50")

    def test_reversal_names_the_consumption_it_compensates(
        self, allocator, batch_store, batches,
    ):
        b1, _ = batches
        _allocate(allocator, "10", ref_id=4)
        consumption = batch_store.consumptions_for_reference("sales_order", 4)[0]

        allocator.reverse("sales_order", 4, ACTOR)

        reversal = batch_store.list_movements(b1.id)[-1]
        assert reversal.kind == MovementKind.REVERSAL.value
        assert reversal.reverses_movement_id == consumption.id
        assert reversal.quantity == Decimal("10")

    def test_second_reversal_is_a_no_op(self, allocator, batches):
        b1, _ = batches
        _allocate(allocator, "120", ref_id=4)
        allocator.reverse("sales_order", 4, ACTOR)

        again = allocator.reverse("sales_order", 4, ACTOR)

        assert again.reversed_count == 0
        assert again.quantity_restored == Decimal("0")
        assert b1.remaining_quantity == Decimal("100")

    def test_reverse_unknown_reference_is_a_no_op(self, allocator, batches):
        result = allocator.reverse("sales_order", 999, ACTOR)
        assert result.reversed_count == 0

    def test_reverse_uses_original_batches_not_current_fifo(
        self, allocator, batch_store, batches,
    ):
        b1, b2 = batches
        _allocate(allocator, "120", ref_id=4)
        # An older batch arriving later must not receive the returned stock
        older = batch_store.create_batch(
            MATERIAL, Decimal("5"), Decimal("1.000"), ACTOR, purchase_date=date(2024, 1, 1),
        )

        allocator.reverse("sales_order", 4, ACTOR)

        assert older.remaining_quantity == Decimal("5")
        assert b1.remaining_quantity == Decimal("100")
        assert b2.remaining_quantity == Decimal("50")

    def test_references_are_isolated(self, allocator, batches):
        b1, _ = batches
        _allocate(allocator, "10", ref_id=1)
        _allocate(allocator, "15", ref_id=2)

        allocator.reverse("sales_order", 1, ACTOR)

        assert b1.remaining_quantity == Decimal("85")


class TestRelease:
    def test_partial_release_returns_newest_portion(self, allocator, batches):
        b1, b2 = batches
        _allocate(allocator, "120", ref_id=7, ref_type="wastage")

        plan = allocator.release("wastage", 7, Decimal("30"), ACTOR)

        assert plan.total_cost == Decimal("340.000")
        assert b2.remaining_quantity == Decimal("50")
        assert b1.remaining_quantity == Decimal("10")

    def test_release_then_reverse_restores_the_rest(self, allocator, batches):
        b1, b2 = batches
        _allocate(allocator, "120", ref_id=7, ref_type="wastage")
        allocator.release("wastage", 7, Decimal("30"), ACTOR)

        result = allocator.reverse("wastage", 7, ACTOR)

        assert result.quantity_restored == Decimal("90")
        assert b1.remaining_quantity == Decimal("100")
        assert b2.remaining_quantity == Decimal("50")

    def test_release_beyond_outstanding_rejected(self, allocator, batches):
        b1, _ = batches
        _allocate(allocator, "10", ref_id=7, ref_type="wastage")

        with pytest.raises(ValidationError):
            allocator.release("wastage", 7, Decimal("11"), ACTOR)
        assert b1.remaining_quantity == Decimal("90")
