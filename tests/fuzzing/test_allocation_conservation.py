"""
Property-based tests for the persisted allocator.

Verifies, over random batch sets and requests:
- preview and allocate agree on cost and lines for the same batch state.
- Conservation: after any allocate/reverse sequence every batch satisfies
  remaining_quantity = sum of its movements, within [0, quantity_received].
- Round trip: reverse restores remaining quantities and depletion flags.

Each example uses a fresh material id so examples never share batches.
"""

import itertools
from datetime import date, timedelta
from decimal import Decimal

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from stock_services.fifo_allocator import FifoAllocator

ACTOR = 1
ZERO = Decimal("0")

_material_ids = itertools.count(1000)

lots = st.lists(
    st.tuples(
        st.integers(min_value=0, max_value=30),
        st.decimals(min_value=Decimal("0.5"), max_value=Decimal("500"), places=3),
        st.decimals(min_value=Decimal("0"), max_value=Decimal("99.999"), places=3),
    ),
    min_size=1,
    max_size=6,
)

requests = st.decimals(min_value=Decimal("0.001"), max_value=Decimal("3500"), places=3)

db_settings = settings(
    max_examples=40,
    deadline=None,
    suppress_health_check=[HealthCheck.function_scoped_fixture, HealthCheck.too_slow],
)


def _seed(batch_store, material_id, lot_specs):
    base = date(2025, 1, 1)
    return [
        batch_store.create_batch(
            material_id, qty, cost, ACTOR, purchase_date=base + timedelta(days=offset),
        )
        for offset, qty, cost in lot_specs
    ]


def _assert_conserved(batch_store, batches):
    for batch in batches:
        movements = batch_store.list_movements(batch.id)
        assert sum((m.quantity for m in movements), ZERO) == batch.remaining_quantity
        assert ZERO <= batch.remaining_quantity <= batch.quantity_received


class TestAllocatorProperties:
    @db_settings
    @given(lot_specs=lots, requested=requests)
    def test_preview_matches_allocate(self, session, batch_store, lot_specs, requested):
        material_id = next(_material_ids)
        _seed(batch_store, material_id, lot_specs)
        allocator = FifoAllocator(session, batch_store)

        preview = allocator.preview(material_id, requested)
        result = allocator.allocate(
            material_id, requested, "sale", "sales_order", material_id, ACTOR,
        )

        assert preview.success == result.success
        assert preview.total_cogs == result.total_cogs
        assert [(ln.batch_id, ln.quantity) for ln in preview.lines] == [
            (ln.batch_id, ln.quantity) for ln in result.lines
        ]

    @db_settings
    @given(lot_specs=lots, requested=requests)
    def test_allocate_then_reverse_conserves_and_restores(
        self, session, batch_store, lot_specs, requested,
    ):
        material_id = next(_material_ids)
        batches = _seed(batch_store, material_id, lot_specs)
        before = [(b.remaining_quantity, b.is_depleted) for b in batches]
        allocator = FifoAllocator(session, batch_store)

        result = allocator.allocate(
            material_id, requested, "wastage", "wastage", material_id, ACTOR,
        )
        _assert_conserved(batch_store, batches)
        if not result.success:
            assert [(b.remaining_quantity, b.is_depleted) for b in batches] == before
            return

        allocator.reverse("wastage", material_id, ACTOR)

        _assert_conserved(batch_store, batches)
        assert [(b.remaining_quantity, b.is_depleted) for b in batches] == before
