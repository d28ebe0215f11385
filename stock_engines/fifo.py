"""
stock_engines.fifo -- FIFO consumption and release planning.

Responsibility:
    Given a snapshot of a material's eligible batches, decide exactly which
    batches a request consumes and at what cost (``plan_fifo``), or which
    previously written consumptions a partial return gives back
    (``plan_release``).  The results are plain immutable values: a tagged
    success/failure variant, never an exception, for a shortfall.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The stateful
    FifoAllocator in stock_services/ locks the batches, calls these
    planners, then applies the plan through the BatchStore.  preview()
    and allocate() call the same planner on the same snapshot type, so
    they cannot disagree.

Invariants enforced:
    - FIFO order: batches are walked by (purchase_date, batch_id).
    - All-or-nothing: if eligible stock is short, the plan is an
      AllocationFailure with no lines at all.
    - Exact costing: total_cogs is the sum of quantity x unit_cost per
      line, never an average.
    - Release order: newest consumption first, so an amendment that lowers
      a quantity gives back the most recently allocated portion.

Failure modes:
    - ValidationError for a non-positive requested quantity.
    - ValidationError when asked to release more than is outstanding.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from stock_engines.tracer import traced_engine
from stock_kernel.exceptions import ValidationError

ZERO = Decimal("0")

DEFAULT_DEPLETION_EPSILON = Decimal("0.001")


def is_depleted(remaining: Decimal, epsilon: Decimal = DEFAULT_DEPLETION_EPSILON) -> bool:
    """A batch at or below epsilon is excluded from future allocation scans."""
    return remaining <= epsilon


# =============================================================================
# Inputs
# =============================================================================


@dataclass(frozen=True, slots=True)
class BatchSnapshot:
    """Point-in-time view of one eligible batch."""

    batch_id: int
    batch_number: str
    purchase_date: date
    remaining_quantity: Decimal
    unit_cost: Decimal
    supplier_id: int | None = None

    @property
    def sort_key(self) -> tuple[date, int]:
        return (self.purchase_date, self.batch_id)


@dataclass(frozen=True, slots=True)
class OutstandingConsumption:
    """A consumption movement with quantity still not returned to its batch."""

    movement_id: int
    batch_id: int
    outstanding: Decimal
    unit_cost: Decimal


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True, slots=True)
class AllocationLine:
    """Quantity taken from one batch, and what it cost."""

    batch_id: int
    batch_number: str
    supplier_id: int | None
    purchase_date: date
    quantity: Decimal
    unit_cost: Decimal
    cost: Decimal
    remaining_after: Decimal


@dataclass(frozen=True, slots=True)
class AllocationSuccess:
    """The request is fully satisfiable; ``lines`` are in FIFO order."""

    material_id: int
    requested: Decimal
    lines: tuple[AllocationLine, ...]
    total_cogs: Decimal
    total_available: Decimal

    success = True
    can_fulfill = True

    @property
    def batches_used(self) -> int:
        return len(self.lines)

    @property
    def average_unit_cost(self) -> Decimal:
        return self.total_cogs / self.requested


@dataclass(frozen=True, slots=True)
class AllocationFailure:
    """Eligible stock is short; nothing was or will be consumed."""

    material_id: int
    requested: Decimal
    available: Decimal
    shortfall: Decimal
    reason: str

    success = False
    can_fulfill = False
    lines: tuple[AllocationLine, ...] = ()
    total_cogs: Decimal = ZERO

    @property
    def total_available(self) -> Decimal:
        return self.available

    @property
    def batches_used(self) -> int:
        return 0


AllocationResult = AllocationSuccess | AllocationFailure


@dataclass(frozen=True, slots=True)
class ReleaseLine:
    """Quantity handed back against one consumption movement."""

    movement_id: int
    batch_id: int
    quantity: Decimal
    unit_cost: Decimal
    cost: Decimal


@dataclass(frozen=True, slots=True)
class ReleasePlan:
    requested: Decimal
    lines: tuple[ReleaseLine, ...]
    total_cost: Decimal


# =============================================================================
# Planners
# =============================================================================


def _summarize_allocation(result: AllocationResult) -> dict[str, object]:
    return {
        "success": result.success,
        "total_cogs": result.total_cogs,
        "lines": len(result.lines),
    }


def _summarize_release(plan: ReleasePlan) -> dict[str, object]:
    return {"total_cost": plan.total_cost, "lines": len(plan.lines)}


@traced_engine(
    "fifo_plan",
    "1.0",
    fingerprint_fields=("material_id", "requested", "batches"),
    summarize=_summarize_allocation,
)
def plan_fifo(
    *,
    material_id: int,
    requested: Decimal,
    batches: Sequence[BatchSnapshot],
) -> AllocationResult:
    """Walk ``batches`` oldest-first until ``requested`` is covered.

    Raises:
        ValidationError: requested <= 0.
    """
    if requested <= ZERO:
        raise ValidationError("quantity", requested, "must be greater than zero")

    ordered = sorted(
        (b for b in batches if b.remaining_quantity > ZERO),
        key=lambda b: b.sort_key,
    )
    available = sum((b.remaining_quantity for b in ordered), ZERO)

    if available < requested:
        return AllocationFailure(
            material_id=material_id,
            requested=requested,
            available=available,
            shortfall=requested - available,
            reason="no_eligible_batches" if not ordered else "insufficient_stock",
        )

    lines: list[AllocationLine] = []
    still_needed = requested
    total_cogs = ZERO

    for batch in ordered:
        if still_needed <= ZERO:
            break
        take = min(batch.remaining_quantity, still_needed)
        cost = take * batch.unit_cost
        lines.append(
            AllocationLine(
                batch_id=batch.batch_id,
                batch_number=batch.batch_number,
                supplier_id=batch.supplier_id,
                purchase_date=batch.purchase_date,
                quantity=take,
                unit_cost=batch.unit_cost,
                cost=cost,
                remaining_after=batch.remaining_quantity - take,
            )
        )
        total_cogs += cost
        still_needed -= take

    return AllocationSuccess(
        material_id=material_id,
        requested=requested,
        lines=tuple(lines),
        total_cogs=total_cogs,
        total_available=available,
    )


@traced_engine(
    "fifo_release",
    "1.0",
    fingerprint_fields=("quantity", "consumptions"),
    summarize=_summarize_release,
)
def plan_release(
    *,
    quantity: Decimal,
    consumptions: Sequence[OutstandingConsumption],
) -> ReleasePlan:
    """Give ``quantity`` back against the newest outstanding consumptions.

    Raises:
        ValidationError: quantity <= 0, or more than is outstanding.
    """
    if quantity <= ZERO:
        raise ValidationError("quantity", quantity, "must be greater than zero")

    outstanding_total = sum((c.outstanding for c in consumptions), ZERO)
    if quantity > outstanding_total:
        raise ValidationError(
            "quantity",
            quantity,
            f"exceeds outstanding consumed quantity {outstanding_total}",
        )

    newest_first = sorted(consumptions, key=lambda c: c.movement_id, reverse=True)
    lines: list[ReleaseLine] = []
    still_needed = quantity
    total_cost = ZERO

    for c in newest_first:
        if still_needed <= ZERO:
            break
        if c.outstanding <= ZERO:
            continue
        give = min(c.outstanding, still_needed)
        cost = give * c.unit_cost
        lines.append(
            ReleaseLine(
                movement_id=c.movement_id,
                batch_id=c.batch_id,
                quantity=give,
                unit_cost=c.unit_cost,
                cost=cost,
            )
        )
        total_cost += cost
        still_needed -= give

    return ReleasePlan(requested=quantity, lines=tuple(lines), total_cost=total_cost)
