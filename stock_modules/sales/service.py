"""
Sales Order Service (``stock_modules.sales.service``).

Responsibility
--------------
Create, confirm, deliver and cancel sales orders.  Delivery consumes every
line's quantity via FIFO and records per-line and order COGS; cancelling a
delivered order returns every consumed unit to the batch it came from.

Architecture position
---------------------
**Modules layer** -- workflow glue over the TransactionOrchestrator.

Invariants enforced
-------------------
* Delivery is one transaction: if any line is short, no line is consumed,
  the order stays confirmed and the shortfall is reported.
* Line COGS is the allocator's exact ``total_cogs`` for that line; order
  COGS is their sum.
* Cancellation of a delivered order reverses through the movement log
  (never a fresh FIFO pass), writes one compensating positive financial
  record per line, and resets COGS to zero, all in one transaction.

Failure modes
-------------
* ``InvalidStateError`` -- a transition the order's state does not allow.
* ``EntityNotFoundError`` -- unknown order id.
* ``ValidationError`` -- an order with no lines or a malformed line.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from decimal import Decimal

from sqlalchemy import select

from stock_kernel.exceptions import EntityNotFoundError, ValidationError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.financial_record import TransactionType
from stock_modules.sales.models import (
    SalesOrder,
    SalesOrderLineRequest,
    SalesOrderStatus,
)
from stock_modules.sales.orm import SalesOrderLineModel, SalesOrderModel
from stock_modules.sales.workflows import SALES_ORDER_WORKFLOW
from stock_services.transaction_orchestrator import (
    TransactionOrchestrator,
    UnitOfWork,
    WorkflowOutcome,
)

logger = get_logger("modules.sales.service")

REFERENCE_TYPE = "sales_order"
CANCELLATION_REFERENCE_TYPE = "sales_order_cancellation"
ZERO = Decimal("0")


class SalesOrderService:
    """
    Sales orders with FIFO-costed delivery.

    Contract:
        Receives a TransactionOrchestrator; every public method is one
        orchestrated workflow and returns DTOs.

    Non-goals:
        - Does NOT reserve stock at confirmation; availability is decided
          at delivery under batch locks.
    """

    def __init__(self, orchestrator: TransactionOrchestrator):
        self._orchestrator = orchestrator

    @staticmethod
    def _load(uow: UnitOfWork, order_id: int) -> SalesOrderModel:
        row = uow.session.execute(
            select(SalesOrderModel)
            .where(SalesOrderModel.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if row is None:
            raise EntityNotFoundError(REFERENCE_TYPE, order_id)
        return row

    def create_order(
        self,
        customer_id: int,
        lines: Sequence[SalesOrderLineRequest],
        actor_id: int,
        *,
        branch_id: int | None = None,
        order_date: date | None = None,
        notes: str | None = None,
    ) -> SalesOrder:
        if not lines:
            raise ValidationError("lines", lines, "an order needs at least one line")
        for line in lines:
            if line.quantity is None or line.quantity <= 0:
                raise ValidationError("quantity", line.quantity, "must be greater than zero")
            if line.unit_price is None or line.unit_price < 0:
                raise ValidationError("unit_price", line.unit_price, "must not be negative")

        def body(uow: UnitOfWork) -> SalesOrder:
            order = SalesOrderModel(
                order_number=uow.document_number("SO"),
                customer_id=customer_id,
                branch_id=branch_id,
                order_date=order_date or uow.clock.today(),
                status=SalesOrderStatus.DRAFT.value,
                total_amount=sum((req.quantity * req.unit_price for req in lines), ZERO),
                cogs=ZERO,
                notes=notes,
                created_by_id=actor_id,
            )
            order.lines = [
                SalesOrderLineModel(
                    material_id=req.material_id,
                    quantity=req.quantity,
                    unit_price=req.unit_price,
                    total_price=req.quantity * req.unit_price,
                    cogs=ZERO,
                    created_by_id=actor_id,
                )
                for req in lines
            ]
            uow.session.add(order)
            uow.session.flush()
            logger.info(
                "sales_order_created",
                extra={
                    "sales_order_id": order.id,
                    "order_number": order.order_number,
                    "line_count": len(order.lines),
                    "total_amount": str(order.total_amount),
                },
            )
            return order.to_dto()

        return self._orchestrator.execute(
            "sales_order_create", body, actor_id=actor_id,
        ).value

    def confirm(self, order_id: int, actor_id: int) -> SalesOrder:
        def body(uow: UnitOfWork) -> SalesOrder:
            order = self._load(uow, order_id)
            SALES_ORDER_WORKFLOW.transition_for(order.status, "confirm", order_id)
            order.status = SalesOrderStatus.CONFIRMED.value
            order.updated_by_id = actor_id
            uow.session.flush()
            logger.info("sales_order_confirmed", extra={"sales_order_id": order_id})
            return order.to_dto()

        return self._orchestrator.execute(
            "sales_order_confirm",
            body,
            actor_id=actor_id,
            reference=f"{REFERENCE_TYPE}:{order_id}",
        ).value

    def deliver(self, order_id: int, actor_id: int) -> WorkflowOutcome[SalesOrder]:
        """
        Consume every line via FIFO and record COGS.

        Returns:
            Committed outcome with the delivered order, or a rejected
            outcome naming the first material that was short.
        """

        def body(uow: UnitOfWork) -> SalesOrder:
            order = self._load(uow, order_id)
            SALES_ORDER_WORKFLOW.transition_for(order.status, "deliver", order_id)

            total_cogs = ZERO
            for line in order.lines:
                uow.checkpoint("sales_line_allocation")
                result = uow.allocate_or_abort(
                    line.material_id,
                    line.quantity,
                    "sale",
                    REFERENCE_TYPE,
                    order.id,
                    actor_id,
                    branch_id=order.branch_id,
                )
                line.cogs = result.total_cogs
                line.updated_by_id = actor_id
                total_cogs += result.total_cogs

                uow.records.record(
                    TransactionType.SALE,
                    -line.total_price,
                    actor_id,
                    reference_type=REFERENCE_TYPE,
                    reference_id=order.id,
                    material_id=line.material_id,
                    quantity=-line.quantity,
                    unit_price=line.unit_price,
                    description=(
                        f"Sale delivery - Order {order.order_number} | "
                        f"COGS: {result.total_cogs} from {result.batches_used} batch(es)"
                    ),
                )

            order.cogs = total_cogs
            order.status = SalesOrderStatus.DELIVERED.value
            order.delivered_at = uow.clock.now()
            order.updated_by_id = actor_id
            uow.session.flush()

            logger.info(
                "sales_order_delivered",
                extra={
                    "sales_order_id": order.id,
                    "order_number": order.order_number,
                    "total_cogs": str(total_cogs),
                    "total_revenue": str(order.total_amount),
                    "gross_profit": str(order.total_amount - total_cogs),
                },
            )
            return order.to_dto()

        return self._orchestrator.execute(
            "sales_delivery",
            body,
            actor_id=actor_id,
            reference=f"{REFERENCE_TYPE}:{order_id}",
        )

    def cancel(
        self,
        order_id: int,
        actor_id: int,
        *,
        reason: str | None = None,
    ) -> SalesOrder:
        """Cancel; a delivered order has its consumption reversed exactly."""

        def body(uow: UnitOfWork) -> SalesOrder:
            order = self._load(uow, order_id)
            transition = SALES_ORDER_WORKFLOW.transition_for(order.status, "cancel", order_id)

            if transition.moves_stock:
                reversal = uow.reverse(
                    REFERENCE_TYPE,
                    order.id,
                    actor_id,
                    movement_type="sale_cancellation",
                )
                for line in order.lines:
                    uow.records.record(
                        TransactionType.ADJUSTMENT,
                        line.total_price,
                        actor_id,
                        reference_type=CANCELLATION_REFERENCE_TYPE,
                        reference_id=order.id,
                        material_id=line.material_id,
                        quantity=line.quantity,
                        unit_price=line.unit_price,
                        description=(
                            f"Sale cancelled - Order {order.order_number} | "
                            f"COGS reversed: {line.cogs}"
                        ),
                    )
                    line.cogs = ZERO
                    line.updated_by_id = actor_id
                order.cogs = ZERO
                logger.info(
                    "sales_order_delivery_reversed",
                    extra={
                        "sales_order_id": order.id,
                        "reversed_movements": reversal.reversed_count,
                        "quantity_restored": str(reversal.quantity_restored),
                    },
                )

            order.status = SalesOrderStatus.CANCELLED.value
            order.cancelled_at = uow.clock.now()
            order.cancellation_reason = reason
            order.updated_by_id = actor_id
            uow.session.flush()
            logger.info(
                "sales_order_cancelled",
                extra={"sales_order_id": order.id, "from_state": transition.from_state},
            )
            return order.to_dto()

        return self._orchestrator.execute(
            "sales_cancellation",
            body,
            actor_id=actor_id,
            reference=f"{REFERENCE_TYPE}:{order_id}",
        ).value

    def get(self, order_id: int) -> SalesOrder:
        def body(uow: UnitOfWork) -> SalesOrder:
            order = uow.session.get(SalesOrderModel, order_id)
            if order is None:
                raise EntityNotFoundError(REFERENCE_TYPE, order_id)
            return order.to_dto()

        return self._orchestrator.execute("sales_order_read", body).value
