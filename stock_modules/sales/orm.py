"""
Module: stock_modules.sales.orm
Responsibility: SQLAlchemy persistence for sales orders and their lines.

Architecture position: Modules > Sales > ORM.  Inherits from TrackedBase
    (stock_kernel.db.base).  Customers and materials are referenced by id
    only; consumption movements point back at the order via
    (reference_type="sales_order", reference_id=id).

Invariants enforced:
    - All monetary and quantity fields use Decimal (Numeric(38,9)).
    - order_number is unique; lines cascade with their order.

Failure modes:
    - IntegrityError on duplicate order_number.
"""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Date, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_kernel.db.base import TrackedBase


class SalesOrderModel(TrackedBase):
    """
    ORM model for a sales order header.

    Maps to: stock_modules.sales.models.SalesOrder.
    """

    __tablename__ = "sales_orders"

    __table_args__ = (
        Index("idx_sales_order_customer", "customer_id"),
        Index("idx_sales_order_status", "status"),
        Index("idx_sales_order_date", "order_date"),
    )

    order_number: Mapped[str] = mapped_column(String(100), unique=True)
    customer_id: Mapped[int] = mapped_column()
    branch_id: Mapped[int | None] = mapped_column(nullable=True)
    order_date: Mapped[date] = mapped_column(Date)
    status: Mapped[str] = mapped_column(String(50), default="draft")
    total_amount: Mapped[Decimal] = mapped_column()
    cogs: Mapped[Decimal] = mapped_column()
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    delivered_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    cancelled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    lines: Mapped[list["SalesOrderLineModel"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="SalesOrderLineModel.id",
    )

    def to_dto(self):
        from stock_modules.sales.models import SalesOrder, SalesOrderStatus
        return SalesOrder(
            id=self.id,
            order_number=self.order_number,
            customer_id=self.customer_id,
            order_date=self.order_date,
            status=SalesOrderStatus(self.status),
            total_amount=self.total_amount,
            cogs=self.cogs,
            branch_id=self.branch_id,
            notes=self.notes,
            delivered_at=self.delivered_at,
            cancelled_at=self.cancelled_at,
            cancellation_reason=self.cancellation_reason,
            lines=tuple(line.to_dto() for line in self.lines),
        )

    def __repr__(self) -> str:
        return f"<SalesOrderModel {self.order_number}: {self.status}>"


class SalesOrderLineModel(TrackedBase):
    """
    ORM model for one sales order line.

    Maps to: stock_modules.sales.models.SalesOrderLine.
    """

    __tablename__ = "sales_order_items"

    __table_args__ = (
        Index("idx_sales_item_order", "sales_order_id"),
        Index("idx_sales_item_material", "material_id"),
    )

    sales_order_id: Mapped[int] = mapped_column(ForeignKey("sales_orders.id"))
    material_id: Mapped[int] = mapped_column()
    quantity: Mapped[Decimal] = mapped_column()
    unit_price: Mapped[Decimal] = mapped_column()
    total_price: Mapped[Decimal] = mapped_column()
    cogs: Mapped[Decimal] = mapped_column()

    order: Mapped[SalesOrderModel] = relationship(back_populates="lines")

    def to_dto(self):
        from stock_modules.sales.models import SalesOrderLine
        return SalesOrderLine(
            id=self.id,
            material_id=self.material_id,
            quantity=self.quantity,
            unit_price=self.unit_price,
            total_price=self.total_price,
            cogs=self.cogs,
        )
