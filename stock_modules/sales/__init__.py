"""
Sales Module (``stock_modules.sales``).

Sales orders whose delivery consumes stock at FIFO cost and whose
cancellation after delivery returns it to the original batches.
"""

from stock_modules.sales.models import (
    SalesOrder,
    SalesOrderLine,
    SalesOrderLineRequest,
    SalesOrderStatus,
)
from stock_modules.sales.service import SalesOrderService
from stock_modules.sales.workflows import SALES_ORDER_WORKFLOW

__all__ = [
    "SALES_ORDER_WORKFLOW",
    "SalesOrder",
    "SalesOrderLine",
    "SalesOrderLineRequest",
    "SalesOrderService",
    "SalesOrderStatus",
]
