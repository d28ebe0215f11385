"""
Inventory Module (``stock_modules.inventory``).

Receiving, manual adjustment and branch transfer of inventory batches, plus
the reporting reads (summary, batch list, movement history, FIFO preview).
The batch and movement tables belong to ``stock_kernel``; this module owns
no tables of its own.
"""

from stock_modules.inventory.models import StockAdjustment, StockTransfer
from stock_modules.inventory.service import InventoryService

__all__ = ["InventoryService", "StockAdjustment", "StockTransfer"]
