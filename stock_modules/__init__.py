"""
Stock Modules.

Thin workflow layers over the stock kernel and services.
Each module contains:
- Domain models (the nouns, as frozen DTOs)
- ORM persistence (the module's own aggregate tables)
- Workflows (state machines)
- A service that submits workflow bodies to the TransactionOrchestrator

Modules:
- Inventory: stock receipts, manual adjustments, branch transfers
- Wastage: loss reporting, approval at actual FIFO cost, amendments
- Expense: petty-cash cards and expense approval
- Sales: order delivery at FIFO COGS, cancellation with exact reversal

Actual costing and locking live in stock_services and stock_kernel.
"""

from stock_modules import expense, inventory, sales, wastage

__all__ = ["expense", "inventory", "sales", "wastage"]
