"""
Wastage Module (``stock_modules.wastage``).

Responsibility
--------------
Loss reporting: a wastage is submitted at an estimated (average) cost,
approved at actual FIFO cost, or rejected.  Approved wastages may be
amended with a mandatory justification.

Architecture
------------
Layer: **Modules**.  Imports from ``stock_services`` and ``stock_kernel``
but never the reverse.
"""

from stock_modules.wastage.models import AmendmentEntry, Wastage, WastageStatus, WasteType
from stock_modules.wastage.service import WastageService
from stock_modules.wastage.workflows import WASTAGE_WORKFLOW

__all__ = [
    "AmendmentEntry",
    "WASTAGE_WORKFLOW",
    "Wastage",
    "WastageService",
    "WastageStatus",
    "WasteType",
]
