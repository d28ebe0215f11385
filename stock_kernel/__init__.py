"""
Stock Kernel

Inventory batch ledger for a multi-tenant trading back office:
- Append-only movement log per batch
- Pessimistic row locking on batch mutation
- Typed error taxonomy and structured logging
"""

__version__ = "0.1.0"
