"""Kernel services (flush-only, caller owns the transaction)."""
