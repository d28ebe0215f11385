"""
Settings schema (``stock_config.schema``).

``LedgerSettings`` is the single typed runtime settings object.  It is
frozen and validated at construction; services receive it (or values
read from it) explicitly and never consult files or the environment.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from decimal import Decimal

from stock_kernel.exceptions import ConfigurationError


@dataclass(frozen=True)
class LedgerSettings:
    """Runtime settings for one tenant's stock ledger."""

    database_url: str = "sqlite:///stock_ledger.db"
    echo_sql: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30

    # Upper bound on one orchestrated workflow, seconds
    transaction_timeout_seconds: float = 30.0

    # A batch at or below this remaining quantity is depleted
    depletion_epsilon: Decimal = Decimal("0.001")

    # Reporting precision
    quantity_places: int = 3
    money_places: int = 3

    # Tenant prefix for transaction numbers: <prefix>-<code>-<seq>
    transaction_number_prefix: str = "TX"

    sqlite_busy_timeout_seconds: float = 30.0

    def __post_init__(self) -> None:
        if not self.database_url:
            raise ConfigurationError("database_url", "must not be empty")
        if self.transaction_timeout_seconds <= 0:
            raise ConfigurationError(
                "transaction_timeout_seconds", "must be greater than zero"
            )
        if not isinstance(self.depletion_epsilon, Decimal):
            object.__setattr__(
                self, "depletion_epsilon", Decimal(str(self.depletion_epsilon))
            )
        if self.depletion_epsilon < 0:
            raise ConfigurationError("depletion_epsilon", "must not be negative")
        for name in ("quantity_places", "money_places"):
            if not 0 <= getattr(self, name) <= 9:
                raise ConfigurationError(name, "must be between 0 and 9")
        for name in ("pool_size", "max_overflow", "pool_timeout"):
            if getattr(self, name) < 0:
                raise ConfigurationError(name, "must not be negative")
        prefix = self.transaction_number_prefix
        if not prefix or not prefix.isalnum():
            raise ConfigurationError(
                "transaction_number_prefix", "must be a non-empty alphanumeric string"
            )
        if self.sqlite_busy_timeout_seconds < 0:
            raise ConfigurationError("sqlite_busy_timeout_seconds", "must not be negative")

    @classmethod
    def field_names(cls) -> frozenset[str]:
        return frozenset(f.name for f in fields(cls))

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")
