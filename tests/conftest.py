"""
Pytest fixtures for the stock ledger test suite.

Provides:
- A fresh database per test (SQLite file under tmp_path, or PostgreSQL via
  DATABASE_URL with TRUNCATE cleanup)
- Orchestrator and module service fixtures wired to a DeterministicClock
- Structured log capture
- Batch seeding helpers

Environment Variables:
- DATABASE_URL: PostgreSQL connection URL.  If not set, each test gets its
  own SQLite database file.
"""

import json
import logging
import os
from datetime import date
from decimal import Decimal
from io import StringIO

import pytest
from sqlalchemy import text

from stock_config.schema import LedgerSettings
from stock_kernel.db.base import Base
from stock_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    is_postgres,
    reset_engine,
)
from stock_kernel.domain.clock import DeterministicClock
from stock_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from stock_kernel.services.batch_store import BatchStore
from stock_modules.expense.service import PettyCashService
from stock_modules.inventory.service import InventoryService
from stock_modules.sales.service import SalesOrderService
from stock_modules.wastage.service import WastageService
from stock_services.transaction_orchestrator import TransactionOrchestrator

# Test actor id for all test operations
TEST_ACTOR_ID = 1

MATERIAL_ID = 1


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture stock_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, allocator):
            allocator.allocate(...)
            logs = captured_logs()
            assert any(r["message"] == "fifo_allocation_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("stock_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for DB locks"
    )


def pytest_collection_modifyitems(config, items):
    if os.environ.get("DATABASE_URL", "").startswith("postgresql"):
        return
    skip_pg = pytest.mark.skip(reason="requires DATABASE_URL pointing at PostgreSQL")
    for item in items:
        if "postgres" in item.keywords:
            item.add_marker(skip_pg)


# =============================================================================
# Database
# =============================================================================


def _truncate_all_tables() -> None:
    table_names = ", ".join(t.name for t in reversed(Base.metadata.sorted_tables))
    with get_engine().begin() as conn:
        conn.execute(text(f"TRUNCATE TABLE {table_names} RESTART IDENTITY CASCADE"))


@pytest.fixture
def database_url(tmp_path) -> str:
    return os.environ.get("DATABASE_URL") or f"sqlite:///{tmp_path / 'stock_ledger.db'}"


@pytest.fixture
def db_engine(database_url):
    """Initialized engine with a complete, empty schema."""
    init_engine_from_url(database_url, echo=False, sqlite_busy_timeout=10.0)
    create_tables()
    yield get_engine()
    if is_postgres():
        _truncate_all_tables()
    reset_engine()


@pytest.fixture
def session_factory(db_engine):
    return get_session_factory()


@pytest.fixture
def session(db_engine):
    """A session for direct service tests.  Rolled back and closed on teardown.

    On SQLite this session holds the database write lock from its first
    statement until it ends; do not mix it with orchestrator calls in the
    same test without committing first.
    """
    s = get_session()
    yield s
    s.rollback()
    s.close()


@pytest.fixture
def read(db_engine):
    """Run ``fn(session)`` in a short-lived session and return its result."""

    def _read(fn):
        s = get_session()
        try:
            return fn(s)
        finally:
            s.rollback()
            s.close()

    return _read


# =============================================================================
# Clock, settings, orchestrator
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock()


@pytest.fixture
def settings(database_url):
    return LedgerSettings(
        database_url=database_url,
        transaction_number_prefix="PM",
        transaction_timeout_seconds=30.0,
    )


@pytest.fixture
def orchestrator(session_factory, settings, clock):
    return TransactionOrchestrator(session_factory, settings, clock=clock)


@pytest.fixture
def inventory_service(orchestrator):
    return InventoryService(orchestrator)


@pytest.fixture
def wastage_service(orchestrator):
    return WastageService(orchestrator)


@pytest.fixture
def petty_cash_service(orchestrator):
    return PettyCashService(orchestrator)


@pytest.fixture
def sales_service(orchestrator):
    return SalesOrderService(orchestrator)


@pytest.fixture
def batch_store(session, clock):
    return BatchStore(session, clock=clock)


# =============================================================================
# Seeding
# =============================================================================


@pytest.fixture
def seed_batches(inventory_service):
    """
    Receive batches through the orchestrator (committed).

    Usage::

        b1, b2 = seed_batches(
            (date(2025, 1, 1), "100", "10.000"),
            (date(2025, 1, 5), "50", "12.000"),
        )
    """

    def _seed(*specs, material_id: int = MATERIAL_ID, branch_id: int | None = None):
        batches = []
        for purchase_date, quantity, unit_cost in specs:
            batches.append(
                inventory_service.receive_stock(
                    material_id,
                    Decimal(quantity),
                    Decimal(unit_cost),
                    TEST_ACTOR_ID,
                    purchase_date=purchase_date,
                    branch_id=branch_id,
                )
            )
        return batches

    return _seed


@pytest.fixture
def standard_batches(seed_batches):
    """B1(Jan-1, 100 @ 10.000) and B2(Jan-5, 50 @ 12.000) for material 1."""
    return seed_batches(
        (date(2025, 1, 1), "100", "10.000"),
        (date(2025, 1, 5), "50", "12.000"),
    )
