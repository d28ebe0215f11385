"""
Module: stock_kernel.db.engine
Responsibility: SQLAlchemy engine initialization, session factory management,
    and transactional scope utilities.  This is the single point of database
    connection configuration for the entire system.
Architecture position: Kernel > DB.  May import from db/base.py.
    MUST NOT import from services/, selectors/, domain/, or outer layers
    (except for create_tables/drop_tables which import the model registry).

Invariants enforced:
    - PostgreSQL is the production backend.  Sessions run at READ COMMITTED
      with explicit row-level locking (SELECT ... FOR UPDATE) on inventory
      batches before they are read-then-written.
    - SQLite (development and test suite) runs every transaction as
      BEGIN IMMEDIATE, which takes the database write lock up front.  Writers
      are therefore serialized and the allocator's read-then-write cannot
      interleave with another allocation.
    - Connection pooling with pre-ping to handle stale connections.
    - Immutability listeners (db/immutability.py) are registered whenever an
      engine is initialized.

Failure modes:
    - RuntimeError if get_engine/get_session/get_session_factory called before
      init_engine_from_url().
    - OperationalError ("database is locked") on SQLite when a writer waits
      longer than the busy timeout.
"""

import atexit
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from stock_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

# Module-level engine and session factory
_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def _install_sqlite_locking(engine: Engine) -> None:
    """Make pysqlite hand transaction control to SQLAlchemy and BEGIN IMMEDIATE.

    pysqlite's own transaction handling defers BEGIN until the first write,
    which would let two connections read the same batch rows before either
    holds the write lock.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    sqlite_busy_timeout: float = 30.0,
) -> Engine:
    """
    Initialize the SQLAlchemy engine from a database URL.

    Preconditions: database_url is a valid PostgreSQL or SQLite URL.
    Postconditions: Module-level _engine and _SessionFactory are initialized.
        All subsequent get_engine/get_session calls use this engine.

    Args:
        database_url: Connection URL (postgresql://... or sqlite:///path.db).
        echo: If True, log all SQL statements.
        pool_size: Number of connections to keep in the pool.
        max_overflow: Max connections beyond pool_size.
        pool_pre_ping: If True, test connections before use.
        pool_timeout: Seconds to wait for a pooled connection before giving up.
        pool_recycle: Seconds after which a connection is recycled.
        sqlite_busy_timeout: Seconds a SQLite writer waits for the write lock.

    Returns:
        SQLAlchemy Engine instance.
    """
    global _engine, _SessionFactory

    if database_url.startswith("sqlite"):
        _engine = create_engine(
            database_url,
            echo=echo,
            pool_pre_ping=pool_pre_ping,
            connect_args={
                "timeout": sqlite_busy_timeout,
                "check_same_thread": False,
            },
        )
        _install_sqlite_locking(_engine)
    else:
        _engine = create_engine(
            database_url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            isolation_level="READ COMMITTED",
        )

    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    from stock_kernel.db.immutability import register_immutability_listeners

    register_immutability_listeners()

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={
            "dialect": _engine.dialect.name,
            "pool_size": pool_size,
            "max_overflow": max_overflow,
            "echo": echo,
        },
    )

    return _engine


def init_engine_from_settings(settings) -> Engine:
    """Initialize the engine from a ``stock_config.LedgerSettings`` instance."""
    return init_engine_from_url(
        settings.database_url,
        echo=settings.echo_sql,
        pool_size=settings.pool_size,
        max_overflow=settings.max_overflow,
        pool_timeout=settings.pool_timeout,
        sqlite_busy_timeout=settings.sqlite_busy_timeout_seconds,
    )


_NOT_INITIALIZED = "No database engine; call init_engine_from_url() or init_engine_from_settings() first."


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """
    The factory the TransactionOrchestrator opens one session per workflow
    invocation from.  Concurrent callers each need their own session.

    Raises:
        RuntimeError: the engine has not been initialized.
    """
    if _SessionFactory is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _SessionFactory


def get_session() -> Session:
    return get_session_factory()()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Postconditions: On normal exit, session is committed and closed.
        On exception, session is rolled back and closed.  The exception
        is re-raised to the caller.

    Usage:
        with session_scope() as session:
            session.add(entity)
            # Commits on successful exit, rolls back on exception
    """
    session = get_session()
    logger.debug("transaction_started")
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables() -> None:
    """
    Create all tables defined in the kernel and module ORM models.

    Preconditions: Engine must be initialized via init_engine_from_url().
    Postconditions: All tables exist in the database.
    """
    from stock_kernel.db.base import Base
    from stock_modules._orm_registry import import_all_orm_models

    engine = get_engine()
    import_all_orm_models()
    Base.metadata.create_all(engine)
    logger.info(
        "tables_created",
        extra={"table_count": len(Base.metadata.sorted_tables)},
    )


def drop_tables() -> None:
    """Drop every ledger and module table.  Destroys all stock history."""
    from stock_kernel.db.base import Base
    from stock_modules._orm_registry import import_all_orm_models

    engine = get_engine()
    import_all_orm_models()
    Base.metadata.drop_all(engine)
    logger.info("tables_dropped")


def reset_engine() -> None:
    """Dispose the engine and forget it; the next use must re-initialize."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
        _engine = None

    _SessionFactory = None


def _atexit_dispose():
    """Dispose the engine on process exit to release all pooled connections."""
    if _engine is not None:
        _engine.dispose()


atexit.register(_atexit_dispose)


def is_postgres() -> bool:
    return _engine is not None and _engine.dialect.name == "postgresql"
