"""
BaseService -- abstract base for kernel and core services.

Responsibility:
    Common constructor and session-handling contract.  Every service that
    writes receives a SQLAlchemy ``Session`` and persists with
    ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    Transaction boundaries: services flush within the caller's transaction
    and never commit or roll back themselves.  The TransactionOrchestrator
    (or ``session_scope``, or the test harness) owns commit/rollback, which
    is what makes a multi-step approval all-or-nothing.

Failure modes:
    - A subclass that calls ``session.commit()`` would let half of a
      workflow become visible before the rest of it fails.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from stock_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for write services.

    Contract:
        Accepts a ``Session`` from the caller and flushes within the active
        transaction.

    Non-goals:
        - Does NOT manage transaction lifecycle.
        - Does NOT provide report-style reads; those live in
          ``stock_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session
