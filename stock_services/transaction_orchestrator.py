"""
stock_services.transaction_orchestrator -- atomic, time-bounded workflows.

Responsibility:
    Run one workflow body (status checks, allocations, reversals, balance
    changes, financial records) inside a single database transaction with a
    bounded execution time.  The body sees a UnitOfWork: a session plus the
    services wired to it.  The orchestrator alone commits or rolls back.

Architecture position:
    Services -- top of the service layer.  The single place where the core
    services are constructed for a workflow invocation and where
    transaction boundaries live.  Module services (stock_modules) submit
    bodies; they never commit.

Invariants enforced:
    - Atomicity: the body's writes commit together or not at all.
    - Timeout: the deadline is checked between steps and before commit;
      on PostgreSQL ``SET LOCAL statement_timeout`` / ``lock_timeout``
      also bound any single statement or lock wait.  Expiry rolls back
      everything and raises TransactionTimeout.
    - Insufficient stock is an outcome: an InsufficientStockError raised by
      the body rolls back and is returned as a rejected WorkflowOutcome
      carrying material, requested, available and shortfall.
    - Every other exception rolls back and propagates.  ConsistencyError
      and TransactionTimeout are logged at ERROR for operator attention.

Failure modes:
    - TransactionTimeout: budget spent, or the database cancelled a
      statement/lock wait (PostgreSQL 57014 / 55P03, SQLite "database is
      locked").
    - Any exception from the body, after rollback.

Usage:
    orchestrator = TransactionOrchestrator(get_session_factory(), settings)

    def body(uow):
        result = uow.allocate_or_abort(material_id, qty, "sale", "order", 7, actor)
        return result.total_cogs

    outcome = orchestrator.execute("sales_delivery", body, actor_id=actor)
    if outcome.committed:
        cogs = outcome.value
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Generic, TypeVar

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from stock_engines.fifo import (
    DEFAULT_DEPLETION_EPSILON,
    AllocationFailure,
    AllocationSuccess,
)
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.deadline import Deadline, Timer
from stock_kernel.exceptions import (
    ConsistencyError,
    InsufficientStockError,
    TransactionTimeout,
)
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.selectors.batch_selector import BatchSelector
from stock_kernel.services.batch_store import BatchStore
from stock_kernel.services.financial_record_service import FinancialRecordService
from stock_kernel.services.sequence_service import SequenceService
from stock_services.fifo_allocator import FifoAllocator

logger = get_logger("services.transaction_orchestrator")

T = TypeVar("T")

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_TRANSACTION_PREFIX = "TX"

_PG_TIMEOUT_CODES = frozenset({"57014", "55P03"})


class OutcomeStatus(str, Enum):
    COMMITTED = "committed"
    REJECTED = "rejected"


@dataclass(frozen=True)
class WorkflowOutcome(Generic[T]):
    """Result of one orchestrated workflow.

    ``value`` is the body's return value when committed.  A rejected
    outcome carries the shortfall detail and left no trace in the database.
    """

    workflow: str
    status: OutcomeStatus
    value: T | None = None
    material_id: int | None = None
    requested: Decimal | None = None
    available: Decimal | None = None
    shortfall: Decimal | None = None
    elapsed_ms: float = 0.0

    @property
    def committed(self) -> bool:
        return self.status == OutcomeStatus.COMMITTED

    @property
    def rejected(self) -> bool:
        return self.status == OutcomeStatus.REJECTED


class UnitOfWork:
    """
    Everything a workflow body may touch, bound to one session.

    Contract:
        Constructed by the orchestrator per invocation.  Services share the
        session, the clock and the deadline; the deadline is threaded into
        every allocator call.
    """

    def __init__(
        self,
        session: Session,
        deadline: Deadline,
        clock: Clock,
        transaction_prefix: str,
        depletion_epsilon: Decimal,
        quantity_places: int = 3,
        money_places: int = 3,
    ):
        self.session = session
        self.deadline = deadline
        self.clock = clock
        self.transaction_prefix = transaction_prefix
        self.sequences = SequenceService(session)
        self.batches = BatchStore(session, clock=clock, depletion_epsilon=depletion_epsilon)
        self.allocator = FifoAllocator(
            session,
            batch_store=self.batches,
            quantity_places=quantity_places,
            money_places=money_places,
        )
        self.records = FinancialRecordService(session, transaction_prefix, clock=clock)
        self.selector = BatchSelector(
            session,
            quantity_places=quantity_places,
            money_places=money_places,
        )

    def checkpoint(self, step: str) -> None:
        self.deadline.check(step)

    def document_number(self, code: str) -> str:
        """Next tenant document number, e.g. ``PM-WST-000012``."""
        return self.sequences.next_document_number(self.transaction_prefix, code)

    def allocate(self, *args: Any, **kwargs: Any):
        kwargs.setdefault("deadline", self.deadline)
        return self.allocator.allocate(*args, **kwargs)

    def allocate_or_abort(self, *args: Any, **kwargs: Any) -> AllocationSuccess:
        """Allocate, or abort the whole unit with InsufficientStockError."""
        result = self.allocate(*args, **kwargs)
        if isinstance(result, AllocationFailure):
            raise InsufficientStockError(
                material_id=result.material_id,
                requested=result.requested,
                available=result.available,
            )
        return result

    def reverse(self, *args: Any, **kwargs: Any):
        kwargs.setdefault("deadline", self.deadline)
        return self.allocator.reverse(*args, **kwargs)

    def release(self, *args: Any, **kwargs: Any):
        kwargs.setdefault("deadline", self.deadline)
        return self.allocator.release(*args, **kwargs)


def _is_database_timeout(exc: OperationalError) -> bool:
    code = getattr(exc.orig, "pgcode", None)
    if code in _PG_TIMEOUT_CODES:
        return True
    return "database is locked" in str(exc.orig)


class TransactionOrchestrator:
    """
    Runs workflow bodies as single all-or-nothing transactions.

    Contract:
        ``execute(workflow, body)`` opens a fresh session from the factory,
        runs ``body(uow)``, and commits only if the body returned and the
        deadline has not passed.

    Guarantees:
        - The session is always closed before ``execute`` returns or raises.
        - A rejected outcome (insufficient stock) and every exception leave
          the database exactly as it was before the call.

    Non-goals:
        - Does NOT retry.  A timed-out or failed workflow is reported to
          the caller, who decides.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        settings: Any = None,
        *,
        clock: Clock | None = None,
        timer: Timer = time.monotonic,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._timer = timer
        if settings is not None:
            self.timeout_seconds = float(settings.transaction_timeout_seconds)
            self._prefix = settings.transaction_number_prefix
            self._epsilon = Decimal(str(settings.depletion_epsilon))
            self._quantity_places = settings.quantity_places
            self._money_places = settings.money_places
        else:
            self.timeout_seconds = DEFAULT_TIMEOUT_SECONDS
            self._prefix = DEFAULT_TRANSACTION_PREFIX
            self._epsilon = DEFAULT_DEPLETION_EPSILON
            self._quantity_places = 3
            self._money_places = 3

    @property
    def clock(self) -> Clock:
        return self._clock

    def execute(
        self,
        workflow: str,
        body: Callable[[UnitOfWork], T],
        *,
        timeout: float | None = None,
        actor_id: int | None = None,
        reference: str | None = None,
    ) -> WorkflowOutcome[T]:
        deadline = Deadline(
            workflow,
            self.timeout_seconds if timeout is None else timeout,
            self._timer,
        )
        session = self._session_factory()

        with LogContext.bind(
            correlation_id=str(uuid.uuid4()),
            workflow=workflow,
            actor_id=str(actor_id) if actor_id is not None else None,
            reference=reference,
        ):
            logger.info(
                "workflow_started",
                extra={"timeout_seconds": deadline.timeout_seconds},
            )
            try:
                self._apply_database_timeouts(session, deadline)
                uow = UnitOfWork(
                    session,
                    deadline,
                    self._clock,
                    self._prefix,
                    self._epsilon,
                    self._quantity_places,
                    self._money_places,
                )
                value = body(uow)
                deadline.check("commit")
                session.commit()
            except InsufficientStockError as exc:
                session.rollback()
                elapsed_ms = round(deadline.elapsed() * 1000, 2)
                logger.warning(
                    "workflow_rejected_insufficient_stock",
                    extra={
                        "material_id": exc.material_id,
                        "requested": str(exc.requested),
                        "available": str(exc.available),
                        "shortfall": str(exc.shortfall),
                        "elapsed_ms": elapsed_ms,
                    },
                )
                return WorkflowOutcome(
                    workflow=workflow,
                    status=OutcomeStatus.REJECTED,
                    material_id=exc.material_id,
                    requested=exc.requested,
                    available=exc.available,
                    shortfall=exc.shortfall,
                    elapsed_ms=elapsed_ms,
                )
            except TransactionTimeout:
                session.rollback()
                logger.error("workflow_timed_out", exc_info=True)
                raise
            except OperationalError as exc:
                session.rollback()
                if _is_database_timeout(exc):
                    timeout_exc = TransactionTimeout(
                        workflow=workflow,
                        timeout_seconds=deadline.timeout_seconds,
                        elapsed_seconds=deadline.elapsed(),
                    )
                    logger.error(
                        "workflow_timed_out",
                        extra={"database_error": str(exc.orig)},
                    )
                    raise timeout_exc from exc
                logger.error("workflow_rolled_back", exc_info=True)
                raise
            except ConsistencyError:
                session.rollback()
                logger.error("workflow_consistency_violation", exc_info=True)
                raise
            except Exception:
                session.rollback()
                logger.warning("workflow_rolled_back", exc_info=True)
                raise
            finally:
                session.close()

            elapsed_ms = round(deadline.elapsed() * 1000, 2)
            logger.info("workflow_committed", extra={"elapsed_ms": elapsed_ms})
            return WorkflowOutcome(
                workflow=workflow,
                status=OutcomeStatus.COMMITTED,
                value=value,
                elapsed_ms=elapsed_ms,
            )

    def _apply_database_timeouts(self, session: Session, deadline: Deadline) -> None:
        if session.get_bind().dialect.name != "postgresql":
            return
        budget_ms = max(1, int(deadline.remaining() * 1000))
        session.execute(text(f"SET LOCAL statement_timeout = {budget_ms}"))
        session.execute(text(f"SET LOCAL lock_timeout = {budget_ms}"))
