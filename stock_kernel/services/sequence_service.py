"""
SequenceService -- gap-safe transaction numbering.

Responsibility:
    Issues the next number for a named counter (one per tenant prefix and
    record type) and formats transaction numbers as
    ``<prefix>-<type code>-<6-digit sequence>``, e.g. ``PM-W-000042``.

Architecture position:
    Kernel > Services.  Flushes only; the enclosing workflow transaction
    decides whether the number is consumed.

Invariants enforced:
    - Strictly monotonic per counter via a locked counter row.  Never
      ``SELECT max(...) + 1``.
    - A rolled-back workflow returns its number: the increment commits or
      rolls back with everything else.

Failure modes:
    - IntegrityError on first use is absorbed by a savepoint retry when two
      workflows race to create the same counter row.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stock_kernel.logging_config import get_logger
from stock_kernel.models.financial_record import SequenceCounterModel, TransactionType

logger = get_logger("services.sequence")

SEQUENCE_WIDTH = 6


class SequenceService:
    """
    Transactional counters.

    Contract:
        ``next_value(name)`` returns a value strictly greater than every
        value previously committed for ``name``.

    Non-goals:
        - Does NOT call ``session.commit()``.
    """

    def __init__(self, session: Session):
        self._session = session

    def _locked_counter(self, name: str) -> SequenceCounterModel | None:
        return self._session.execute(
            select(SequenceCounterModel)
            .where(SequenceCounterModel.name == name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, name: str) -> int:
        counter = self._locked_counter(name)

        if counter is None:
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounterModel(name=name, current_value=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": name},
                )
                savepoint.rollback()
                counter = self._locked_counter(name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, name: str) -> int | None:
        counter = self._session.execute(
            select(SequenceCounterModel).where(SequenceCounterModel.name == name)
        ).scalar_one_or_none()
        return counter.current_value if counter else None

    def next_document_number(self, prefix: str, code: str) -> str:
        """Draw and format ``<prefix>-<code>-<6-digit sequence>``."""
        value = self.next_value(f"{prefix}-{code}")
        return f"{prefix}-{code}-{value:0{SEQUENCE_WIDTH}d}"

    def next_transaction_number(
        self,
        prefix: str,
        transaction_type: TransactionType,
    ) -> str:
        """Draw and format the next transaction number for ``transaction_type``."""
        return self.next_document_number(prefix, transaction_type.number_code)
