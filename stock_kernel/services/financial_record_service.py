"""
FinancialRecordService -- signed monetary records for workflow outcomes.

Responsibility:
    Number and write one FinancialRecordModel per monetary effect of a
    workflow (COGS on delivery, wastage loss, petty-cash spend and their
    compensating reversals).

Architecture position:
    Kernel > Services.  Flush-only; written inside the same orchestrated
    transaction as the movements it accounts for.

Invariants enforced:
    - Sign carries direction: negative = outflow, positive = inflow.
    - Records are never updated; a correction is a new opposite-signed
      record (db/immutability.py).
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.logging_config import get_logger
from stock_kernel.models.financial_record import FinancialRecordModel, TransactionType
from stock_kernel.services.base import BaseService
from stock_kernel.services.sequence_service import SequenceService

logger = get_logger("services.financial_record")


class FinancialRecordService(BaseService[FinancialRecordModel]):
    def __init__(
        self,
        session: Session,
        prefix: str,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._prefix = prefix
        self._clock = clock or SystemClock()
        self._sequences = SequenceService(session)

    def record(
        self,
        transaction_type: TransactionType,
        amount: Decimal,
        actor_id: int,
        *,
        reference_type: str | None = None,
        reference_id: int | None = None,
        material_id: int | None = None,
        quantity: Decimal | None = None,
        unit_price: Decimal | None = None,
        description: str | None = None,
        transaction_date: date | None = None,
    ) -> FinancialRecordModel:
        number = self._sequences.next_transaction_number(self._prefix, transaction_type)
        rec = FinancialRecordModel(
            transaction_number=number,
            transaction_type=transaction_type.value,
            reference_type=reference_type,
            reference_id=reference_id,
            material_id=material_id,
            quantity=quantity,
            unit_price=unit_price,
            amount=amount,
            transaction_date=transaction_date or self._clock.today(),
            description=description,
            created_by_id=actor_id,
        )
        self.session.add(rec)
        self.session.flush()

        logger.info(
            "financial_record_written",
            extra={
                "transaction_number": number,
                "transaction_type": transaction_type.value,
                "amount": str(amount),
                "reference_type": reference_type,
                "reference_id": reference_id,
            },
        )
        return rec

    def records_for(
        self,
        reference_type: str,
        reference_id: int,
    ) -> list[FinancialRecordModel]:
        return list(
            self.session.execute(
                select(FinancialRecordModel)
                .where(
                    FinancialRecordModel.reference_type == reference_type,
                    FinancialRecordModel.reference_id == reference_id,
                )
                .order_by(FinancialRecordModel.id)
            ).scalars().all()
        )
