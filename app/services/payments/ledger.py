"""
PaymentLedger: единственная точка записи в таблицу payments.

- create_pending: вызывается только фабрикой интентов
- compare_and_set_status: вызывается только reconciler'ом; UPDATE ... WHERE status = <прочитанный>,
  поэтому из конкурентных доставок одного вебхука переход выигрывает ровно одна
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.models.payment import Payment
from app.payments.types import PaymentProvider, PaymentStatus, PaymentType

logger = logging.getLogger(__name__)


class PaymentLedger:
    def __init__(self, db: Session):
        self.db = db

    def create_pending(
        self,
        *,
        payment_id: str,
        user_id: str,
        amount: Decimal,
        currency: str,
        provider: PaymentProvider,
        provider_tx_id: str,
        payment_type: PaymentType,
        details: dict[str, Any],
        description: str | None = None,
    ) -> Payment:
        payment = Payment(
            id=payment_id,
            user_id=user_id,
            amount=amount,
            currency=currency,
            provider=provider.value,
            provider_tx_id=provider_tx_id,
            status=PaymentStatus.PENDING.value,
            type=payment_type.value,
            details=dict(details),
            description=description,
        )
        self.db.add(payment)
        self.db.flush()
        return payment

    def get(self, payment_id: str) -> Payment | None:
        return self.db.query(Payment).filter(Payment.id == payment_id).one_or_none()

    def get_by_provider_tx_id(self, provider_tx_id: str, lock: bool = False) -> Payment | None:
        query = self.db.query(Payment).filter(Payment.provider_tx_id == provider_tx_id)
        if lock:
            query = query.with_for_update()
        return query.one_or_none()

    def compare_and_set_status(
        self,
        payment: Payment,
        expected: PaymentStatus,
        new: PaymentStatus,
        extra_details: dict[str, Any] | None = None,
    ) -> bool:
        """
        Atomically move payment from expected to new status and merge provider metadata.
        Returns False when another transaction changed the status first.
        """
        now = datetime.now(timezone.utc)
        merged = dict(payment.details or {})
        merged.update(extra_details or {})
        merged["last_updated"] = now.isoformat()

        values: dict[Any, Any] = {
            Payment.status: new.value,
            Payment.details: merged,
            Payment.updated_at: now,
        }
        if new is PaymentStatus.COMPLETED:
            values[Payment.completed_at] = now
        elif new is PaymentStatus.REFUNDED:
            values[Payment.refunded_at] = now

        result = self.db.execute(
            update(Payment)
            .where(Payment.id == payment.id, Payment.status == expected.value)
            .values(values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.info(
                "payment_status_cas_lost",
                extra={
                    "payment_id": payment.id,
                    "old_status": expected.value,
                    "new_status": new.value,
                },
            )
            return False

        self.db.refresh(payment)
        return True

    def merge_details(self, payment: Payment, extra_details: dict[str, Any]) -> None:
        """Merge provider metadata into a locked payment without touching its status."""
        now = datetime.now(timezone.utc)
        merged = dict(payment.details or {})
        merged.update(extra_details)
        merged["last_updated"] = now.isoformat()
        self.db.execute(
            update(Payment)
            .where(Payment.id == payment.id)
            .values({Payment.details: merged, Payment.updated_at: now})
            .execution_options(synchronize_session=False)
        )
        self.db.refresh(payment)
