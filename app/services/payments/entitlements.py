"""
EntitlementGrantor: выдача доступа за оплаченный платёж.

Вызывается reconciler'ом внутри той же транзакции, что и переход PENDING -> COMPLETED,
поэтому выполняется ровно один раз на платёж. Любое исключение откатывает всю транзакцию.
Суммы всегда берутся из Payment.amount.
"""
import calendar
import logging
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.media import MediaPurchase
from app.models.message import Message, MessagePayment
from app.models.payment import Payment
from app.models.subscription import Subscription
from app.payments.errors import InternalError
from app.payments.types import (
    BillingInterval,
    MessagePaymentType,
    PaymentStatus,
    PaymentType,
    SubscriptionStatus,
)
from app.services.messages.service import MessageUnlockSet
from app.utils.metrics import entitlements_granted_total

logger = logging.getLogger(__name__)


def add_billing_interval(start: datetime, interval: BillingInterval) -> datetime:
    """+1 month or +1 year; day of month clamped (Jan 31 + 1 month = Feb 28/29)."""
    if interval is BillingInterval.ANNUAL:
        year, month = start.year + 1, start.month
    else:
        year = start.year + start.month // 12
        month = start.month % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


class EntitlementGrantor:
    def __init__(self, db: Session, clock: Callable[[], datetime] | None = None):
        self.db = db
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._unlocks = MessageUnlockSet(db)
        self._grants: dict[PaymentType, Callable[[Payment], None]] = {
            PaymentType.SUBSCRIPTION: self._grant_subscription,
            PaymentType.MEDIA_PURCHASE: self._grant_media_purchase,
            PaymentType.PPV_UNLOCK: self._grant_ppv_unlock,
            PaymentType.TIP: self._grant_tip,
        }

    def grant(self, payment: Payment) -> None:
        payment_type = PaymentType(payment.type)
        self._grants[payment_type](payment)
        entitlements_granted_total.labels(type=payment_type.value).inc()

    def revoke(self, payment: Payment) -> None:
        """Refund: mark rows created for this payment as REFUNDED; a refunded subscription is canceled."""
        now = self._clock()
        purchases = self.db.execute(
            update(MediaPurchase)
            .where(MediaPurchase.payment_id == payment.id)
            .values(status=PaymentStatus.REFUNDED.value)
            .execution_options(synchronize_session=False)
        ).rowcount
        message_payments = self.db.execute(
            update(MessagePayment)
            .where(MessagePayment.payment_id == payment.id)
            .values(status=PaymentStatus.REFUNDED.value)
            .execution_options(synchronize_session=False)
        ).rowcount
        subscriptions = self.db.execute(
            update(Subscription)
            .where(
                Subscription.last_payment_id == payment.id,
                Subscription.status == SubscriptionStatus.ACTIVE.value,
            )
            .values(status=SubscriptionStatus.CANCELED.value, canceled_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        ).rowcount
        logger.info(
            "entitlement_revoked",
            extra={
                "payment_id": payment.id,
                "user_id": payment.user_id,
                "payment_type": payment.type,
                "outcome": f"purchases={purchases} message_payments={message_payments} subscriptions={subscriptions}",
            },
        )

    # ------------------------------------------------------------------

    @staticmethod
    def _require(payment: Payment, key: str) -> str:
        value = (payment.details or {}).get(key)
        if not value:
            raise InternalError(f"Payment metadata has no {key}", {"payment_id": payment.id})
        return value

    def _grant_subscription(self, payment: Payment) -> None:
        plan_id = self._require(payment, "plan_id")
        interval = BillingInterval(self._require(payment, "billing_interval"))
        now = self._clock()
        period_end = add_billing_interval(now, interval)

        subscription = (
            self.db.query(Subscription)
            .filter(
                Subscription.user_id == payment.user_id,
                Subscription.plan_id == plan_id,
                Subscription.provider == payment.provider,
            )
            .with_for_update()
            .one_or_none()
        )
        if subscription is None:
            subscription = Subscription(
                user_id=payment.user_id,
                plan_id=plan_id,
                provider=payment.provider,
            )
            self.db.add(subscription)
        subscription.status = SubscriptionStatus.ACTIVE.value
        subscription.billing_interval = interval.value
        subscription.current_period_start = now
        subscription.current_period_end = period_end
        subscription.canceled_at = None
        subscription.last_payment_id = payment.id
        self.db.flush()

        logger.info(
            "subscription_activated",
            extra={
                "payment_id": payment.id,
                "user_id": payment.user_id,
                "plan_id": plan_id,
                "outcome": period_end.isoformat(),
            },
        )

    def _grant_media_purchase(self, payment: Payment) -> None:
        media_id = self._require(payment, "media_id")
        existing = (
            self.db.query(MediaPurchase)
            .filter(MediaPurchase.user_id == payment.user_id, MediaPurchase.media_id == media_id)
            .with_for_update()
            .one_or_none()
        )
        if existing is not None:
            if existing.status != PaymentStatus.COMPLETED.value:
                # повторная покупка после рефанда
                existing.status = PaymentStatus.COMPLETED.value
                existing.payment_id = payment.id
                existing.amount = payment.amount
                existing.provider = payment.provider
                existing.provider_tx_id = payment.provider_tx_id
                self.db.flush()
            logger.info("media_purchase_exists", extra={"payment_id": payment.id, "media_id": media_id})
            return

        try:
            with self.db.begin_nested():
                self.db.add(
                    MediaPurchase(
                        user_id=payment.user_id,
                        media_id=media_id,
                        payment_id=payment.id,
                        amount=payment.amount,
                        provider=payment.provider,
                        provider_tx_id=payment.provider_tx_id,
                        status=PaymentStatus.COMPLETED.value,
                    )
                )
        except IntegrityError:
            logger.info("media_purchase_duplicate", extra={"payment_id": payment.id, "media_id": media_id})
            return
        logger.info(
            "media_purchase_granted",
            extra={"payment_id": payment.id, "user_id": payment.user_id, "media_id": media_id},
        )

    def _record_message_payment(self, payment: Payment, message_id: str, kind: MessagePaymentType) -> bool:
        try:
            with self.db.begin_nested():
                self.db.add(
                    MessagePayment(
                        message_id=message_id,
                        user_id=payment.user_id,
                        payment_id=payment.id,
                        type=kind.value,
                        amount=payment.amount,
                        provider=payment.provider,
                        status=PaymentStatus.COMPLETED.value,
                    )
                )
        except IntegrityError:
            logger.info("message_payment_duplicate", extra={"payment_id": payment.id, "message_id": message_id})
            return False
        return True

    def _grant_ppv_unlock(self, payment: Payment) -> None:
        message_id = self._require(payment, "message_id")
        if not self._unlocks.add(message_id, payment.user_id):
            logger.info(
                "ppv_already_unlocked",
                extra={"payment_id": payment.id, "user_id": payment.user_id, "message_id": message_id},
            )
            return
        self._record_message_payment(payment, message_id, MessagePaymentType.PPV_UNLOCK)

    def _grant_tip(self, payment: Payment) -> None:
        message_id = (payment.details or {}).get("message_id")
        if not message_id:
            logger.info("tip_recorded", extra={"payment_id": payment.id, "user_id": payment.user_id})
            return
        if not self._record_message_payment(payment, message_id, MessagePaymentType.TIP):
            return
        self.db.execute(
            update(Message)
            .where(Message.id == message_id)
            .values(total_tips=Message.total_tips + payment.amount)
            .execution_options(synchronize_session=False)
        )
        logger.info(
            "tip_recorded",
            extra={"payment_id": payment.id, "user_id": payment.user_id, "message_id": message_id},
        )
