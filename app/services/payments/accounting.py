"""
AccountingForwarder: best-effort экспорт завершённых платежей во внешнюю бухгалтерию.
Вызывается после коммита; ошибки логируются и не влияют на обработку вебхука.
"""
import logging
from typing import Any

from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.media import MediaContent
from app.models.payment import Payment
from app.models.subscription import SubscriptionPlan
from app.models.user import User
from app.payments.types import PaymentType
from app.utils.metrics import accounting_forward_total

logger = logging.getLogger(__name__)

PRODUCT_NAMES = {
    PaymentType.PPV_UNLOCK: "PPV message unlock",
    PaymentType.TIP: "Tip",
}


def build_accounting_payload(db: Session, payment: Payment) -> dict[str, Any]:
    details = dict(payment.details or {})
    user = db.query(User).filter(User.id == payment.user_id).one_or_none()
    payment_type = PaymentType(payment.type)

    product_name = PRODUCT_NAMES.get(payment_type, payment.description or payment_type.value)
    if payment_type is PaymentType.SUBSCRIPTION:
        plan = db.query(SubscriptionPlan).filter(SubscriptionPlan.id == details.get("plan_id")).one_or_none()
        if plan:
            product_name = f"{plan.name} subscription"
    elif payment_type is PaymentType.MEDIA_PURCHASE:
        media = db.query(MediaContent).filter(MediaContent.id == details.get("media_id")).one_or_none()
        if media:
            product_name = media.title

    paid_at = payment.completed_at or payment.created_at
    return {
        "external_id": payment.id,
        "amount_usd": str(payment.amount),
        "amount_crypto": details.get("actually_paid") or details.get("pay_amount"),
        "crypto_currency": details.get("pay_currency") or details.get("crypto_currency"),
        "product_type": payment_type.value,
        "product_name": product_name,
        "status": payment.status,
        "payment_date": paid_at.isoformat() if paid_at else None,
        "user_email": user.email if user else None,
        "user_id": payment.user_id,
        "metadata": {**details, "provider": payment.provider, "provider_tx_id": payment.provider_tx_id},
    }


class AccountingForwarder:
    def __init__(self, db: Session):
        self.db = db

    def forward(self, payment: Payment) -> None:
        if not settings.accounting_webhook_url:
            accounting_forward_total.labels(status="skipped").inc()
            return
        try:
            from app.workers.tasks.accounting import forward_payment

            forward_payment.delay(build_accounting_payload(self.db, payment))
            accounting_forward_total.labels(status="enqueued").inc()
        except Exception:
            accounting_forward_total.labels(status="failed").inc()
            logger.exception("accounting_enqueue_failed", extra={"payment_id": payment.id})
