"""
WebhookReconciler: обработка вебхуков обоих провайдеров.

verify signature -> map status -> lock payment by provider_tx_id -> idempotency gate ->
CAS status update -> grant / revoke в той же транзакции -> commit -> accounting (best effort).

Повторная или устаревшая доставка: no-op с успешным ответом; вебхук никогда не создаёт платёж.
Частичный возврат (status=None в событии) только дописывает metadata, статус и доступ не меняются.
Если обработка не завершилась, исключение доходит до роутера и провайдер получает non-2xx.
"""
import logging
from dataclasses import dataclass
from enum import Enum

from sqlalchemy.orm import Session

from app.payments.errors import InternalError, PaymentError, PaymentNotFound, SignatureInvalid
from app.payments.types import PaymentProvider, PaymentStatus, is_allowed_transition
from app.services.payments.accounting import AccountingForwarder
from app.services.payments.entitlements import EntitlementGrantor
from app.services.payments.ledger import PaymentLedger
from app.services.payments.providers.base import PaymentRail, ProviderEvent
from app.services.payments.providers.factory import RailFactory
from app.utils.metrics import webhooks_received_total

logger = logging.getLogger(__name__)


class ReconcileOutcome(str, Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    ANNOTATED = "annotated"


@dataclass
class ReconcileResult:
    outcome: ReconcileOutcome
    payment_id: str | None = None
    status: PaymentStatus | None = None


class WebhookReconciler:
    def __init__(
        self,
        db: Session,
        rails: dict[PaymentProvider, PaymentRail] | None = None,
        grantor: EntitlementGrantor | None = None,
        forwarder: AccountingForwarder | None = None,
    ):
        self.db = db
        self.ledger = PaymentLedger(db)
        self._rails = dict(rails or {})
        self.grantor = grantor or EntitlementGrantor(db)
        self.forwarder = forwarder or AccountingForwarder(db)

    def _rail(self, provider: PaymentProvider) -> PaymentRail:
        if provider not in self._rails:
            self._rails[provider] = RailFactory.create(provider)
        return self._rails[provider]

    def handle(self, provider: PaymentProvider, raw_body: bytes, signature: str | None) -> ReconcileResult:
        """Entry point for webhook routes: verify, parse and reconcile one delivery."""
        try:
            event = self._rail(provider).parse_webhook(raw_body, signature)
        except SignatureInvalid:
            webhooks_received_total.labels(provider=provider.value, outcome="signature_invalid").inc()
            raise
        return self.reconcile(event)

    def reconcile(self, event: ProviderEvent) -> ReconcileResult:
        provider = event.provider.value
        if event.provider_tx_id is None:
            webhooks_received_total.labels(provider=provider, outcome=ReconcileOutcome.IGNORED.value).inc()
            logger.info("webhook_ignored", extra={"provider": provider, "raw_status": event.raw_status})
            return ReconcileResult(outcome=ReconcileOutcome.IGNORED)

        try:
            result, payment = self._apply(event)
        except PaymentError as e:
            self.db.rollback()
            outcome = "not_found" if isinstance(e, PaymentNotFound) else "error"
            webhooks_received_total.labels(provider=provider, outcome=outcome).inc()
            raise
        except Exception as e:
            self.db.rollback()
            webhooks_received_total.labels(provider=provider, outcome="error").inc()
            logger.exception(
                "webhook_processing_failed",
                extra={"provider": provider, "provider_tx_id": event.provider_tx_id},
            )
            raise InternalError("Webhook processing failed") from e

        webhooks_received_total.labels(provider=provider, outcome=result.outcome.value).inc()
        if result.outcome is ReconcileOutcome.APPLIED and result.status is PaymentStatus.COMPLETED:
            self.forwarder.forward(payment)
        return result

    def _apply(self, event: ProviderEvent):
        payment = self.ledger.get_by_provider_tx_id(event.provider_tx_id, lock=True)
        if payment is None:
            logger.warning(
                "webhook_payment_not_found",
                extra={"provider": event.provider.value, "provider_tx_id": event.provider_tx_id},
            )
            raise PaymentNotFound("Payment not found", {"provider_tx_id": event.provider_tx_id})

        payment_id = payment.id
        current = PaymentStatus(payment.status)
        new = event.status
        log_extra = {
            "payment_id": payment_id,
            "provider": event.provider.value,
            "provider_tx_id": event.provider_tx_id,
            "old_status": current.value,
            "new_status": new.value if new else None,
            "raw_status": event.raw_status,
        }

        if new is None:
            self.ledger.merge_details(payment, event.details)
            self.db.commit()
            logger.info("payment_details_updated", extra=log_extra)
            return ReconcileResult(ReconcileOutcome.ANNOTATED, payment_id, current), payment

        if new is current:
            self.db.rollback()
            logger.info("webhook_duplicate", extra=log_extra)
            return ReconcileResult(ReconcileOutcome.DUPLICATE, payment_id, current), payment

        if not is_allowed_transition(current, new):
            self.db.rollback()
            logger.info("webhook_transition_ignored", extra=log_extra)
            return ReconcileResult(ReconcileOutcome.IGNORED, payment_id, current), payment

        if not self.ledger.compare_and_set_status(payment, current, new, event.details):
            self.db.rollback()
            return ReconcileResult(ReconcileOutcome.DUPLICATE, payment_id, current), payment

        if new is PaymentStatus.COMPLETED:
            self.grantor.grant(payment)
        elif new is PaymentStatus.REFUNDED:
            self.grantor.revoke(payment)

        self.db.commit()
        logger.info("payment_status_changed", extra=log_extra)
        return ReconcileResult(ReconcileOutcome.APPLIED, payment_id, new), payment
