"""
PaymentStatusService: чтение статуса платежа для клиента (polling).
Ledger не меняется: статус в БД двигает только reconciler. Сырой статус провайдера
запрашивается только для PENDING и кэшируется в Redis.
"""
import logging

import redis
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.payment import Payment
from app.payments.config import get_status_cache_ttl, is_creator
from app.payments.errors import PaymentNotFound, ProviderError
from app.payments.types import PaymentProvider, PaymentStatus
from app.services.payments.ledger import PaymentLedger
from app.services.payments.providers.base import PaymentRail
from app.services.payments.providers.factory import RailFactory

logger = logging.getLogger(__name__)

CACHE_PREFIX = "payment_status:"


class PaymentStatusService:
    def __init__(
        self,
        db: Session,
        rails: dict[PaymentProvider, PaymentRail] | None = None,
        redis_client: redis.Redis | None = None,
    ):
        self.db = db
        self.ledger = PaymentLedger(db)
        self._rails = dict(rails or {})
        self._redis = redis_client if redis_client is not None else redis.Redis.from_url(
            settings.redis_url, decode_responses=True
        )

    def _rail(self, provider: PaymentProvider) -> PaymentRail:
        if provider not in self._rails:
            self._rails[provider] = RailFactory.create(provider)
        return self._rails[provider]

    def get_for_caller(self, payment_id: str, user_id: str) -> tuple[Payment, str | None]:
        """Returns the payment and the raw provider status. Other users' payments look absent."""
        payment = self.ledger.get(payment_id)
        if not payment or (payment.user_id != user_id and not is_creator(user_id)):
            raise PaymentNotFound("Payment not found", {"payment_id": payment_id})
        return payment, self.provider_status(payment)

    def provider_status(self, payment: Payment) -> str | None:
        if payment.status != PaymentStatus.PENDING.value:
            return (payment.details or {}).get("provider_status")

        key = f"{CACHE_PREFIX}{payment.id}"
        try:
            cached = self._redis.get(key)
            if cached:
                return cached
        except redis.RedisError as e:
            logger.warning("payment_status_cache_error", extra={"payment_id": payment.id, "error": str(e)})

        try:
            raw = self._rail(PaymentProvider(payment.provider)).fetch_status(payment.provider_tx_id)
        except ProviderError as e:
            logger.warning(
                "payment_status_fetch_failed",
                extra={"payment_id": payment.id, "provider": payment.provider, "error": e.message},
            )
            return None

        if raw:
            try:
                self._redis.setex(key, get_status_cache_ttl(), raw)
            except redis.RedisError as e:
                logger.warning("payment_status_cache_error", extra={"payment_id": payment.id, "error": str(e)})
        return raw
