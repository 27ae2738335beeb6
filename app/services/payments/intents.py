"""
PaymentIntentFactory: создание PENDING-платежа и сессии у провайдера.

1. Валидация запроса по типу (план / медиа / PPV-сообщение / чаевые) -> Quote
2. Rate-limit покупок (Redis, fail open)
3. id платежа генерируется заранее и уходит провайдеру как order reference
4. PENDING-строка в ledger с metadata, достаточной для выдачи доступа позже

Ошибка провайдера -> ProviderError, в БД ничего не пишется.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import uuid4

import redis
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.media import MediaContent, MediaPurchase
from app.models.message import Message
from app.models.subscription import SubscriptionPlan
from app.models.user import User
from app.payments.config import (
    get_creator,
    get_crypto_currencies,
    get_payment_currency,
    get_tip_min_amount,
)
from app.payments.errors import (
    AlreadyOwned,
    InternalError,
    InvalidAmount,
    PaymentError,
    ValidationError,
)
from app.payments.types import BillingInterval, PaymentProvider, PaymentStatus, PaymentType
from app.schemas.payments import (
    IntentRequest,
    MediaPurchaseIntentIn,
    PpvUnlockIntentIn,
    SubscriptionIntentIn,
    TipIntentIn,
)
from app.services.messages.service import MessageUnlockSet
from app.services.payments.ledger import PaymentLedger
from app.services.payments.providers.base import CheckoutOrder, PaymentRail
from app.services.payments.providers.factory import RailFactory
from app.utils.metrics import payment_intents_created_total, payment_intents_rejected_total

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


@dataclass
class Quote:
    """Validated price and the metadata the grantor needs later."""
    payment_type: PaymentType
    amount: Decimal
    description: str
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class IntentResult:
    payment_id: str
    provider: PaymentProvider
    provider_payload: dict[str, Any]


def _money(value: Decimal | str | int | float) -> Decimal:
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise InvalidAmount("Amount is not a number")
    if not amount.is_finite() or amount != amount.quantize(CENT):
        raise InvalidAmount("Amount must have at most two decimal places")
    return amount.quantize(CENT)


class PaymentIntentFactory:
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
        self._quoters = {
            PaymentType.SUBSCRIPTION: self._quote_subscription,
            PaymentType.MEDIA_PURCHASE: self._quote_media,
            PaymentType.PPV_UNLOCK: self._quote_ppv,
            PaymentType.TIP: self._quote_tip,
        }

    def _rail(self, provider: PaymentProvider) -> PaymentRail:
        if provider not in self._rails:
            self._rails[provider] = RailFactory.create(provider)
        return self._rails[provider]

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def create_intent(self, user_id: str, request: IntentRequest) -> IntentResult:
        try:
            return self._create_intent(user_id, request)
        except PaymentError as e:
            payment_intents_rejected_total.labels(reason=e.code).inc()
            logger.info(
                "payment_intent_rejected",
                extra={"user_id": user_id, "payment_type": request.type, "error": e.code},
            )
            raise

    def _create_intent(self, user_id: str, request: IntentRequest) -> IntentResult:
        user = self.db.query(User).filter(User.id == user_id).one_or_none()
        if not user:
            raise ValidationError("Unknown user")

        provider = PaymentProvider(request.provider)
        pay_currency = self._resolve_pay_currency(provider, request.pay_currency)
        quote = self._quoters[PaymentType(request.type)](user_id, request)

        if not self._check_rate_limit(user_id):
            raise ValidationError("Too many purchases, try again later")

        payment_id = str(uuid4())
        rail = self._rail(provider)
        order = CheckoutOrder(
            payment_id=payment_id,
            user_id=user_id,
            payment_type=quote.payment_type,
            amount=quote.amount,
            currency=get_payment_currency(),
            description=quote.description,
            user_email=user.email,
            customer_id=user.stripe_customer_id,
            pay_currency=pay_currency,
            metadata={k: str(v) for k, v in quote.details.items()},
        )
        session = rail.create_checkout(order)

        if session.customer_id and not user.stripe_customer_id:
            user.stripe_customer_id = session.customer_id

        try:
            payment = self.ledger.create_pending(
                payment_id=payment_id,
                user_id=user_id,
                amount=quote.amount,
                currency=get_payment_currency(),
                provider=provider,
                provider_tx_id=session.provider_tx_id,
                payment_type=quote.payment_type,
                details={**quote.details, **session.details},
                description=quote.description,
            )
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.exception(
                "payment_intent_persist_failed",
                extra={"payment_id": payment_id, "provider_tx_id": session.provider_tx_id},
            )
            raise InternalError("Could not record payment")

        payment_intents_created_total.labels(type=quote.payment_type.value, provider=provider.value).inc()
        logger.info(
            "payment_intent_created",
            extra={
                "payment_id": payment.id,
                "user_id": user_id,
                "payment_type": payment.type,
                "provider": provider.value,
                "provider_tx_id": session.provider_tx_id,
            },
        )
        return IntentResult(payment_id=payment.id, provider=provider, provider_payload=session.payload)

    # ------------------------------------------------------------------
    # Quotes (one per payment type)
    # ------------------------------------------------------------------

    def _quote_subscription(self, user_id: str, request: SubscriptionIntentIn) -> Quote:
        plan = self.db.query(SubscriptionPlan).filter(SubscriptionPlan.id == request.plan_id).one_or_none()
        if not plan or not plan.enabled:
            raise ValidationError("Unknown subscription plan", {"plan_id": request.plan_id})
        interval = BillingInterval(request.billing_interval)
        price = plan.monthly_price if interval is BillingInterval.MONTHLY else plan.annual_price
        return Quote(
            payment_type=PaymentType.SUBSCRIPTION,
            amount=_money(price),
            description=f"{plan.name} subscription ({interval.value.lower()})",
            details={"plan_id": plan.id, "billing_interval": interval.value},
        )

    def _quote_media(self, user_id: str, request: MediaPurchaseIntentIn) -> Quote:
        media = self.db.query(MediaContent).filter(MediaContent.id == request.media_id).one_or_none()
        if not media or not media.is_published:
            raise ValidationError("Unknown media", {"media_id": request.media_id})
        if not media.is_purchaseable or media.price is None or media.price <= 0:
            raise ValidationError("Media is not for sale", {"media_id": media.id})
        owned = (
            self.db.query(MediaPurchase)
            .filter(
                MediaPurchase.user_id == user_id,
                MediaPurchase.media_id == media.id,
                MediaPurchase.status == PaymentStatus.COMPLETED.value,
            )
            .first()
        )
        if owned:
            raise AlreadyOwned("Media already purchased", {"media_id": media.id})
        return Quote(
            payment_type=PaymentType.MEDIA_PURCHASE,
            amount=_money(media.price),
            description=f"Purchase: {media.title}",
            details={"media_id": media.id},
        )

    def _quote_ppv(self, user_id: str, request: PpvUnlockIntentIn) -> Quote:
        message = self.db.query(Message).filter(Message.id == request.message_id).one_or_none()
        if not message or not message.is_ppv or message.ppv_price is None:
            raise ValidationError("Message is not a pay-per-view message", {"message_id": request.message_id})
        if MessageUnlockSet(self.db).contains(message.id, user_id):
            raise AlreadyOwned("Message already unlocked", {"message_id": message.id})
        price = _money(message.ppv_price)
        if request.amount is not None and _money(request.amount) != price:
            raise ValidationError("Amount does not match message price", {"message_id": message.id})
        return Quote(
            payment_type=PaymentType.PPV_UNLOCK,
            amount=price,
            description="Unlock PPV message",
            details={"message_id": message.id},
        )

    def _quote_tip(self, user_id: str, request: TipIntentIn) -> Quote:
        amount = _money(request.amount)
        minimum = get_tip_min_amount()
        if amount < minimum:
            raise InvalidAmount(f"Minimum tip is {minimum}", {"min_amount": str(minimum)})
        details: dict[str, Any] = {"recipient_id": get_creator().user_id}
        if request.message_id is not None:
            message = self.db.query(Message).filter(Message.id == request.message_id).one_or_none()
            if not message:
                raise ValidationError("Unknown message", {"message_id": request.message_id})
            details["message_id"] = message.id
        return Quote(
            payment_type=PaymentType.TIP,
            amount=amount,
            description=f"Tip for {get_creator().display_name}",
            details=details,
        )

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def _resolve_pay_currency(self, provider: PaymentProvider, pay_currency: str | None) -> str | None:
        if provider is not PaymentProvider.CRYPTO:
            return None
        coin = (pay_currency or "").strip().lower()
        if coin not in get_crypto_currencies():
            raise ValidationError(
                "Unsupported crypto currency",
                {"supported": sorted(get_crypto_currencies())},
            )
        return coin

    def _check_rate_limit(self, user_id: str) -> bool:
        """Не более purchase_rate_limit интентов за окно. Общий счётчик для всех реплик API."""
        key = f"purchase_rate:{user_id}"
        try:
            current = self._redis.incr(key)
            if current == 1:
                self._redis.expire(key, settings.purchase_rate_window_seconds)
            return current <= settings.purchase_rate_limit
        except redis.RedisError as e:
            logger.warning("purchase_rate_limit_redis_error", extra={"error": str(e)})
            return True  # fail open
