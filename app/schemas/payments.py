from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from app.payments.types import BillingInterval, PaymentProvider


class _IntentBase(BaseModel):
    model_config = {"frozen": True}

    provider: PaymentProvider
    pay_currency: str | None = None  # CRYPTO only: btc / eth / usdttrc20


class SubscriptionIntentIn(_IntentBase):
    type: Literal["SUBSCRIPTION"]
    plan_id: str
    billing_interval: BillingInterval = BillingInterval.MONTHLY


class MediaPurchaseIntentIn(_IntentBase):
    type: Literal["MEDIA_PURCHASE"]
    media_id: str


class PpvUnlockIntentIn(_IntentBase):
    type: Literal["PPV_UNLOCK"]
    message_id: str
    amount: Decimal | None = None  # если передан, должен совпадать с ppv_price


class TipIntentIn(_IntentBase):
    type: Literal["TIP"]
    amount: Decimal
    message_id: str | None = None


IntentRequest = Union[SubscriptionIntentIn, MediaPurchaseIntentIn, PpvUnlockIntentIn, TipIntentIn]

intent_request_adapter = TypeAdapter(Annotated[IntentRequest, Field(discriminator="type")])


class IntentOut(BaseModel):
    payment_id: str
    provider: PaymentProvider
    provider_payload: dict[str, Any]


class PaymentStatusOut(BaseModel):
    payment_id: str
    type: str
    status: str
    provider: str
    provider_status: str | None = None
    amount: Decimal
    currency: str
    created_at: datetime | None = None
    completed_at: datetime | None = None


class WebhookAck(BaseModel):
    received: bool = True
    outcome: str
    payment_id: str | None = None


class PlanOut(BaseModel):
    id: str
    name: str
    access_tier: str
    monthly_price: Decimal
    annual_price: Decimal
    can_message: bool
