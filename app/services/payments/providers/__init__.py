from app.services.payments.providers.base import (
    CheckoutOrder,
    CheckoutSession,
    PaymentRail,
    ProviderEvent,
)
from app.services.payments.providers.factory import RailFactory
from app.services.payments.providers.nowpayments import NowPaymentsRail
from app.services.payments.providers.stripe_checkout import StripeRail

__all__ = [
    "CheckoutOrder",
    "CheckoutSession",
    "PaymentRail",
    "ProviderEvent",
    "RailFactory",
    "NowPaymentsRail",
    "StripeRail",
]
