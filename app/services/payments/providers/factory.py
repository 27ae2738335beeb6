"""
Factory for payment rails.
"""
from app.payments.errors import ValidationError
from app.payments.types import PaymentProvider
from app.services.payments.providers.base import PaymentRail
from app.services.payments.providers.nowpayments import NowPaymentsRail
from app.services.payments.providers.stripe_checkout import StripeRail


class RailFactory:
    """Factory for creating payment rail instances."""

    PROVIDERS: dict[PaymentProvider, type[PaymentRail]] = {
        PaymentProvider.CARD: StripeRail,
        PaymentProvider.CRYPTO: NowPaymentsRail,
    }

    @classmethod
    def create(cls, provider: PaymentProvider | str) -> PaymentRail:
        try:
            key = PaymentProvider(provider)
        except ValueError:
            raise ValidationError(f"Unknown payment provider: {provider}")
        return cls.PROVIDERS[key]()
