"""
Payment domain library: canonical lifecycle, error taxonomy, status mapping and signature checks.
Pure code without DB access; services in app.services.payments build on it.
"""
from app.payments.errors import (
    AlreadyOwned,
    InternalError,
    InvalidAmount,
    MediaNotFound,
    PaymentError,
    PaymentNotFound,
    ProviderError,
    SignatureInvalid,
    ValidationError,
)
from app.payments.status_mapper import map_card_event, map_crypto_status
from app.payments.types import (
    AccessTier,
    BillingInterval,
    PaymentProvider,
    PaymentStatus,
    PaymentType,
    SubscriptionStatus,
    tier_rank,
)

__all__ = [
    "AccessTier",
    "AlreadyOwned",
    "BillingInterval",
    "InternalError",
    "InvalidAmount",
    "MediaNotFound",
    "PaymentError",
    "PaymentNotFound",
    "PaymentProvider",
    "PaymentStatus",
    "PaymentType",
    "ProviderError",
    "SignatureInvalid",
    "SubscriptionStatus",
    "ValidationError",
    "map_card_event",
    "map_crypto_status",
    "tier_rank",
]
