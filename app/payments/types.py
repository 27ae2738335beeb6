"""
Closed enums for the payment domain: canonical lifecycle, rails, payment types, tiers.
Values are stored as-is in the database (String columns).
"""
from __future__ import annotations

from enum import Enum


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"

    @property
    def is_terminal(self) -> bool:
        return self is not PaymentStatus.PENDING


# PENDING -> COMPLETED | FAILED; COMPLETED -> REFUNDED. Everything else is rejected.
ALLOWED_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.COMPLETED, PaymentStatus.FAILED}),
    PaymentStatus.COMPLETED: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.FAILED: frozenset(),
    PaymentStatus.REFUNDED: frozenset(),
}


def is_allowed_transition(current: PaymentStatus, new: PaymentStatus) -> bool:
    return new in ALLOWED_TRANSITIONS[current]


class PaymentProvider(str, Enum):
    CARD = "CARD"  # Stripe Checkout
    CRYPTO = "CRYPTO"  # NOWPayments


class PaymentType(str, Enum):
    SUBSCRIPTION = "SUBSCRIPTION"
    MEDIA_PURCHASE = "MEDIA_PURCHASE"
    PPV_UNLOCK = "PPV_UNLOCK"
    TIP = "TIP"


class MessagePaymentType(str, Enum):
    PPV_UNLOCK = "PPV_UNLOCK"
    TIP = "TIP"


class BillingInterval(str, Enum):
    MONTHLY = "MONTHLY"
    ANNUAL = "ANNUAL"


class SubscriptionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    CANCELED = "CANCELED"
    EXPIRED = "EXPIRED"


class AccessTier(str, Enum):
    FREE = "FREE"
    BASIC = "BASIC"
    PREMIUM = "PREMIUM"
    VIP = "VIP"


# Единственный канонический порядок уровней доступа.
TIER_ORDER: tuple[AccessTier, ...] = (
    AccessTier.FREE,
    AccessTier.BASIC,
    AccessTier.PREMIUM,
    AccessTier.VIP,
)


def tier_rank(tier: AccessTier | str) -> int:
    """Position of the tier in TIER_ORDER. Raises ValueError for unknown tiers."""
    return TIER_ORDER.index(AccessTier(tier))
