"""
Base classes and types for payment rails.
Used by the factory and both rails (card: Stripe Checkout, crypto: NOWPayments).
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from app.payments.types import PaymentProvider, PaymentStatus, PaymentType


@dataclass
class CheckoutOrder:
    """What the rail needs to open a provider-side payment for a ledger row."""
    payment_id: str  # ledger id, sent to the provider as order reference
    user_id: str
    payment_type: PaymentType
    amount: Decimal
    currency: str
    description: str
    user_email: str | None = None
    customer_id: str | None = None  # card rail: existing Stripe customer
    pay_currency: str | None = None  # crypto rail: coin to pay with
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class CheckoutSession:
    """Provider answer: transaction id for the ledger and instructions for the client."""
    provider_tx_id: str
    payload: dict[str, Any]
    details: dict[str, Any] = field(default_factory=dict)  # merged into Payment.metadata
    customer_id: str | None = None


@dataclass
class ProviderEvent:
    """Verified webhook reduced to what the reconciler needs."""
    provider: PaymentProvider
    provider_tx_id: str | None  # None = event not linked to any ledger row
    raw_status: str
    status: PaymentStatus | None  # None: metadata only, the ledger status stays
    details: dict[str, Any] = field(default_factory=dict)
    event_id: str | None = None


class PaymentRail(ABC):
    """Base class for payment rails."""

    provider: PaymentProvider

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the rail is configured for creating payments."""
        pass

    @abstractmethod
    def create_checkout(self, order: CheckoutOrder) -> CheckoutSession:
        """Open a provider-side payment. Raises ProviderError on upstream failure."""
        pass

    @abstractmethod
    def fetch_status(self, provider_tx_id: str) -> str | None:
        """Current raw provider status. Raises ProviderError on upstream failure."""
        pass

    @abstractmethod
    def parse_webhook(self, raw_body: bytes, signature: str | None) -> ProviderEvent:
        """Verify and parse a webhook. Raises SignatureInvalid on failed verification."""
        pass
