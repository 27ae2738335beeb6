"""
Canonical status mapping: provider vocabularies -> PaymentStatus.
Чистые функции, без I/O. Неизвестный статус -> PENDING + warning, никогда не COMPLETED.
"""
from __future__ import annotations

import logging
from enum import Enum

from app.payments.types import PaymentStatus

logger = logging.getLogger(__name__)


class CryptoStatus(str, Enum):
    """NOWPayments payment_status vocabulary."""

    WAITING = "waiting"
    CONFIRMING = "confirming"
    CONFIRMED = "confirmed"
    SENDING = "sending"
    PARTIALLY_PAID = "partially_paid"
    FINISHED = "finished"
    FAILED = "failed"
    REFUNDED = "refunded"
    EXPIRED = "expired"


class CardEvent(str, Enum):
    """Stripe event types the card rail reacts to."""

    CHECKOUT_COMPLETED = "checkout.session.completed"
    CHECKOUT_ASYNC_SUCCEEDED = "checkout.session.async_payment_succeeded"
    CHECKOUT_ASYNC_FAILED = "checkout.session.async_payment_failed"
    CHECKOUT_EXPIRED = "checkout.session.expired"
    CHARGE_REFUNDED = "charge.refunded"


CRYPTO_STATUS_MAP: dict[CryptoStatus, PaymentStatus] = {
    CryptoStatus.WAITING: PaymentStatus.PENDING,
    CryptoStatus.CONFIRMING: PaymentStatus.PENDING,
    CryptoStatus.PARTIALLY_PAID: PaymentStatus.PENDING,
    CryptoStatus.CONFIRMED: PaymentStatus.COMPLETED,
    CryptoStatus.SENDING: PaymentStatus.COMPLETED,
    CryptoStatus.FINISHED: PaymentStatus.COMPLETED,
    CryptoStatus.FAILED: PaymentStatus.FAILED,
    CryptoStatus.EXPIRED: PaymentStatus.FAILED,
    CryptoStatus.REFUNDED: PaymentStatus.REFUNDED,
}

CARD_EVENT_MAP: dict[CardEvent, PaymentStatus] = {
    # checkout.session.completed is refined by payment_status in map_card_event
    CardEvent.CHECKOUT_COMPLETED: PaymentStatus.COMPLETED,
    CardEvent.CHECKOUT_ASYNC_SUCCEEDED: PaymentStatus.COMPLETED,
    CardEvent.CHECKOUT_ASYNC_FAILED: PaymentStatus.FAILED,
    CardEvent.CHECKOUT_EXPIRED: PaymentStatus.FAILED,
    CardEvent.CHARGE_REFUNDED: PaymentStatus.REFUNDED,
}

# Checkout sessions paid by delayed methods complete with payment_status="unpaid"
# and are settled later by async_payment_succeeded / async_payment_failed.
CARD_PAID_SESSION_STATUSES = frozenset({"paid", "no_payment_required"})


def map_crypto_status(raw_status: str | None) -> PaymentStatus:
    try:
        status = CryptoStatus((raw_status or "").strip().lower())
    except ValueError:
        logger.warning("unknown_provider_status", extra={"provider": "CRYPTO", "raw_status": raw_status})
        return PaymentStatus.PENDING
    return CRYPTO_STATUS_MAP[status]


def map_card_event(event_type: str | None, session_payment_status: str | None = None) -> PaymentStatus:
    try:
        event = CardEvent(event_type or "")
    except ValueError:
        logger.warning("unknown_provider_status", extra={"provider": "CARD", "raw_status": event_type})
        return PaymentStatus.PENDING
    if event is CardEvent.CHECKOUT_COMPLETED and session_payment_status not in CARD_PAID_SESSION_STATUSES:
        return PaymentStatus.PENDING
    return CARD_EVENT_MAP[event]
