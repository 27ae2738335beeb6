"""
Payments config: типизированная обёртка над app.core.config: лимиты, валюты, секреты рельс, creator actor.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache

from app.core.config import settings


@dataclass(frozen=True)
class Actor:
    """A well-known participant resolved from configuration (the creator)."""
    user_id: str
    display_name: str


@lru_cache(maxsize=1)
def get_creator() -> Actor:
    return Actor(user_id=settings.creator_user_id, display_name=settings.creator_display_name)


def is_creator(user_id: str | None) -> bool:
    creator_id = get_creator().user_id
    return bool(creator_id) and user_id == creator_id


def get_payment_currency() -> str:
    return settings.payment_currency.upper()


def get_tip_min_amount() -> Decimal:
    return Decimal(str(settings.tip_min_amount)).quantize(Decimal("0.01"))


def get_crypto_currencies() -> set[str]:
    return settings.crypto_currencies_set


def get_crypto_payment_ttl_minutes() -> int:
    return settings.crypto_payment_ttl_minutes


def get_crypto_ipn_secret() -> str:
    return settings.nowpayments_ipn_secret


def get_card_webhook_secret() -> str:
    return settings.stripe_webhook_secret


def get_status_cache_ttl() -> int:
    return settings.payment_status_cache_ttl


def get_public_url() -> str:
    return settings.app_public_url.rstrip("/")
