"""
DTO доступа: AccessContext (вход has_access) и Caller (уже проверенная личность запроса).
"""
from __future__ import annotations

from pydantic import BaseModel

from app.payments.types import AccessTier


class AccessContext(BaseModel):
    """Единый контракт входа для has_access; собирается одним хелпером для всех call sites."""

    media_tier: AccessTier
    subscription_tier: AccessTier | None = None  # None = нет активной подписки
    already_purchased: bool = False

    model_config = {"frozen": True}


class Caller(BaseModel):
    """Identity forwarded by the gateway. user_id=None for anonymous requests."""

    user_id: str | None = None
    is_creator: bool = False

    model_config = {"frozen": True}
