"""
Decision только: has_access(ctx) -> bool.
Чистая функция, без I/O. Порядок уровней: единственный, из app.payments.types.TIER_ORDER.
"""
from __future__ import annotations

from app.access.models import AccessContext, Caller
from app.payments.types import AccessTier, tier_rank


def has_access(ctx: AccessContext) -> bool:
    """
    Доступ к медиа есть, если:
    - медиа куплено отдельно
    - медиа FREE
    - активная подписка того же или более высокого уровня
    """
    if ctx.already_purchased:
        return True
    if ctx.media_tier is AccessTier.FREE:
        return True
    if ctx.subscription_tier is None:
        return False
    return tier_rank(ctx.subscription_tier) >= tier_rank(ctx.media_tier)


def can_view_content(ctx: AccessContext, caller: Caller) -> bool:
    """content_url отдаётся только при доступе; создатель видит всё."""
    return caller.is_creator or has_access(ctx)
