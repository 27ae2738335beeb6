"""
AccessService: call sites резолвера: карточка медиа и библиотека пользователя.
Оба собирают AccessContext через build_context, поэтому решения совпадают.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from app.access.access import can_view_content, has_access
from app.access.models import AccessContext, Caller
from app.models.media import MediaContent, MediaPurchase
from app.models.subscription import Subscription, SubscriptionPlan
from app.payments.errors import MediaNotFound, ValidationError
from app.payments.types import TIER_ORDER, AccessTier, PaymentStatus, SubscriptionStatus, tier_rank
from app.schemas.media import (
    LibraryItemOut,
    LibraryOut,
    LibraryStatsOut,
    LibrarySubscriptionOut,
    MediaOut,
)

logger = logging.getLogger(__name__)

LIBRARY_TABS = ("all", "purchased", "subscription")
SUBSCRIPTION_CONTENT_LIMIT = 50

LIKE_ESCAPE = "\\"


def _like_pattern(search: str) -> str:
    """Substring pattern for ILIKE; % and _ in user input match literally."""
    escaped = search.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2).replace("%", r"\%").replace("_", r"\_")
    return f"%{escaped}%"


def build_context(
    media: MediaContent,
    subscription_tier: AccessTier | None,
    purchased_ids: set[str] | dict,
) -> AccessContext:
    return AccessContext(
        media_tier=AccessTier(media.access_tier),
        subscription_tier=subscription_tier,
        already_purchased=media.id in purchased_ids,
    )


class AccessService:
    def __init__(self, db: Session):
        self.db = db

    def active_subscription(self, user_id: str | None) -> tuple[Subscription, SubscriptionPlan] | None:
        """Highest-tier ACTIVE subscription whose period has not ended."""
        if not user_id:
            return None
        now = datetime.now(timezone.utc)
        rows = (
            self.db.query(Subscription, SubscriptionPlan)
            .join(SubscriptionPlan, SubscriptionPlan.id == Subscription.plan_id)
            .filter(
                Subscription.user_id == user_id,
                Subscription.status == SubscriptionStatus.ACTIVE.value,
                Subscription.current_period_end > now,
            )
            .all()
        )
        if not rows:
            return None
        return max(rows, key=lambda row: tier_rank(row[1].access_tier))

    def subscription_tier(self, user_id: str | None) -> AccessTier | None:
        active = self.active_subscription(user_id)
        return AccessTier(active[1].access_tier) if active else None

    def purchased(self, user_id: str | None) -> dict[str, datetime]:
        """media_id -> purchase time for COMPLETED purchases."""
        if not user_id:
            return {}
        rows = (
            self.db.query(MediaPurchase.media_id, MediaPurchase.created_at)
            .filter(
                MediaPurchase.user_id == user_id,
                MediaPurchase.status == PaymentStatus.COMPLETED.value,
            )
            .all()
        )
        return {media_id: created_at for media_id, created_at in rows}

    # ------------------------------------------------------------------
    # Media detail
    # ------------------------------------------------------------------

    def get_media(self, media_id: str, caller: Caller) -> MediaOut:
        media = self.db.query(MediaContent).filter(MediaContent.id == media_id).one_or_none()
        if not media or (not media.is_published and not caller.is_creator):
            raise MediaNotFound("Media not found", {"media_id": media_id})

        purchased = self.purchased(caller.user_id)
        ctx = build_context(media, self.subscription_tier(caller.user_id), purchased)
        visible = can_view_content(ctx, caller)
        return MediaOut(
            id=media.id,
            title=media.title,
            description=media.description,
            media_type=media.media_type,
            access_tier=media.access_tier,
            thumbnail_url=media.thumbnail_url,
            is_purchaseable=media.is_purchaseable,
            price=media.price,
            is_published=media.is_published,
            created_at=media.created_at,
            has_access=has_access(ctx),
            has_purchased=ctx.already_purchased,
            content_url=media.content_url if visible else None,
        )

    # ------------------------------------------------------------------
    # Library
    # ------------------------------------------------------------------

    def get_library(self, user_id: str, tab: str = "all", search: str | None = None) -> LibraryOut:
        if tab not in LIBRARY_TABS:
            raise ValidationError("Unknown library tab", {"tab": tab, "allowed": list(LIBRARY_TABS)})

        active = self.active_subscription(user_id)
        sub_tier = AccessTier(active[1].access_tier) if active else None
        purchased = self.purchased(user_id)

        purchased_content: list[LibraryItemOut] = []
        subscription_content: list[LibraryItemOut] = []

        if tab in ("all", "purchased") and purchased:
            query = self._published(search).filter(MediaContent.id.in_(list(purchased)))
            for media in query.order_by(MediaContent.created_at.desc()).all():
                if not has_access(build_context(media, sub_tier, purchased)):
                    continue
                purchased_content.append(self._item(media, "purchased", purchased.get(media.id)))

        if tab in ("all", "subscription"):
            # FREE всегда; с подпиской: все уровни до её уровня включительно
            max_rank = tier_rank(sub_tier) if sub_tier else tier_rank(AccessTier.FREE)
            tiers = [t.value for t in TIER_ORDER[: max_rank + 1]]
            query = self._published(search).filter(MediaContent.access_tier.in_(tiers))
            if purchased:
                query = query.filter(MediaContent.id.notin_(list(purchased)))
            candidates = query.order_by(MediaContent.created_at.desc()).limit(SUBSCRIPTION_CONTENT_LIMIT).all()
            for media in candidates:
                if has_access(build_context(media, sub_tier, purchased)):
                    subscription_content.append(self._item(media, "subscription"))

        subscription = None
        if active:
            sub, plan = active
            subscription = LibrarySubscriptionOut(
                plan_id=plan.id,
                plan_name=plan.name,
                access_tier=plan.access_tier,
                can_message=plan.can_message,
                current_period_end=sub.current_period_end,
            )

        return LibraryOut(
            purchased_content=purchased_content,
            subscription_content=subscription_content,
            subscription=subscription,
            stats=LibraryStatsOut(
                purchased_count=len(purchased_content),
                subscription_count=len(subscription_content),
                total_accessible=len(purchased_content) + len(subscription_content),
            ),
        )

    def _published(self, search: str | None):
        query = self.db.query(MediaContent).filter(MediaContent.is_published.is_(True))
        if search:
            query = query.filter(MediaContent.title.ilike(_like_pattern(search), escape=LIKE_ESCAPE))
        return query

    @staticmethod
    def _item(media: MediaContent, source: str, purchased_at: datetime | None = None) -> LibraryItemOut:
        return LibraryItemOut(
            id=media.id,
            title=media.title,
            media_type=media.media_type,
            thumbnail_url=media.thumbnail_url,
            content_url=media.content_url,
            access_tier=media.access_tier,
            source=source,
            purchased_at=purchased_at,
        )
