"""
Celery beat task: mark ACTIVE subscriptions whose period has ended as EXPIRED.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy import update

from app.core.celery_app import celery_app
from app.db.session import SessionLocal
from app.models.subscription import Subscription
from app.payments.types import SubscriptionStatus

logger = logging.getLogger(__name__)


def expire_due_subscriptions(db, now: datetime | None = None) -> int:
    now = now or datetime.now(timezone.utc)
    result = db.execute(
        update(Subscription)
        .where(
            Subscription.status == SubscriptionStatus.ACTIVE.value,
            Subscription.current_period_end < now,
        )
        .values(status=SubscriptionStatus.EXPIRED.value, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


@celery_app.task(
    name="app.workers.tasks.subscriptions.expire_subscriptions",
    time_limit=60,
    soft_time_limit=55,
)
def expire_subscriptions() -> dict:
    db = SessionLocal()
    try:
        expired = expire_due_subscriptions(db)
        db.commit()
        if expired:
            logger.info("subscriptions_expired", extra={"outcome": str(expired)})
        return {"ok": True, "expired_count": expired}
    except Exception:
        db.rollback()
        logger.exception("subscriptions_expire_error")
        raise
    finally:
        db.close()
