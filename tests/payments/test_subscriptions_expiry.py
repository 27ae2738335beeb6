"""Beat task for subscription expiry and default plan seeding."""
from datetime import timedelta
from unittest.mock import patch

from app.models.subscription import Subscription, SubscriptionPlan
from app.services.plans.service import PlanService
from app.workers.tasks.subscriptions import expire_due_subscriptions, expire_subscriptions
from conftest import FIXED_NOW, make_user


def _sub(db, user_id, plan_id, end, status="ACTIVE"):
    sub = Subscription(
        user_id=user_id,
        plan_id=plan_id,
        provider="CRYPTO",
        status=status,
        billing_interval="MONTHLY",
        current_period_start=end - timedelta(days=30),
        current_period_end=end,
    )
    db.add(sub)
    db.commit()
    return sub


def test_expire_only_due_active(db):
    user = make_user(db)
    due = _sub(db, user.id, "BASIC", FIXED_NOW - timedelta(hours=1))
    current = _sub(db, user.id, "PREMIUM", FIXED_NOW + timedelta(days=3))
    canceled = _sub(db, user.id, "VIP", FIXED_NOW - timedelta(days=2), status="CANCELED")

    assert expire_due_subscriptions(db, now=FIXED_NOW) == 1
    db.commit()

    for row in (due, current, canceled):
        db.refresh(row)
    assert due.status == "EXPIRED"
    assert current.status == "ACTIVE"
    assert canceled.status == "CANCELED"


def test_expire_task_commits(db):
    user = make_user(db)
    _sub(db, user.id, "BASIC", FIXED_NOW - timedelta(days=1))
    db.close = lambda: None  # the task closes its session; keep the fixture usable
    with patch("app.workers.tasks.subscriptions.SessionLocal", return_value=db):
        result = expire_subscriptions.run()
    assert result == {"ok": True, "expired_count": 1}


def test_seed_default_plans_is_idempotent(db):
    service = PlanService(db)
    assert service.seed_default_plans() == 3
    db.commit()
    assert service.seed_default_plans() == 0
    assert [plan.id for plan in service.list_active()] == ["BASIC", "PREMIUM", "VIP"]
    assert db.get(SubscriptionPlan, "PREMIUM").can_message is True
