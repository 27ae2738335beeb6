"""Tests for EntitlementGrantor: one handler per payment type, idempotent inserts, period math."""
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from app.models.media import MediaPurchase
from app.models.message import Message, MessagePayment
from app.models.subscription import Subscription
from app.payments.errors import InternalError
from app.payments.types import BillingInterval
from app.services.messages.service import MessageUnlockSet
from app.services.payments.entitlements import EntitlementGrantor, add_billing_interval
from conftest import FIXED_NOW, make_media, make_message, make_payment, make_plan, make_user, naive


@pytest.mark.parametrize(
    "start, interval, expected",
    [
        (datetime(2024, 1, 15, tzinfo=timezone.utc), BillingInterval.MONTHLY, datetime(2024, 2, 15, tzinfo=timezone.utc)),
        (datetime(2024, 1, 31, tzinfo=timezone.utc), BillingInterval.MONTHLY, datetime(2024, 2, 29, tzinfo=timezone.utc)),
        (datetime(2023, 12, 31, tzinfo=timezone.utc), BillingInterval.MONTHLY, datetime(2024, 1, 31, tzinfo=timezone.utc)),
        (datetime(2024, 2, 29, tzinfo=timezone.utc), BillingInterval.ANNUAL, datetime(2025, 2, 28, tzinfo=timezone.utc)),
    ],
)
def test_add_billing_interval(start, interval, expected):
    assert add_billing_interval(start, interval) == expected


def test_subscription_grant_creates_active_row(db, clock):
    user = make_user(db)
    make_plan(db, "PREMIUM", "PREMIUM")
    payment = make_payment(db, user.id, "SUBSCRIPTION", "29.99", {"plan_id": "PREMIUM", "billing_interval": "MONTHLY"})

    EntitlementGrantor(db, clock=clock).grant(payment)
    db.commit()

    sub = db.query(Subscription).filter(Subscription.user_id == user.id).one()
    assert sub.status == "ACTIVE"
    assert sub.last_payment_id == payment.id
    assert naive(sub.current_period_start) == naive(FIXED_NOW)
    assert naive(sub.current_period_end) == datetime(2024, 2, 29, 12, 0)


def test_subscription_renewal_extends_same_row(db):
    user = make_user(db)
    make_plan(db, "PREMIUM", "PREMIUM")
    first = make_payment(db, user.id, "SUBSCRIPTION", "29.99", {"plan_id": "PREMIUM", "billing_interval": "MONTHLY"})
    second = make_payment(db, user.id, "SUBSCRIPTION", "29.99", {"plan_id": "PREMIUM", "billing_interval": "MONTHLY"})

    EntitlementGrantor(db, clock=lambda: datetime(2024, 1, 10, tzinfo=timezone.utc)).grant(first)
    db.commit()
    EntitlementGrantor(db, clock=lambda: datetime(2024, 2, 10, tzinfo=timezone.utc)).grant(second)
    db.commit()

    rows = db.query(Subscription).filter(Subscription.user_id == user.id).all()
    assert len(rows) == 1
    assert rows[0].last_payment_id == second.id
    assert naive(rows[0].current_period_end) == datetime(2024, 3, 10)


def test_media_purchase_grant_is_idempotent(db, clock):
    user = make_user(db)
    media = make_media(db, tier="VIP", price="4.99")
    payment = make_payment(db, user.id, "MEDIA_PURCHASE", "4.99", {"media_id": media.id})
    grantor = EntitlementGrantor(db, clock=clock)

    grantor.grant(payment)
    grantor.grant(payment)
    db.commit()

    purchases = db.query(MediaPurchase).filter(MediaPurchase.user_id == user.id).all()
    assert len(purchases) == 1
    assert purchases[0].amount == Decimal("4.99")
    assert purchases[0].payment_id == payment.id


def test_ppv_grant_adds_to_unlock_set_once(db, clock):
    user = make_user(db)
    message = make_message(db, ppv_price="7.50")
    first = make_payment(db, user.id, "PPV_UNLOCK", "7.50", {"message_id": message.id})
    second = make_payment(db, user.id, "PPV_UNLOCK", "7.50", {"message_id": message.id})
    grantor = EntitlementGrantor(db, clock=clock)

    grantor.grant(first)
    grantor.grant(second)
    db.commit()

    assert MessageUnlockSet(db).members(message.id) == {user.id}
    assert db.query(MessagePayment).filter(MessagePayment.message_id == message.id).count() == 1


def test_tip_grant_increments_total(db, clock):
    user = make_user(db)
    message = make_message(db)
    payment = make_payment(db, user.id, "TIP", "5.00", {"message_id": message.id, "recipient_id": "creator-1"})

    EntitlementGrantor(db, clock=clock).grant(payment)
    db.commit()

    db.refresh(message)
    assert message.total_tips == Decimal("5.00")
    row = db.query(MessagePayment).filter(MessagePayment.payment_id == payment.id).one()
    assert row.type == "TIP"


def test_tip_without_message_touches_nothing(db, clock):
    user = make_user(db)
    payment = make_payment(db, user.id, "TIP", "5.00", {"recipient_id": "creator-1"})
    EntitlementGrantor(db, clock=clock).grant(payment)
    db.commit()
    assert db.query(MessagePayment).count() == 0


def test_missing_metadata_aborts(db, clock):
    user = make_user(db)
    payment = make_payment(db, user.id, "MEDIA_PURCHASE", "4.99", {})
    with pytest.raises(InternalError):
        EntitlementGrantor(db, clock=clock).grant(payment)


def test_revoke_marks_rows_refunded(db, clock):
    user = make_user(db)
    media = make_media(db, tier="VIP", price="4.99")
    payment = make_payment(db, user.id, "MEDIA_PURCHASE", "4.99", {"media_id": media.id}, status="COMPLETED")
    grantor = EntitlementGrantor(db, clock=clock)
    grantor.grant(payment)
    db.commit()

    grantor.revoke(payment)
    db.commit()

    purchase = db.query(MediaPurchase).filter(MediaPurchase.payment_id == payment.id).one()
    assert purchase.status == "REFUNDED"


def test_repurchase_after_refund_reactivates(db, clock):
    user = make_user(db)
    media = make_media(db, tier="VIP", price="4.99")
    old = make_payment(db, user.id, "MEDIA_PURCHASE", "4.99", {"media_id": media.id})
    new = make_payment(db, user.id, "MEDIA_PURCHASE", "4.99", {"media_id": media.id})
    grantor = EntitlementGrantor(db, clock=clock)
    grantor.grant(old)
    grantor.revoke(old)
    db.commit()

    grantor.grant(new)
    db.commit()

    purchase = db.query(MediaPurchase).filter(MediaPurchase.user_id == user.id).one()
    assert purchase.status == "COMPLETED"
    assert purchase.payment_id == new.id


def test_subscription_revoke_cancels(db, clock):
    user = make_user(db)
    make_plan(db, "BASIC", "BASIC", monthly="9.99")
    payment = make_payment(db, user.id, "SUBSCRIPTION", "9.99", {"plan_id": "BASIC", "billing_interval": "MONTHLY"})
    grantor = EntitlementGrantor(db, clock=clock)
    grantor.grant(payment)
    db.commit()
    grantor.revoke(payment)
    db.commit()

    sub = db.query(Subscription).filter(Subscription.user_id == user.id).one()
    db.refresh(sub)
    assert sub.status == "CANCELED"
    assert sub.canceled_at is not None


def test_total_tips_never_read_modify_write(db, clock):
    user = make_user(db)
    message = make_message(db)
    payments = [
        make_payment(db, user.id, "TIP", "5.00", {"message_id": message.id}) for _ in range(3)
    ]
    grantor = EntitlementGrantor(db, clock=clock)
    # stale in-memory value must not matter: increment happens in SQL
    stale = db.get(Message, message.id)
    for payment in payments:
        grantor.grant(payment)
    db.commit()
    db.refresh(stale)
    assert stale.total_tips == Decimal("15.00")
