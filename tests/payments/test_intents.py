"""
Тесты PaymentIntentFactory: валидация по типу платежа, PENDING-строка, ошибки провайдера.
Рельсы и Redis подменены моками.
"""
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
import redis

from app.models.payment import Payment
from app.payments.errors import AlreadyOwned, InvalidAmount, ProviderError, ValidationError
from app.payments.types import PaymentProvider
from app.schemas.payments import intent_request_adapter
from app.services.messages.service import MessageUnlockSet
from app.services.payments.intents import PaymentIntentFactory
from app.services.payments.providers.base import CheckoutSession, PaymentRail
from conftest import make_media, make_message, make_plan, make_user


def _rail(provider: PaymentProvider, tx_id: str = "tx-1", customer_id: str | None = None):
    rail = MagicMock(spec=PaymentRail)
    rail.provider = provider
    rail.is_available.return_value = True
    rail.create_checkout.return_value = CheckoutSession(
        provider_tx_id=tx_id,
        payload={"checkout_url": "https://checkout.stripe.com/c/pay/cs_1", "session_id": tx_id},
        details={"checkout_session_id": tx_id},
        customer_id=customer_id,
    )
    return rail


def _redis(count: int = 1):
    client = MagicMock()
    client.incr.return_value = count
    return client


def _factory(db, rail=None, redis_client=None):
    rail = rail or _rail(PaymentProvider.CARD)
    return PaymentIntentFactory(db, rails={rail.provider: rail}, redis_client=redis_client or _redis())


def _request(**data):
    return intent_request_adapter.validate_python(data)


def test_subscription_intent_creates_pending_payment(db):
    user = make_user(db)
    make_plan(db, "PREMIUM", "PREMIUM", monthly="29.99")
    rail = _rail(PaymentProvider.CARD, tx_id="cs_sub", customer_id="cus_1")

    result = _factory(db, rail).create_intent(
        user.id, _request(type="SUBSCRIPTION", provider="CARD", plan_id="PREMIUM", billing_interval="MONTHLY")
    )

    payment = db.query(Payment).filter(Payment.id == result.payment_id).one()
    assert payment.status == "PENDING"
    assert payment.amount == Decimal("29.99")
    assert payment.provider_tx_id == "cs_sub"
    assert payment.details["plan_id"] == "PREMIUM"
    assert payment.details["billing_interval"] == "MONTHLY"
    assert result.provider_payload["session_id"] == "cs_sub"

    order = rail.create_checkout.call_args[0][0]
    assert order.payment_id == result.payment_id
    assert order.amount == Decimal("29.99")
    db.refresh(user)
    assert user.stripe_customer_id == "cus_1"


def test_annual_subscription_uses_annual_price(db):
    user = make_user(db)
    make_plan(db, "VIP", "VIP", monthly="49.99", annual="479.88")
    result = _factory(db).create_intent(
        user.id, _request(type="SUBSCRIPTION", provider="CARD", plan_id="VIP", billing_interval="ANNUAL")
    )
    assert db.get(Payment, result.payment_id).amount == Decimal("479.88")


def test_unknown_plan_rejected(db):
    user = make_user(db)
    with pytest.raises(ValidationError):
        _factory(db).create_intent(user.id, _request(type="SUBSCRIPTION", provider="CARD", plan_id="GOLD"))
    assert db.query(Payment).count() == 0


def test_unknown_user_rejected(db):
    make_plan(db)
    with pytest.raises(ValidationError):
        _factory(db).create_intent("ghost", _request(type="SUBSCRIPTION", provider="CARD", plan_id="PREMIUM"))


def test_media_purchase_already_owned(db):
    from app.models.media import MediaPurchase

    user = make_user(db)
    media = make_media(db, tier="VIP", price="4.99")
    db.add(MediaPurchase(
        user_id=user.id, media_id=media.id, amount=Decimal("4.99"),
        provider="CARD", provider_tx_id="cs_old", status="COMPLETED",
    ))
    db.commit()

    rail = _rail(PaymentProvider.CARD)
    with pytest.raises(AlreadyOwned):
        _factory(db, rail).create_intent(user.id, _request(type="MEDIA_PURCHASE", provider="CARD", media_id=media.id))
    rail.create_checkout.assert_not_called()


def test_media_not_for_sale(db):
    user = make_user(db)
    media = make_media(db, tier="BASIC", price=None)
    with pytest.raises(ValidationError):
        _factory(db).create_intent(user.id, _request(type="MEDIA_PURCHASE", provider="CARD", media_id=media.id))


def test_media_purchase_metadata(db):
    user = make_user(db)
    media = make_media(db, tier="VIP", price="4.99")
    result = _factory(db).create_intent(
        user.id, _request(type="MEDIA_PURCHASE", provider="CARD", media_id=media.id)
    )
    payment = db.get(Payment, result.payment_id)
    assert payment.details["media_id"] == media.id
    assert payment.amount == Decimal("4.99")


def test_ppv_amount_comes_from_message(db):
    user = make_user(db)
    message = make_message(db, ppv_price="7.50")
    result = _factory(db).create_intent(
        user.id, _request(type="PPV_UNLOCK", provider="CARD", message_id=message.id, amount="7.50")
    )
    assert db.get(Payment, result.payment_id).amount == Decimal("7.50")


def test_ppv_amount_mismatch_rejected(db):
    user = make_user(db)
    message = make_message(db, ppv_price="7.50")
    with pytest.raises(ValidationError):
        _factory(db).create_intent(
            user.id, _request(type="PPV_UNLOCK", provider="CARD", message_id=message.id, amount="0.50")
        )


def test_ppv_already_unlocked(db):
    user = make_user(db)
    message = make_message(db, ppv_price="7.50")
    MessageUnlockSet(db).add(message.id, user.id)
    db.commit()
    with pytest.raises(AlreadyOwned):
        _factory(db).create_intent(user.id, _request(type="PPV_UNLOCK", provider="CARD", message_id=message.id))


def test_ppv_on_regular_message_rejected(db):
    user = make_user(db)
    message = make_message(db, ppv_price=None)
    with pytest.raises(ValidationError):
        _factory(db).create_intent(user.id, _request(type="PPV_UNLOCK", provider="CARD", message_id=message.id))


def test_tip_below_minimum(db):
    user = make_user(db)
    with pytest.raises(InvalidAmount):
        _factory(db).create_intent(user.id, _request(type="TIP", provider="CARD", amount="0.50"))


def test_tip_with_fractional_cents_rejected(db):
    user = make_user(db)
    with pytest.raises(InvalidAmount):
        _factory(db).create_intent(user.id, _request(type="TIP", provider="CARD", amount="5.001"))


def test_tip_records_recipient_and_message(db):
    user = make_user(db)
    message = make_message(db)
    result = _factory(db).create_intent(
        user.id, _request(type="TIP", provider="CARD", amount="5", message_id=message.id)
    )
    payment = db.get(Payment, result.payment_id)
    assert payment.amount == Decimal("5.00")
    assert payment.details["recipient_id"] == "creator-1"
    assert payment.details["message_id"] == message.id


def test_crypto_requires_supported_currency(db):
    user = make_user(db)
    rail = _rail(PaymentProvider.CRYPTO)
    with pytest.raises(ValidationError):
        _factory(db, rail).create_intent(user.id, _request(type="TIP", provider="CRYPTO", amount="5", pay_currency="doge"))
    rail.create_checkout.assert_not_called()


def test_crypto_intent_passes_pay_currency(db):
    user = make_user(db)
    rail = _rail(PaymentProvider.CRYPTO, tx_id="5077125051")
    _factory(db, rail).create_intent(user.id, _request(type="TIP", provider="CRYPTO", amount="5", pay_currency="BTC"))
    assert rail.create_checkout.call_args[0][0].pay_currency == "btc"


def test_provider_error_writes_nothing(db):
    user = make_user(db)
    rail = _rail(PaymentProvider.CARD)
    rail.create_checkout.side_effect = ProviderError("Stripe error: boom")
    with pytest.raises(ProviderError):
        _factory(db, rail).create_intent(user.id, _request(type="TIP", provider="CARD", amount="5"))
    assert db.query(Payment).count() == 0


def test_rate_limit_exceeded(db):
    user = make_user(db)
    with pytest.raises(ValidationError):
        _factory(db, redis_client=_redis(count=100)).create_intent(
            user.id, _request(type="TIP", provider="CARD", amount="5")
        )


def test_rate_limit_fails_open_when_redis_down(db):
    user = make_user(db)
    client = MagicMock()
    client.incr.side_effect = redis.ConnectionError("down")
    result = _factory(db, redis_client=client).create_intent(
        user.id, _request(type="TIP", provider="CARD", amount="5")
    )
    assert result.payment_id
