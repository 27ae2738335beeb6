"""Tests for webhook signature verification (both rails)."""
import hashlib
import hmac
import json
import time

import pytest

from app.payments.errors import SignatureInvalid
from app.payments.signature import (
    canonical_crypto_body,
    format_js_number,
    sign_crypto_payload,
    verify_card_signature,
    verify_crypto_signature,
)
from conftest import FULL_IPN, FULL_IPN_SIG, SMALL_AMOUNT_IPN, SMALL_AMOUNT_SIG

SECRET = "test-ipn-secret"


def _ipn(**overrides):
    payload = {
        "payment_id": 5077125051,
        "payment_status": "finished",
        "pay_address": "0xabc",
        "price_amount": 29.99,
        "price_currency": "usd",
        "order_id": "p-1",
    }
    payload.update(overrides)
    return payload


def test_canonical_body_sorts_keys_recursively():
    body = canonical_crypto_body({"b": 1, "a": {"d": 2, "c": 3}})
    assert body == '{"a":{"c":3,"d":2},"b":1}'


def test_crypto_signature_accepts_any_key_order():
    payload = _ipn()
    signature = sign_crypto_payload(payload, SECRET)
    # provider may send keys in any order; signature covers the sorted form
    raw = json.dumps(dict(reversed(list(payload.items())))).encode()
    assert verify_crypto_signature(raw, signature, SECRET) == payload


def test_crypto_signature_uppercase_hex_accepted():
    payload = _ipn()
    signature = sign_crypto_payload(payload, SECRET).upper()
    assert verify_crypto_signature(json.dumps(payload).encode(), signature, SECRET)["payment_id"] == 5077125051


def test_crypto_signature_tampered_payload_rejected():
    payload = _ipn()
    signature = sign_crypto_payload(payload, SECRET)
    tampered = json.dumps(_ipn(price_amount=0.01)).encode()
    with pytest.raises(SignatureInvalid):
        verify_crypto_signature(tampered, signature, SECRET)


def test_crypto_signature_missing_header_rejected():
    with pytest.raises(SignatureInvalid):
        verify_crypto_signature(json.dumps(_ipn()).encode(), None, SECRET)


def test_crypto_signature_missing_secret_fails_closed():
    payload = _ipn()
    with pytest.raises(SignatureInvalid):
        verify_crypto_signature(json.dumps(payload).encode(), sign_crypto_payload(payload, ""), "")


def test_crypto_signature_malformed_body_rejected():
    with pytest.raises(SignatureInvalid):
        verify_crypto_signature(b"not-json", "deadbeef", SECRET)
    with pytest.raises(SignatureInvalid):
        verify_crypto_signature(b"[1, 2]", "deadbeef", SECRET)


def _stripe_header(payload: bytes, secret: str, timestamp: int | None = None) -> str:
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload.decode()}".encode()
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def _stripe_event() -> bytes:
    return json.dumps({
        "id": "evt_1",
        "object": "event",
        "type": "checkout.session.completed",
        "data": {"object": {"id": "cs_test_1", "object": "checkout.session", "payment_status": "paid"}},
    }).encode()


def test_card_signature_valid():
    raw = _stripe_event()
    event = verify_card_signature(raw, _stripe_header(raw, "whsec_test"), "whsec_test")
    assert event["type"] == "checkout.session.completed"
    assert event["data"]["object"]["id"] == "cs_test_1"


def test_card_signature_wrong_secret_rejected():
    raw = _stripe_event()
    with pytest.raises(SignatureInvalid):
        verify_card_signature(raw, _stripe_header(raw, "whsec_other"), "whsec_test")


def test_card_signature_missing_header_or_secret_rejected():
    raw = _stripe_event()
    with pytest.raises(SignatureInvalid):
        verify_card_signature(raw, None, "whsec_test")
    with pytest.raises(SignatureInvalid):
        verify_card_signature(raw, _stripe_header(raw, "whsec_test"), "")




def test_crypto_signature_small_coin_amount():
    payload = verify_crypto_signature(SMALL_AMOUNT_IPN, SMALL_AMOUNT_SIG, SECRET)
    assert payload["pay_amount"] == 0.00005


def test_crypto_signature_full_ipn_any_order_and_spacing():
    payload = verify_crypto_signature(FULL_IPN, FULL_IPN_SIG, SECRET)
    assert payload["payment_id"] == 5077125051
    assert canonical_crypto_body(payload) == (
        '{"actually_paid":0.00004998,"order_id":"pay-1","outcome_amount":1e-7,"outcome_currency":"btc",'
        '"pay_address":"bc1qexample","pay_amount":0.00005,"pay_currency":"btc","payment_id":5077125051,'
        '"payment_status":"finished","price_amount":5,"price_currency":"usd"}'
    )


def test_crypto_signature_small_amount_tampered_rejected():
    tampered = SMALL_AMOUNT_IPN.replace(b"0.00005,", b"0.00006,", 1)
    with pytest.raises(SignatureInvalid):
        verify_crypto_signature(tampered, SMALL_AMOUNT_SIG, SECRET)


@pytest.mark.parametrize(
    "value, expected",
    [
        (0.00005, "0.00005"),
        (0.000001, "0.000001"),
        (1e-7, "1e-7"),
        (1.5e-10, "1.5e-10"),
        (30.0, "30"),
        (29.99, "29.99"),
        (-0.5, "-0.5"),
        (0.0, "0"),
        (5077125051, "5077125051"),
        (1e21, "1e+21"),
        (123456789012345680000.0, "123456789012345680000"),
        (2 ** 60, "1152921504606847000"),
    ],
)
def test_format_js_number(value, expected):
    assert format_js_number(value) == expected
