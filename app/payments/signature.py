"""
Webhook signature verification for both rails. Fails closed: no secret, no header,
malformed body or mismatch -> SignatureInvalid; the event must not be processed.
"""
from __future__ import annotations

import hashlib
import hmac
import json
import logging
from decimal import Decimal
from typing import Any

import stripe

from app.payments.errors import SignatureInvalid

logger = logging.getLogger(__name__)


# Integers up to 2**53 survive a JS Number round trip unchanged
JS_SAFE_INTEGER = 2 ** 53


def format_js_number(value: int | float | Decimal) -> str:
    """
    Number as JavaScript's Number#toString prints it: 0.00005 -> "0.00005", 30.0 -> "30",
    1e21 -> "1e+21", 1e-7 -> "1e-7". Digits are the shortest round-trip repr of the double.
    """
    if isinstance(value, int) and abs(value) < JS_SAFE_INTEGER:
        return str(value)
    number = float(value)
    if number != number or number in (float("inf"), float("-inf")):
        return "null"  # JSON.stringify(NaN)
    if number == 0:
        return "0"

    sign = "-" if number < 0 else ""
    _, digit_tuple, exponent = Decimal(repr(abs(number))).normalize().as_tuple()
    digits = "".join(map(str, digit_tuple))
    k = len(digits)
    n = exponent + k  # position of the decimal point relative to the digits

    if k <= n <= 21:
        body = digits + "0" * (n - k)
    elif 0 < n <= 21:
        body = f"{digits[:n]}.{digits[n:]}"
    elif -6 < n <= 0:
        body = "0." + "0" * (-n) + digits
    else:
        e = n - 1
        mantissa = digits if k == 1 else f"{digits[0]}.{digits[1:]}"
        body = f"{mantissa}e{'+' if e >= 0 else '-'}{abs(e)}"
    return sign + body


def canonical_crypto_body(payload: Any) -> str:
    """
    JSON.stringify of the payload with object keys sorted recursively: compact separators,
    non-ASCII kept, numbers in JavaScript notation (NOWPayments signs that exact string).
    """
    if isinstance(payload, dict):
        items = (
            f"{json.dumps(key, ensure_ascii=False)}:{canonical_crypto_body(payload[key])}"
            for key in sorted(payload)
        )
        return "{" + ",".join(items) + "}"
    if isinstance(payload, list):
        return "[" + ",".join(canonical_crypto_body(item) for item in payload) + "]"
    if isinstance(payload, bool) or payload is None:
        return json.dumps(payload)
    if isinstance(payload, (int, float, Decimal)):
        return format_js_number(payload)
    return json.dumps(payload, ensure_ascii=False)


def sign_crypto_payload(payload: dict[str, Any], secret: str) -> str:
    return hmac.new(
        secret.encode("utf-8"),
        canonical_crypto_body(payload).encode("utf-8"),
        hashlib.sha512,
    ).hexdigest()


def verify_crypto_signature(raw_body: bytes, signature: str | None, secret: str | None) -> dict[str, Any]:
    """
    Verify an NOWPayments IPN (HMAC-SHA512 over the key-sorted JSON body).
    Returns the parsed payload.
    """
    if not secret:
        logger.error("webhook_secret_missing", extra={"provider": "CRYPTO"})
        raise SignatureInvalid("Webhook secret is not configured")
    if not signature:
        raise SignatureInvalid("Missing signature")
    try:
        payload = json.loads(raw_body)
    except (ValueError, UnicodeDecodeError):
        raise SignatureInvalid("Malformed payload")
    if not isinstance(payload, dict):
        raise SignatureInvalid("Malformed payload")

    expected = sign_crypto_payload(payload, secret)
    if not hmac.compare_digest(expected, signature.strip().lower()):
        logger.warning("webhook_signature_mismatch", extra={"provider": "CRYPTO"})
        raise SignatureInvalid("Invalid signature")
    return payload


def verify_card_signature(raw_body: bytes, signature: str | None, secret: str | None) -> stripe.Event:
    """Verify a Stripe-Signature header and return the constructed event."""
    if not secret:
        logger.error("webhook_secret_missing", extra={"provider": "CARD"})
        raise SignatureInvalid("Webhook secret is not configured")
    if not signature:
        raise SignatureInvalid("Missing signature")
    try:
        return stripe.Webhook.construct_event(raw_body, signature, secret)
    except stripe.SignatureVerificationError:
        logger.warning("webhook_signature_mismatch", extra={"provider": "CARD"})
        raise SignatureInvalid("Invalid signature")
    except ValueError:
        raise SignatureInvalid("Malformed payload")
