"""
Error taxonomy of the payment core. Every error carries its HTTP status and a stable code;
app.main renders them as {"error": code, "detail": message}.
"""
from __future__ import annotations

from typing import Any


class PaymentError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str = "", detail: dict[str, Any] | None = None):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.detail = detail or {}


class ValidationError(PaymentError):
    """Malformed or missing request fields, unknown plan/media/message."""
    status_code = 400
    code = "validation_error"


class AlreadyOwned(PaymentError):
    """Nothing to buy: the user already owns the media or unlocked the message."""
    status_code = 409
    code = "already_owned"


class InvalidAmount(PaymentError):
    status_code = 400
    code = "invalid_amount"


class SignatureInvalid(PaymentError):
    """Webhook rejected: secret missing, header missing or signature mismatch."""
    status_code = 400
    code = "signature_invalid"


class PaymentNotFound(PaymentError):
    status_code = 404
    code = "payment_not_found"


class MediaNotFound(PaymentError):
    status_code = 404
    code = "media_not_found"


class ProviderError(PaymentError):
    """Upstream payment API failure (network, non-2xx, open circuit)."""
    status_code = 502
    code = "provider_error"


class InternalError(PaymentError):
    status_code = 500
    code = "internal_error"
