"""
Crypto rail: NOWPayments REST API via httpx sync client.
IPN callbacks are verified with HMAC-SHA512 over the key-sorted body (app.payments.signature).
"""
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import quote

import httpx
import pybreaker
import redis

from app.core.config import settings
from app.payments.config import get_crypto_ipn_secret, get_crypto_payment_ttl_minutes, get_public_url
from app.payments.errors import ProviderError, ValidationError
from app.payments.signature import format_js_number, verify_crypto_signature
from app.payments.status_mapper import map_crypto_status
from app.payments.types import PaymentProvider
from app.services.circuit_breaker import CRYPTO_RAIL_BREAKER, get_circuit_breaker
from app.services.payments.providers.base import (
    CheckoutOrder,
    CheckoutSession,
    PaymentRail,
    ProviderEvent,
)
from app.utils.metrics import provider_request_duration_seconds, provider_requests_total

logger = logging.getLogger(__name__)

# Echoed IPN fields kept on the ledger row
IPN_DETAIL_FIELDS = (
    "actually_paid",
    "outcome_amount",
    "outcome_currency",
    "pay_amount",
    "pay_currency",
    "pay_address",
)

QR_CODE_API = "https://api.qrserver.com/v1/create-qr-code/?size=200x200&data="
# Wallet URI schemes; other coins (USDT etc.) get the bare address
URI_SCHEMES = {
    "btc": ("bitcoin", "amount"),
    "eth": ("ethereum", "value"),
}


def payment_uri(pay_currency: str, pay_address: str | None, pay_amount) -> str | None:
    """Wallet deep link for the QR code, e.g. bitcoin:<address>?amount=0.00005."""
    if not pay_address:
        return None
    scheme = URI_SCHEMES.get(pay_currency.lower())
    if scheme is None or pay_amount is None:
        return pay_address
    amount = pay_amount if isinstance(pay_amount, str) else format_js_number(pay_amount)
    return f"{scheme[0]}:{pay_address}?{scheme[1]}={amount}"


def qr_code_url(uri: str) -> str:
    return QR_CODE_API + quote(uri, safe="-_.!~*'()")


class NowPaymentsRail(PaymentRail):
    provider = PaymentProvider.CRYPTO

    def __init__(
        self,
        api_key: str | None = None,
        api_url: str | None = None,
        ipn_secret: str | None = None,
        timeout: float | None = None,
        client: httpx.Client | None = None,
        breaker: pybreaker.CircuitBreaker | None = None,
    ) -> None:
        self._api_key = api_key if api_key is not None else settings.nowpayments_api_key
        self._api_url = (api_url or settings.nowpayments_api_url).rstrip("/")
        self._ipn_secret = ipn_secret if ipn_secret is not None else get_crypto_ipn_secret()
        self._timeout = timeout or settings.nowpayments_timeout
        self._client = client
        self._breaker = breaker

    @property
    def client(self) -> httpx.Client:
        """Lazy initialization of httpx client."""
        if self._client is None:
            self._client = httpx.Client(timeout=self._timeout)
        return self._client

    @property
    def breaker(self) -> pybreaker.CircuitBreaker:
        if self._breaker is None:
            self._breaker = get_circuit_breaker(CRYPTO_RAIL_BREAKER)
        return self._breaker

    def is_available(self) -> bool:
        return bool(self._api_key)

    def _send(self, method: str, path: str, json: dict | None = None) -> dict[str, Any]:
        resp = self.client.request(
            method,
            f"{self._api_url}{path}",
            json=json,
            headers={"x-api-key": self._api_key},
        )
        if resp.status_code >= 400:
            try:
                message = resp.json().get("message") or resp.text
            except ValueError:
                message = resp.text
            raise ProviderError(f"NOWPayments {resp.status_code}: {message}")
        return resp.json()

    def _request(self, operation: str, method: str, path: str, json: dict | None = None) -> dict[str, Any]:
        if not self.is_available():
            raise ProviderError("NOWPayments API key not configured")
        start = time.time()
        try:
            data = self.breaker.call(self._send, method, path, json)
        except ProviderError:
            provider_requests_total.labels(provider="CRYPTO", operation=operation, status="error").inc()
            raise
        except (httpx.HTTPError, ValueError) as e:
            provider_requests_total.labels(provider="CRYPTO", operation=operation, status="error").inc()
            raise ProviderError(f"NOWPayments request failed: {e}") from e
        except (pybreaker.CircuitBreakerError, redis.RedisError) as e:
            provider_requests_total.labels(provider="CRYPTO", operation=operation, status="unavailable").inc()
            raise ProviderError("NOWPayments temporarily unavailable") from e
        finally:
            provider_request_duration_seconds.labels(provider="CRYPTO", operation=operation).observe(time.time() - start)
        provider_requests_total.labels(provider="CRYPTO", operation=operation, status="success").inc()
        return data

    def create_checkout(self, order: CheckoutOrder) -> CheckoutSession:
        if not order.pay_currency:
            raise ValidationError("pay_currency is required for crypto payments")
        body = {
            "price_amount": float(order.amount),
            "price_currency": order.currency.lower(),
            "pay_currency": order.pay_currency,
            "order_id": order.payment_id,
            "order_description": order.description,
            "ipn_callback_url": f"{get_public_url()}/payments/webhook/crypto",
        }
        data = self._request("create_payment", "POST", "/payment", json=body)
        provider_tx_id = data.get("payment_id")
        if provider_tx_id is None:
            raise ProviderError("NOWPayments response has no payment_id")

        expires_at = datetime.now(timezone.utc) + timedelta(minutes=get_crypto_payment_ttl_minutes())
        pay_currency = data.get("pay_currency", order.pay_currency)
        uri = payment_uri(pay_currency, data.get("pay_address"), data.get("pay_amount"))
        payload = {
            "provider_payment_id": str(provider_tx_id),
            "pay_address": data.get("pay_address"),
            "pay_amount": data.get("pay_amount"),
            "pay_currency": pay_currency,
            "payment_uri": uri,
            "qr_code_url": qr_code_url(uri) if uri else None,
            "expires_at": expires_at.isoformat(),
        }
        details = {
            "crypto_currency": order.pay_currency,
            "pay_amount": data.get("pay_amount"),
            "pay_address": data.get("pay_address"),
        }
        return CheckoutSession(provider_tx_id=str(provider_tx_id), payload=payload, details=details)

    def fetch_status(self, provider_tx_id: str) -> str | None:
        data = self._request("get_payment", "GET", f"/payment/{provider_tx_id}")
        return data.get("payment_status")

    def parse_webhook(self, raw_body: bytes, signature: str | None) -> ProviderEvent:
        payload = verify_crypto_signature(raw_body, signature, self._ipn_secret)
        provider_tx_id = payload.get("payment_id")
        if provider_tx_id is None:
            raise ValidationError("IPN payload has no payment_id")
        raw_status = str(payload.get("payment_status") or "")
        details = {k: payload[k] for k in IPN_DETAIL_FIELDS if payload.get(k) is not None}
        details["provider_status"] = raw_status
        return ProviderEvent(
            provider=self.provider,
            provider_tx_id=str(provider_tx_id),
            raw_status=raw_status,
            status=map_crypto_status(raw_status),
            details=details,
        )
