"""
Card rail: Stripe Checkout Sessions (mode=payment).
The session id is the provider transaction id; refunds arrive as charge.refunded
and are linked back to the session through its payment_intent.
"""
import logging
import time
from typing import Any

import pybreaker
import redis
import stripe

from app.core.config import settings
from app.payments.config import get_card_webhook_secret, get_public_url
from app.payments.errors import ProviderError
from app.payments.signature import verify_card_signature
from app.payments.status_mapper import CardEvent, map_card_event
from app.payments.types import PaymentProvider
from app.services.circuit_breaker import CARD_RAIL_BREAKER, get_circuit_breaker
from app.services.payments.providers.base import (
    CheckoutOrder,
    CheckoutSession,
    PaymentRail,
    ProviderEvent,
)
from app.utils.metrics import provider_request_duration_seconds, provider_requests_total

logger = logging.getLogger(__name__)

SESSION_EVENTS = frozenset({
    CardEvent.CHECKOUT_COMPLETED.value,
    CardEvent.CHECKOUT_ASYNC_SUCCEEDED.value,
    CardEvent.CHECKOUT_ASYNC_FAILED.value,
    CardEvent.CHECKOUT_EXPIRED.value,
})


def _to_minor_units(amount) -> int:
    return int((amount * 100).to_integral_value())


def _field(obj, key: str) -> Any:
    """Optional field of a StripeObject (not a dict: no .get) or a plain dict."""
    return obj[key] if key in obj else None


class StripeRail(PaymentRail):
    provider = PaymentProvider.CARD

    def __init__(
        self,
        secret_key: str | None = None,
        webhook_secret: str | None = None,
        breaker: pybreaker.CircuitBreaker | None = None,
    ) -> None:
        self._secret_key = secret_key if secret_key is not None else settings.stripe_secret_key
        self._webhook_secret = webhook_secret if webhook_secret is not None else get_card_webhook_secret()
        self._breaker = breaker

    @property
    def breaker(self) -> pybreaker.CircuitBreaker:
        if self._breaker is None:
            self._breaker = get_circuit_breaker(CARD_RAIL_BREAKER)
        return self._breaker

    def is_available(self) -> bool:
        return bool(self._secret_key)

    def _call(self, operation: str, fn, **params) -> Any:
        if not self.is_available():
            raise ProviderError("Stripe secret key not configured")
        start = time.time()
        try:
            result = self.breaker.call(fn, api_key=self._secret_key, **params)
        except stripe.StripeError as e:
            provider_requests_total.labels(provider="CARD", operation=operation, status="error").inc()
            raise ProviderError(f"Stripe error: {getattr(e, 'user_message', None) or e}") from e
        except (pybreaker.CircuitBreakerError, redis.RedisError) as e:
            provider_requests_total.labels(provider="CARD", operation=operation, status="unavailable").inc()
            raise ProviderError("Stripe temporarily unavailable") from e
        finally:
            provider_request_duration_seconds.labels(provider="CARD", operation=operation).observe(time.time() - start)
        provider_requests_total.labels(provider="CARD", operation=operation, status="success").inc()
        return result

    def _ensure_customer(self, order: CheckoutOrder) -> str | None:
        if order.customer_id:
            return order.customer_id
        if not order.user_email:
            return None
        customer = self._call(
            "create_customer",
            stripe.Customer.create,
            email=order.user_email,
            metadata={"user_id": order.user_id},
        )
        return customer["id"]

    def create_checkout(self, order: CheckoutOrder) -> CheckoutSession:
        customer_id = self._ensure_customer(order)
        base_url = get_public_url()
        metadata = {
            "payment_id": order.payment_id,
            "type": order.payment_type.value,
            "user_id": order.user_id,
            **order.metadata,
        }
        params: dict[str, Any] = {
            "mode": "payment",
            "line_items": [
                {
                    "price_data": {
                        "currency": order.currency.lower(),
                        "product_data": {"name": order.description},
                        "unit_amount": _to_minor_units(order.amount),
                    },
                    "quantity": 1,
                }
            ],
            "client_reference_id": order.payment_id,
            "metadata": metadata,
            "payment_intent_data": {"metadata": metadata},
            "success_url": f"{base_url}/payments/success?payment_id={order.payment_id}",
            "cancel_url": f"{base_url}/payments/cancel?payment_id={order.payment_id}",
        }
        if customer_id:
            params["customer"] = customer_id

        session = self._call("create_checkout", stripe.checkout.Session.create, **params)
        payload = {
            "session_id": session["id"],
            "checkout_url": _field(session, "url"),
        }
        details = {"checkout_session_id": session["id"]}
        if customer_id:
            details["customer_id"] = customer_id
        return CheckoutSession(
            provider_tx_id=session["id"],
            payload=payload,
            details=details,
            customer_id=customer_id,
        )

    def fetch_status(self, provider_tx_id: str) -> str | None:
        session = self._call("get_checkout", stripe.checkout.Session.retrieve, id=provider_tx_id)
        return _field(session, "payment_status")

    def _session_for_payment_intent(self, payment_intent_id: str) -> str | None:
        sessions = self._call(
            "list_checkout",
            stripe.checkout.Session.list,
            payment_intent=payment_intent_id,
            limit=1,
        )
        data = _field(sessions, "data") or []
        return data[0]["id"] if data else None

    def parse_webhook(self, raw_body: bytes, signature: str | None) -> ProviderEvent:
        event = verify_card_signature(raw_body, signature, self._webhook_secret)
        event_type = event["type"]
        obj = event["data"]["object"]
        event_id = _field(event, "id")
        details: dict[str, Any] = {"provider_event": event_type}

        if event_type in SESSION_EVENTS:
            payment_status = _field(obj, "payment_status")
            details["session_payment_status"] = payment_status
            if _field(obj, "payment_intent"):
                details["payment_intent"] = obj["payment_intent"]
            return ProviderEvent(
                provider=self.provider,
                provider_tx_id=obj["id"],
                raw_status=event_type,
                status=map_card_event(event_type, payment_status),
                details=details,
                event_id=event_id,
            )

        if event_type == CardEvent.CHARGE_REFUNDED.value:
            payment_intent_id = _field(obj, "payment_intent")
            details["payment_intent"] = payment_intent_id
            details["amount_refunded"] = _field(obj, "amount_refunded")
            provider_tx_id = self._session_for_payment_intent(payment_intent_id) if payment_intent_id else None
            # charge.refunded also fires for partial refunds; only a full refund moves the ledger
            fully_refunded = bool(_field(obj, "refunded"))
            if not fully_refunded:
                details["partially_refunded"] = True
                logger.info(
                    "card_partial_refund",
                    extra={"provider": "CARD", "provider_tx_id": provider_tx_id, "raw_status": event_type},
                )
            return ProviderEvent(
                provider=self.provider,
                provider_tx_id=provider_tx_id,
                raw_status=event_type,
                status=map_card_event(event_type) if fully_refunded else None,
                details=details,
                event_id=event_id,
            )

        logger.info("card_event_unhandled", extra={"provider": "CARD", "raw_status": event_type})
        return ProviderEvent(
            provider=self.provider,
            provider_tx_id=None,
            raw_status=event_type,
            status=map_card_event(event_type),
            details=details,
            event_id=event_id,
        )
