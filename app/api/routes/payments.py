"""
Payment routes: intent creation, status polling, provider webhooks, plan catalog.
Webhook handlers read the raw body (signatures cover exact bytes) and run the
reconciler in the threadpool; any error propagates as non-2xx so the provider retries.
"""
from fastapi import APIRouter, Body, Depends, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.access.models import Caller
from app.api.deps import require_caller
from app.db.session import get_db
from app.payments.types import PaymentProvider
from app.schemas.payments import IntentOut, IntentRequest, PaymentStatusOut, PlanOut, WebhookAck
from app.services.payments.intents import PaymentIntentFactory
from app.services.payments.reconciler import WebhookReconciler
from app.services.payments.status import PaymentStatusService
from app.services.plans.service import PlanService


router = APIRouter(prefix="/payments", tags=["payments"])

CRYPTO_SIGNATURE_HEADER = "x-nowpayments-sig"
CARD_SIGNATURE_HEADER = "stripe-signature"


@router.get("/plans", response_model=list[PlanOut])
def list_plans(db: Session = Depends(get_db)) -> list[PlanOut]:
    return [
        PlanOut(
            id=plan.id,
            name=plan.name,
            access_tier=plan.access_tier,
            monthly_price=plan.monthly_price,
            annual_price=plan.annual_price,
            can_message=plan.can_message,
        )
        for plan in PlanService(db).list_active()
    ]


@router.post("/intent", response_model=IntentOut)
def create_intent(
    body: IntentRequest = Body(..., discriminator="type"),
    caller: Caller = Depends(require_caller),
    db: Session = Depends(get_db),
) -> IntentOut:
    result = PaymentIntentFactory(db).create_intent(caller.user_id, body)
    return IntentOut(
        payment_id=result.payment_id,
        provider=result.provider,
        provider_payload=result.provider_payload,
    )


@router.get("/{payment_id}/status", response_model=PaymentStatusOut)
def payment_status(
    payment_id: str,
    caller: Caller = Depends(require_caller),
    db: Session = Depends(get_db),
) -> PaymentStatusOut:
    payment, provider_status = PaymentStatusService(db).get_for_caller(payment_id, caller.user_id)
    return PaymentStatusOut(
        payment_id=payment.id,
        type=payment.type,
        status=payment.status,
        provider=payment.provider,
        provider_status=provider_status,
        amount=payment.amount,
        currency=payment.currency,
        created_at=payment.created_at,
        completed_at=payment.completed_at,
    )


async def _handle_webhook(request: Request, db: Session, provider: PaymentProvider, header: str) -> WebhookAck:
    raw_body = await request.body()
    signature = request.headers.get(header)
    result = await run_in_threadpool(WebhookReconciler(db).handle, provider, raw_body, signature)
    return WebhookAck(outcome=result.outcome.value, payment_id=result.payment_id)


@router.post("/webhook/crypto", response_model=WebhookAck)
async def crypto_webhook(request: Request, db: Session = Depends(get_db)) -> WebhookAck:
    return await _handle_webhook(request, db, PaymentProvider.CRYPTO, CRYPTO_SIGNATURE_HEADER)


@router.post("/webhook/card", response_model=WebhookAck)
async def card_webhook(request: Request, db: Session = Depends(get_db)) -> WebhookAck:
    return await _handle_webhook(request, db, PaymentProvider.CARD, CARD_SIGNATURE_HEADER)
