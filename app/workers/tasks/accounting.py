"""
Celery task: deliver a completed payment to the accounting webhook.
Fire-and-forget: failures are logged, never retried into the payment flow.
"""
import logging

import httpx

from app.core.celery_app import celery_app
from app.core.config import settings
from app.utils.metrics import accounting_forward_total

logger = logging.getLogger(__name__)


@celery_app.task(
    name="app.workers.tasks.accounting.forward_payment",
    time_limit=60,
    soft_time_limit=55,
)
def forward_payment(payload: dict) -> dict:
    url = settings.accounting_webhook_url
    if not url:
        accounting_forward_total.labels(status="skipped").inc()
        return {"ok": False, "skipped": True}

    headers = {"Content-Type": "application/json"}
    if settings.accounting_api_key:
        headers["X-API-Key"] = settings.accounting_api_key
    payment_id = payload.get("external_id")
    try:
        with httpx.Client(timeout=settings.accounting_timeout) as client:
            resp = client.post(url, json=payload, headers=headers)
        if resp.status_code >= 400:
            accounting_forward_total.labels(status="failed").inc()
            logger.warning(
                "accounting_forward_rejected",
                extra={"payment_id": payment_id, "status_code": resp.status_code},
            )
            return {"ok": False, "status_code": resp.status_code}
    except httpx.HTTPError as e:
        accounting_forward_total.labels(status="failed").inc()
        logger.warning("accounting_forward_failed", extra={"payment_id": payment_id, "error": str(e)})
        return {"ok": False, "error": str(e)}

    accounting_forward_total.labels(status="delivered").inc()
    logger.info("accounting_forwarded", extra={"payment_id": payment_id})
    return {"ok": True}
