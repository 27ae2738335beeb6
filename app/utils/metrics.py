"""
Prometheus-based metrics for production monitoring.
Provides /metrics endpoint for scraping.
"""
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Response


# Counters
payment_intents_created_total = Counter(
    "payment_intents_created_total",
    "Total number of PENDING payments created",
    ["type", "provider"],
)

payment_intents_rejected_total = Counter(
    "payment_intents_rejected_total",
    "Total number of rejected intent requests",
    ["reason"],
)

webhooks_received_total = Counter(
    "webhooks_received_total",
    "Total provider webhooks by outcome",
    ["provider", "outcome"],  # applied, duplicate, ignored, annotated, signature_invalid, not_found, error
)

entitlements_granted_total = Counter(
    "entitlements_granted_total",
    "Total entitlements granted",
    ["type"],
)

accounting_forward_total = Counter(
    "accounting_forward_total",
    "Accounting export attempts",
    ["status"],  # enqueued, delivered, failed, skipped
)

provider_requests_total = Counter(
    "provider_requests_total",
    "Total payment provider API requests",
    ["provider", "operation", "status"],
)

circuit_breaker_state = Gauge(
    "circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=open)",
    ["name"],
)

# Histograms
provider_request_duration_seconds = Histogram(
    "provider_request_duration_seconds",
    "Payment provider API request duration",
    ["provider", "operation"],
    buckets=[0.1, 0.5, 1, 2, 5, 10, 30],
)


# Metrics endpoint router
router = APIRouter()


@router.get("/metrics")
def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint for scraping."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
