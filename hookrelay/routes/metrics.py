"""
Prometheus metrics endpoint.

Exposes HTTP and webhook delivery metrics for monitoring.
"""
from fastapi import APIRouter, Response
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

router = APIRouter()

# ============================================
# HTTP Request Metrics
# ============================================

http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status']
)

http_request_duration = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# ============================================
# Outbound Webhook Metrics
# ============================================

webhooks_published = Counter(
    'webhook_jobs_enqueued_total',
    'Delivery jobs enqueued by publish',
    ['org_id', 'event']
)

webhook_deliveries = Counter(
    'webhook_deliveries_total',
    'Delivery attempts by resulting ledger status',
    ['org_id', 'status']
)

webhook_retries = Counter(
    'webhook_retries_scheduled_total',
    'Delayed retry jobs scheduled',
    ['org_id']
)

webhook_endpoints_disabled = Counter(
    'webhook_endpoints_disabled_total',
    'Endpoints auto-disabled after consecutive failures',
    ['org_id']
)

# ============================================
# Inbound Webhook Metrics
# ============================================

inbound_webhooks = Counter(
    'inbound_webhooks_total',
    'Inbound provider webhooks by outcome',
    ['provider', 'outcome']
)


# ============================================
# Metrics Helper Functions
# ============================================

def track_request(method: str, endpoint: str, status: int, duration_seconds: float):
    """
    Record HTTP request metrics.

    Call this after each request.
    """
    http_requests_total.labels(
        method=method,
        endpoint=endpoint,
        status=status
    ).inc()

    http_request_duration.labels(
        method=method,
        endpoint=endpoint
    ).observe(duration_seconds)


def track_webhook_published(org_id: str, event: str, jobs: int):
    """Record delivery jobs enqueued for an event."""
    webhooks_published.labels(org_id=org_id, event=event).inc(jobs)


def track_delivery(org_id: str, status: str):
    """Record a delivery attempt outcome (success, pending, failed)."""
    webhook_deliveries.labels(org_id=org_id, status=status).inc()


def track_retry_scheduled(org_id: str):
    """Record a retry job being scheduled."""
    webhook_retries.labels(org_id=org_id).inc()


def track_endpoint_disabled(org_id: str):
    """Record an endpoint auto-disable."""
    webhook_endpoints_disabled.labels(org_id=org_id).inc()


def track_inbound(provider: str, outcome: str):
    """Record an inbound webhook outcome."""
    inbound_webhooks.labels(provider=provider, outcome=outcome).inc()


# ============================================
# Prometheus Endpoint
# ============================================

@router.get("/metrics", include_in_schema=False)
async def metrics():
    """Expose metrics in Prometheus text format."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
