"""
Prometheus metrics endpoint.

Exposes HTTP and webhook delivery metrics for monitoring.
"""
from fastapi import APIRouter, Response
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST

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
# Webhook Metrics
# ============================================

webhooks_triggered = Counter(
    'webhooks_triggered_total',
    'Total webhook trigger calls accepted into the dispatch queue',
    ['client_code', 'event_type']
)

webhooks_rejected = Counter(
    'webhooks_rejected_total',
    'Total webhook trigger calls rejected because the dispatch queue was full',
    ['client_code']
)

webhooks_sent = Counter(
    'webhooks_sent_total',
    'Total webhook delivery attempts by outcome',
    ['client_code', 'status']
)

webhooks_retried = Counter(
    'webhooks_retried_total',
    'Total webhook retry attempts by outcome',
    ['client_code', 'status']
)

webhook_queue_depth = Gauge(
    'webhook_queue_depth',
    'Trigger requests waiting in the dispatch queue'
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


def track_webhook_triggered(client_code: str, event_type: str):
    """Record a trigger accepted for dispatch."""
    webhooks_triggered.labels(client_code=client_code, event_type=event_type).inc()


def track_webhook_rejected(client_code: str):
    """Record a trigger dropped by back-pressure."""
    webhooks_rejected.labels(client_code=client_code).inc()


def track_webhook_sent(client_code: str, status: str):
    """Record a first delivery attempt outcome."""
    webhooks_sent.labels(client_code=client_code, status=status).inc()


def track_webhook_retry(client_code: str, status: str):
    """Record a retry attempt outcome."""
    webhooks_retried.labels(client_code=client_code, status=status).inc()


def update_queue_depth(depth: int):
    """Update pending trigger count."""
    webhook_queue_depth.set(depth)


# ============================================
# Prometheus Endpoint
# ============================================

@router.get("/metrics")
async def metrics():
    """
    Prometheus metrics endpoint.

    Returns all registered metrics in Prometheus format.
    """
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
