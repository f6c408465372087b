"""
Prometheus metrics endpoint.

Exposes request, credit and generation metrics for monitoring.
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
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0]
)

# ============================================
# Business Metrics - Credits
# ============================================

credits_reserved = Counter(
    'credits_reserved_total',
    'Total credits reserved for generation requests',
    ['bucket_id']
)

credits_refunded = Counter(
    'credits_refunded_total',
    'Total credits refunded after failed requests',
    ['bucket_id']
)

credits_insufficient = Counter(
    'credits_insufficient_total',
    'Total requests rejected for insufficient credit',
    ['bucket_id']
)

compensation_failures = Counter(
    'compensation_failures_total',
    'Total refunds that could not be written inline',
)

# ============================================
# Business Metrics - Generations
# ============================================

generation_attempts = Counter(
    'generation_attempts_total',
    'Total generation attempts started',
    ['strict']
)

generation_candidate_failures = Counter(
    'generation_candidate_failures_total',
    'Total backend calls that failed for a candidate model',
    ['model']
)

generations_completed = Counter(
    'generations_completed_total',
    'Total generations persisted',
    ['model']
)

generations_failed = Counter(
    'generations_failed_total',
    'Total generation requests that failed after reservation',
    ['reason']
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


def track_credit_reserved(bucket_id: str, amount: int):
    """Record credits reserved for a request."""
    credits_reserved.labels(bucket_id=bucket_id).inc(amount)


def track_credit_refund(bucket_id: str, amount: int):
    """Record credits refunded for a failed request."""
    credits_refunded.labels(bucket_id=bucket_id).inc(amount)


def track_credit_insufficient(bucket_id: str):
    credits_insufficient.labels(bucket_id=bucket_id).inc()


def track_compensation_failure():
    compensation_failures.inc()


def track_attempt(strict: bool):
    generation_attempts.labels(strict=str(strict).lower()).inc()


def track_candidate_failure(model: str):
    generation_candidate_failures.labels(model=model).inc()


def track_generation_completed(model: str):
    generations_completed.labels(model=model).inc()


def track_generation_failed(reason: str):
    """Record a request that failed after credits were reserved."""
    generations_failed.labels(reason=reason).inc()


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
