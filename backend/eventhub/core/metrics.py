"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Reservation metrics
reservation_attempts = Counter(
    'reservation_attempts_total',
    'Total reservation attempts',
    ['outcome']  # success or an error kind
)

reservation_cancellations = Counter(
    'reservation_cancellations_total',
    'Total reservation cancellations',
    ['outcome']
)

reservation_latency = Histogram(
    'reservation_latency_seconds',
    'Reservation transaction latency',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

# Capacity ledger metrics
ledger_operations = Counter(
    'ledger_operations_total',
    'Capacity ledger operations',
    ['operation', 'result']  # decrement/increment/resize, ok/rejected/clamped
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set, hit/miss
)

cache_invalidation_failures = Counter(
    'cache_invalidation_failures_total',
    'Post-commit cache invalidations that failed'
)


# HTTP metrics
http_request_duration = Histogram(
    'http_request_duration_seconds',
    'Request latency by route template and status class',
    ['method', 'route', 'status'],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5]
)


def metrics_endpoint() -> Response:
    """
    Prometheus metrics endpoint.

    Usage:
        @app.get("/metrics")
        def metrics():
            return metrics_endpoint()
    """
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


# Convenience functions for instrumentation
def record_reservation_attempt(outcome: str):
    """Record reservation attempt. Outcome: success or an ErrorKind value."""
    reservation_attempts.labels(outcome=outcome).inc()


def record_cancellation(outcome: str):
    reservation_cancellations.labels(outcome=outcome).inc()


def record_ledger_operation(operation: str, result: str):
    """Record ledger operation. Operation: decrement, increment, resize"""
    ledger_operations.labels(operation=operation, result=result).inc()


def observe_request(method: str, route: str, status_code: int, seconds: float):
    status = f"{status_code // 100}xx"
    http_request_duration.labels(method=method, route=route, status=status).observe(seconds)


def record_cache_operation(operation: str, hit: bool):
    """Record cache operation."""
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()
