"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Booking metrics
booking_attempts = Counter(
    'lesson_booking_attempts_total',
    'Total lesson booking attempts',
    ['status']  # success, shift_unavailable, insufficient_balance, invalid, error
)

booking_latency = Histogram(
    'lesson_booking_latency_seconds',
    'Booking engine transaction latency',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

cancellations = Counter(
    'lesson_cancellations_total',
    'Booking cancellation attempts',
    ['result']  # cancelled, past_deadline, already_terminal, error
)

# Ledger metrics
ticket_operations = Counter(
    'ticket_ledger_operations_total',
    'Ticket ledger operations',
    ['kind', 'result']  # credit/debit, ok/rejected
)

# Report metrics
report_operations = Counter(
    'lesson_report_operations_total',
    'Lesson report operations',
    ['operation']  # filed, edited
)

# Lock metrics
lock_wait = Histogram(
    'resource_lock_wait_seconds',
    'Time spent waiting for shift / ticket holder locks',
    ['backend'],
    buckets=[0.0001, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0]
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set, hit/miss
)

redis_connection_errors = Counter(
    'redis_connection_errors_total',
    'Redis connection errors'
)


def metrics_endpoint() -> Response:
    """Prometheus scrape endpoint body."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_booking_attempt(status: str):
    booking_attempts.labels(status=status).inc()


def record_cancellation(result: str):
    cancellations.labels(result=result).inc()


def record_ticket_operation(kind: str, ok: bool):
    ticket_operations.labels(kind=kind, result="ok" if ok else "rejected").inc()


def record_report_operation(operation: str):
    report_operations.labels(operation=operation).inc()


def record_cache_operation(operation: str, hit: bool):
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()
