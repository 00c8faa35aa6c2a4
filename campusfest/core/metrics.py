"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# HTTP
http_request_duration = Histogram(
    'http_request_duration_seconds',
    'Request latency by route template',
    ['method', 'route', 'status_class'],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5]
)

# Admission metrics
admission_attempts = Counter(
    'admission_attempts_total',
    'Registration admission attempts',
    ['outcome']  # admitted, or the rejection reason
)

admission_latency = Histogram(
    'admission_latency_seconds',
    'Registration admission latency',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

waitlist_events = Counter(
    'waitlist_events_total',
    'Waitlist joins and promotions',
    ['action']  # joined, promoted
)

# Inventory metrics
purchase_attempts = Counter(
    'purchase_attempts_total',
    'Merchandise purchase attempts',
    ['outcome']
)

stock_restored_units = Counter(
    'stock_restored_units_total',
    'Merchandise units returned to stock on order rejection'
)

# Team metrics
team_operations = Counter(
    'team_operations_total',
    'Team formation operations',
    ['operation', 'outcome']
)

# Tickets
ticket_id_retries = Counter(
    'ticket_id_retries_total',
    'Ticket identifier regenerations after a collision'
)

# Reconciler
status_transitions = Counter(
    'event_status_transitions_total',
    'Event lifecycle transitions applied by the reconciler',
    ['to_status']
)

# Notifications
notification_failures = Counter(
    'notification_failures_total',
    'Notifications that could not be delivered',
    ['kind']
)

# Admission gate
redis_connection_errors = Counter(
    'redis_connection_errors_total',
    'Redis connection errors'
)

redis_circuit_breaker_open = Gauge(
    'redis_circuit_breaker_open',
    'Redis circuit breaker state (1=open, 0=closed)'
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
def record_admission(outcome: str):
    """Record admission outcome: 'admitted' or a rejection reason code."""
    admission_attempts.labels(outcome=outcome).inc()


def record_purchase(outcome: str):
    purchase_attempts.labels(outcome=outcome).inc()


def record_waitlist(action: str):
    waitlist_events.labels(action=action).inc()


def record_team_operation(operation: str, outcome: str):
    team_operations.labels(operation=operation, outcome=outcome).inc()
