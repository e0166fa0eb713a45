"""Prometheus metrics for the broker.

Usage::

    from blacksmith.observability.metrics import LIFECYCLE_OPERATIONS_TOTAL

    LIFECYCLE_OPERATIONS_TOTAL.labels(operation="provision", outcome="accepted").inc()
"""

from __future__ import annotations

from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    CONTENT_TYPE_LATEST,
)

# ---------------------------------------------------------------------------
# HTTP request metrics
# ---------------------------------------------------------------------------

HTTP_REQUESTS_TOTAL = Counter(
    "http_server_requests_total",
    "Total HTTP requests by method, path pattern, and status code.",
    labelnames=["method", "path", "status"],
    registry=REGISTRY,
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "http_server_request_duration_seconds",
    "HTTP request latency in seconds.",
    labelnames=["method", "path"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
    registry=REGISTRY,
)

HTTP_REQUESTS_IN_FLIGHT = Gauge(
    "http_server_requests_in_flight",
    "Number of HTTP requests currently being processed.",
    registry=REGISTRY,
)

# ---------------------------------------------------------------------------
# Lifecycle metrics
# ---------------------------------------------------------------------------

LIFECYCLE_OPERATIONS_TOTAL = Counter(
    "broker_lifecycle_operations_total",
    "Lifecycle operations by operation name and outcome (result state or error code).",
    labelnames=["operation", "outcome"],
    registry=REGISTRY,
)

BACKUP_SCHEDULE_OPERATIONS_TOTAL = Counter(
    "broker_backup_schedule_operations_total",
    "Backup schedule registrations/deregistrations by outcome.",
    labelnames=["operation", "outcome"],
    registry=REGISTRY,
)


def metrics_text() -> tuple[bytes, str]:
    """Generate Prometheus exposition text and content-type header."""
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST
