"""Observability infrastructure for the broker.

structlog logging with credential masking, the broker's Prometheus
counters, and the request-ID, metrics and request-log middleware that
`create_app` installs.

Quick start::

    from blacksmith.observability import LoggingConfig, configure_logging
    from blacksmith.observability.middleware import (
        MetricsMiddleware,
        RequestIdMiddleware,
        RequestLoggingMiddleware,
    )

    configure_logging(LoggingConfig())
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIdMiddleware)
"""

from .logging import LoggingConfig, configure_logging, get_logger, request_id_ctx
from .metrics import metrics_text

__all__ = [
    "LoggingConfig",
    "configure_logging",
    "get_logger",
    "metrics_text",
    "request_id_ctx",
]
