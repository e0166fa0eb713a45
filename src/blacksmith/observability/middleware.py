"""ASGI middleware for the broker's OSB endpoints.

``RequestIdMiddleware`` picks the correlation ID for a request, preferring
the platform's ``X-Request-ID`` and then the OSB
``X-Broker-API-Request-Identity`` header. ``MetricsMiddleware`` and
``RequestLoggingMiddleware`` label requests by route template, so every
instance and binding ID shares one series.
"""

from __future__ import annotations

import re
import time
import uuid
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from .logging import get_logger, request_id_ctx
from .metrics import (
    HTTP_REQUEST_DURATION_SECONDS,
    HTTP_REQUESTS_IN_FLIGHT,
    HTTP_REQUESTS_TOTAL,
)

logger = get_logger(__name__)

_REQUEST_ID_HEADERS = ("x-request-id", "x-broker-api-request-identity")
_VALID_REQUEST_ID = re.compile(r"^[a-zA-Z0-9\-]{8,128}$")

# Health checks and scrapes are logged at debug level only.
_QUIET_PATHS = frozenset({"/health", "/metrics"})

_INSTANCE_PATH = re.compile(
    r"^/v2/service_instances/(?P<instance_id>[^/]+)"
    r"(?:/service_bindings/(?P<binding_id>[^/]+))?"
)


def _normalize_path(path: str) -> str:
    """Replace instance and binding IDs in an OSB path with their names."""
    match = _INSTANCE_PATH.match(path)
    if match is None:
        return path
    template = "/v2/service_instances/{instance_id}"
    if match.group("binding_id") is not None:
        template += "/service_bindings/{binding_id}"
    return template + path[match.end():]


def _pick_request_id(request: Request) -> str:
    for header in _REQUEST_ID_HEADERS:
        candidate = request.headers.get(header, "")
        if candidate:
            return candidate if _VALID_REQUEST_ID.match(candidate) else str(uuid.uuid4())
    return str(uuid.uuid4())


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Expose the request's correlation ID to logs and echo it back.

    A malformed ID from the platform is replaced with a fresh UUID.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        rid = _pick_request_id(request)
        token = request_id_ctx.set(rid)
        try:
            response = await call_next(request)
        finally:
            request_id_ctx.reset(token)

        response.headers["X-Request-ID"] = rid
        return response


class MetricsMiddleware(BaseHTTPMiddleware):
    """Count and time broker requests by method, route and status."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        route = _normalize_path(request.url.path)
        method = request.method

        HTTP_REQUESTS_IN_FLIGHT.inc()
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            HTTP_REQUESTS_TOTAL.labels(method=method, path=route, status="500").inc()
            raise
        finally:
            HTTP_REQUESTS_IN_FLIGHT.dec()
            HTTP_REQUEST_DURATION_SECONDS.labels(method=method, path=route).observe(
                time.perf_counter() - start
            )

        HTTP_REQUESTS_TOTAL.labels(
            method=method, path=route, status=str(response.status_code),
        ).inc()
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One ``request_completed`` line per OSB call.

    The line carries the instance and binding IDs from the path and the
    platform's ``X-Broker-API-Version``. Server errors log at warning.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = round((time.perf_counter() - start) * 1000, 2)

        path = request.url.path
        fields = {
            "method": request.method,
            "route": _normalize_path(path),
            "status": response.status_code,
            "duration_ms": duration_ms,
        }
        match = _INSTANCE_PATH.match(path)
        if match is not None:
            fields.update({k: v for k, v in match.groupdict().items() if v is not None})
        api_version = request.headers.get("x-broker-api-version")
        if api_version:
            fields["api_version"] = api_version

        if path in _QUIET_PATHS:
            logger.debug("request_completed", **fields)
        elif response.status_code >= 500:
            logger.warning("request_completed", **fields)
        else:
            logger.info("request_completed", **fields)
        return response
