"""HTTP Basic auth middleware for the broker API.

Platforms authenticate to a service broker with a single username/password
pair. Both halves are compared in constant time.

Exempt paths (never require auth):
  - ``/health`` - liveness check
  - ``/metrics`` - Prometheus scrape
"""

from __future__ import annotations

import base64
import binascii
import secrets

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from blacksmith.observability.logging import get_logger

logger = get_logger(__name__)

# ── Constants ─────────────────────────────────────────────────────────

DEFAULT_EXEMPT_PATHS: frozenset[str] = frozenset({
    '/health',
    '/metrics',
})

REALM = 'blacksmith'


def parse_basic_credentials(header: str) -> tuple[str, str] | None:
    """Decode an ``Authorization: Basic ...`` header value.

    Returns None for any other scheme or a malformed payload.
    """
    scheme, _, encoded = header.partition(' ')
    if scheme.lower() != 'basic' or not encoded:
        return None
    try:
        decoded = base64.b64decode(encoded.strip(), validate=True).decode('utf-8')
    except (binascii.Error, UnicodeDecodeError):
        return None
    username, sep, password = decoded.partition(':')
    if not sep:
        return None
    return username, password


def credentials_match(
    supplied: tuple[str, str],
    expected: tuple[str, str],
) -> bool:
    # Evaluate both comparisons so timing does not reveal which half failed.
    user_ok = secrets.compare_digest(supplied[0].encode('utf-8'), expected[0].encode('utf-8'))
    pass_ok = secrets.compare_digest(supplied[1].encode('utf-8'), expected[1].encode('utf-8'))
    return user_ok and pass_ok


# ── Middleware ────────────────────────────────────────────────────────


class BasicAuthMiddleware(BaseHTTPMiddleware):
    """Reject requests to broker routes without valid Basic credentials.

    Args:
        app: The ASGI application.
        username: Expected broker username.
        password: Expected broker password.
        exempt_paths: Exact paths that skip auth.
    """

    def __init__(
        self,
        app,
        username: str,
        password: str,
        exempt_paths: frozenset[str] = DEFAULT_EXEMPT_PATHS,
    ) -> None:
        super().__init__(app)
        self._expected = (username, password)
        self._exempt_paths = exempt_paths

    async def dispatch(
        self, request: Request, call_next
    ) -> Response:
        if request.url.path in self._exempt_paths:
            return await call_next(request)

        supplied = parse_basic_credentials(request.headers.get('authorization', ''))
        if supplied is not None and credentials_match(supplied, self._expected):
            return await call_next(request)

        logger.info('broker_auth_rejected', path=request.url.path, has_credentials=supplied is not None)
        return JSONResponse(
            status_code=401,
            content={
                'error': 'Unauthorized',
                'description': 'valid broker credentials are required',
            },
            headers={'WWW-Authenticate': f'Basic realm="{REALM}"'},
        )
