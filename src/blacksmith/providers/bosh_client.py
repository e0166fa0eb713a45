"""Async HTTP client for the BOSH director API.

Provides info, deployment create/delete, and task lookup. Deployment
mutations return a task ID, taken from the ``Location: /tasks/<id>``
redirect the director answers with (or from a JSON ``id`` when present).
Auth uses HTTP basic credentials. Reads are retried on timeouts and 429/5xx
with exponential backoff and jitter. Deployment create and delete are sent
once, and retried only when the connection could not be opened.
"""

from __future__ import annotations

import asyncio
import logging
import random
import re
from typing import Any

import httpx

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})
_SAFE_METHODS = frozenset({"GET"})
_TASK_LOCATION_RE = re.compile(r"/tasks/(\d+)")

_DEFAULT_MAX_RETRIES = 3
_DEFAULT_BASE_DELAY = 1.0  # seconds
_DEFAULT_MAX_DELAY = 30.0  # seconds


# ── Exception hierarchy ─────────────────────────────────────────


class BoshAPIError(Exception):
    """Base exception for BOSH director API errors."""

    def __init__(
        self,
        status_code: int,
        message: str = "",
        *,
        response_body: str = "",
    ) -> None:
        self.status_code = status_code
        self.message = message
        self.response_body = response_body
        super().__init__(f"BOSH API error {status_code}: {message}")


class BoshNotFoundError(BoshAPIError):
    """Deployment or task not found (404)."""

    def __init__(self, message: str = "not found", **kwargs: Any) -> None:
        super().__init__(404, message, **kwargs)


class BoshTimeoutError(BoshAPIError):
    """Director unreachable or request timed out."""

    def __init__(self, message: str = "Request timed out") -> None:
        super().__init__(0, message)


# ── Client ───────────────────────────────────────────────────────


class BoshClient:
    """Async client for a BOSH director."""

    def __init__(
        self,
        *,
        base_url: str,
        username: str,
        password: str,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 30.0,
        max_retries: int = _DEFAULT_MAX_RETRIES,
        base_delay: float = _DEFAULT_BASE_DELAY,
        max_delay: float = _DEFAULT_MAX_DELAY,
        verify: bool = True,
    ) -> None:
        if not base_url:
            raise ValueError("base_url is required")

        self._base_url = base_url.rstrip("/")
        self._auth = httpx.BasicAuth(username, password)
        self._client = http_client or httpx.AsyncClient(verify=verify)
        self._timeout = float(timeout_seconds)
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._max_delay = max_delay

    async def aclose(self) -> None:
        await self._client.aclose()

    def _raise_for_status(self, resp: httpx.Response) -> None:
        if resp.status_code < 400:
            return

        body = resp.text
        message = body[:200] if body else f"HTTP {resp.status_code}"

        try:
            payload = resp.json()
            if isinstance(payload, dict):
                message = payload.get("description", message)
        except ValueError:
            pass

        if resp.status_code == 404:
            raise BoshNotFoundError(message=message, response_body=body)

        raise BoshAPIError(
            status_code=resp.status_code,
            message=message,
            response_body=body,
        )

    async def _request_with_retry(
        self,
        method: str,
        path: str,
        *,
        content: str | None = None,
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Send a request, retrying only where a repeat cannot duplicate work.

        Connect failures are retried for every method since nothing reached
        the director. Timeouts and 429/5xx answers are retried for GET only;
        a mutation that may have been accepted is reported, not resent.
        """
        url = f"{self._base_url}{path}"
        safe = method in _SAFE_METHODS

        for attempt in range(self._max_retries + 1):
            last_attempt = attempt >= self._max_retries
            try:
                resp = await self._client.request(
                    method,
                    url,
                    auth=self._auth,
                    content=content,
                    headers=headers,
                    params=params,
                    timeout=self._timeout,
                )
            except (httpx.TimeoutException, httpx.ConnectError) as e:
                retryable = safe or isinstance(e, httpx.ConnectError)
                if retryable and not last_attempt:
                    delay = self._backoff_delay(attempt)
                    logger.warning(
                        "BOSH %s %s failed (attempt %d/%d), retrying in %.1fs",
                        method,
                        path,
                        attempt + 1,
                        self._max_retries + 1,
                        delay,
                    )
                    await asyncio.sleep(delay)
                    continue
                raise BoshTimeoutError(str(e)) from e

            if not safe or resp.status_code not in _RETRYABLE_STATUS_CODES or last_attempt:
                return resp

            delay = self._backoff_delay(attempt)
            logger.warning(
                "BOSH %s %s returned %d (attempt %d/%d), retrying in %.1fs",
                method,
                path,
                resp.status_code,
                attempt + 1,
                self._max_retries + 1,
                delay,
            )
            await asyncio.sleep(delay)

        raise BoshAPIError(0, "exhausted retries with no response")

    def _backoff_delay(self, attempt: int) -> float:
        """Exponential backoff with full jitter."""
        delay = min(self._base_delay * (2 ** attempt), self._max_delay)
        return random.uniform(0, delay)

    @staticmethod
    def _json_object(resp: httpx.Response) -> dict[str, Any]:
        try:
            payload = resp.json()
        except ValueError as e:
            raise BoshAPIError(
                status_code=resp.status_code,
                message="director returned a non-JSON body",
                response_body=resp.text,
            ) from e
        if not isinstance(payload, dict):
            raise BoshAPIError(
                status_code=resp.status_code,
                message=f"expected JSON object, got {type(payload).__name__}",
                response_body=resp.text,
            )
        return payload

    @staticmethod
    def _task_id_from(resp: httpx.Response) -> str:
        location = resp.headers.get("location", "")
        match = _TASK_LOCATION_RE.search(location)
        if match:
            return match.group(1)
        try:
            payload = resp.json()
        except ValueError:
            payload = None
        if isinstance(payload, dict) and payload.get("id") is not None:
            return str(payload["id"])
        raise BoshAPIError(
            status_code=resp.status_code,
            message="director response carried no task reference",
            response_body=resp.text,
        )

    # ── Public API ───────────────────────────────────────────────

    async def get_info(self) -> dict[str, Any]:
        resp = await self._request_with_retry("GET", "/info")
        self._raise_for_status(resp)
        return self._json_object(resp)

    async def create_deployment(self, manifest: str) -> str:
        """Submit a deployment manifest and return the task ID."""
        resp = await self._request_with_retry(
            "POST",
            "/deployments",
            content=manifest,
            headers={"Content-Type": "text/yaml"},
        )
        self._raise_for_status(resp)
        return self._task_id_from(resp)

    async def delete_deployment(self, name: str, *, force: bool = True) -> str:
        """Delete a deployment and return the task ID."""
        resp = await self._request_with_retry(
            "DELETE",
            f"/deployments/{name}",
            params={"force": "true" if force else "false"},
        )
        self._raise_for_status(resp)
        return self._task_id_from(resp)

    async def get_task(self, task_id: str) -> dict[str, Any]:
        """Return task metadata. Raises BoshNotFoundError for unknown IDs."""
        resp = await self._request_with_retry("GET", f"/tasks/{task_id}")
        self._raise_for_status(resp)
        return self._json_object(resp)
