"""Async HTTP client for the SHIELD backup API.

Covers only the calls the broker needs: create/delete targets and jobs and
look a job up by name. Auth uses a SHIELD API token sent as
``X-Shield-Token``. Lookups are retried on timeouts and 429/5xx with
exponential backoff and full jitter; creates and deletes are retried only
when the connection could not be opened.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any

import httpx

logger = logging.getLogger(__name__)

# Status codes eligible for automatic retry.
_RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})
_SAFE_METHODS = frozenset({"GET"})

_DEFAULT_MAX_RETRIES = 3
_DEFAULT_BASE_DELAY = 1.0  # seconds
_DEFAULT_MAX_DELAY = 30.0  # seconds


# ── Exception hierarchy ─────────────────────────────────────────


class ShieldAPIError(Exception):
    """Base exception for SHIELD API errors."""

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
        super().__init__(f"SHIELD API error {status_code}: {message}")


class ShieldNotFoundError(ShieldAPIError):
    """Object not found (404)."""

    def __init__(self, message: str = "not found", **kwargs: Any) -> None:
        super().__init__(404, message, **kwargs)


class ShieldUnavailableError(ShieldAPIError):
    """SHIELD could not be reached (connect failure or timeout)."""

    def __init__(self, message: str = "SHIELD unreachable") -> None:
        super().__init__(0, message)


# ── Client ───────────────────────────────────────────────────────


class ShieldClient:
    """Async client for SHIELD v2 tenant-scoped endpoints."""

    def __init__(
        self,
        *,
        base_url: str,
        token: str,
        tenant_uuid: str,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 30.0,
        max_retries: int = _DEFAULT_MAX_RETRIES,
        base_delay: float = _DEFAULT_BASE_DELAY,
        max_delay: float = _DEFAULT_MAX_DELAY,
        verify: bool = True,
    ) -> None:
        if not base_url:
            raise ValueError("base_url is required")
        if not token:
            raise ValueError("token is required")
        if not tenant_uuid:
            raise ValueError("tenant_uuid is required")

        self._base_url = base_url.rstrip("/")
        self._token = token
        self._tenant = tenant_uuid
        self._client = http_client or httpx.AsyncClient(verify=verify)
        self._timeout = float(timeout_seconds)
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._max_delay = max_delay

    async def aclose(self) -> None:
        await self._client.aclose()

    def _headers(self) -> dict[str, str]:
        return {"X-Shield-Token": self._token, "Accept": "application/json"}

    def _tenant_path(self, suffix: str) -> str:
        return f"/v2/tenants/{self._tenant}{suffix}"

    def _raise_for_status(self, resp: httpx.Response) -> None:
        if resp.status_code < 400:
            return

        body = resp.text
        message = body[:200] if body else f"HTTP {resp.status_code}"

        try:
            payload = resp.json()
            if isinstance(payload, dict):
                message = payload.get("error", message)
        except ValueError:
            pass

        if resp.status_code == 404:
            raise ShieldNotFoundError(message=message, response_body=body)

        raise ShieldAPIError(
            status_code=resp.status_code,
            message=message,
            response_body=body,
        )

    async def _request_with_retry(
        self,
        method: str,
        path: str,
        *,
        json: Any | None = None,
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Send a request, retrying only where a repeat cannot duplicate work.

        Connect failures are retried for every method. Timeouts and 429/5xx
        answers are retried for GET only.
        """
        url = f"{self._base_url}{path}"
        headers = self._headers()
        safe = method in _SAFE_METHODS

        for attempt in range(self._max_retries + 1):
            last_attempt = attempt >= self._max_retries
            try:
                resp = await self._client.request(
                    method,
                    url,
                    headers=headers,
                    json=json,
                    params=params,
                    timeout=self._timeout,
                )
            except (httpx.TimeoutException, httpx.ConnectError) as e:
                retryable = safe or isinstance(e, httpx.ConnectError)
                if retryable and not last_attempt:
                    delay = self._backoff_delay(attempt)
                    logger.warning(
                        "SHIELD %s %s failed (attempt %d/%d), retrying in %.1fs",
                        method,
                        path,
                        attempt + 1,
                        self._max_retries + 1,
                        delay,
                    )
                    await asyncio.sleep(delay)
                    continue
                raise ShieldUnavailableError(str(e)) from e

            if not safe or resp.status_code not in _RETRYABLE_STATUS_CODES or last_attempt:
                return resp

            delay = self._backoff_delay(attempt)
            logger.warning(
                "SHIELD %s %s returned %d (attempt %d/%d), retrying in %.1fs",
                method,
                path,
                resp.status_code,
                attempt + 1,
                self._max_retries + 1,
                delay,
            )
            await asyncio.sleep(delay)

        raise ShieldAPIError(0, "exhausted retries with no response")

    def _backoff_delay(self, attempt: int) -> float:
        """Exponential backoff with full jitter."""
        delay = min(self._base_delay * (2 ** attempt), self._max_delay)
        return random.uniform(0, delay)

    @staticmethod
    def _json_object(resp: httpx.Response) -> dict[str, Any]:
        try:
            payload = resp.json()
        except ValueError as e:
            raise ShieldAPIError(resp.status_code, "non-JSON response body", response_body=resp.text) from e
        if not isinstance(payload, dict):
            raise ShieldAPIError(
                resp.status_code,
                f"expected JSON object, got {type(payload).__name__}",
                response_body=resp.text,
            )
        return payload

    # ── Public API ───────────────────────────────────────────────

    async def create_target(self, target: dict[str, Any]) -> dict[str, Any]:
        resp = await self._request_with_retry(
            "POST", self._tenant_path("/targets"), json=target,
        )
        self._raise_for_status(resp)
        return self._json_object(resp)

    async def create_job(self, job: dict[str, Any]) -> dict[str, Any]:
        resp = await self._request_with_retry(
            "POST", self._tenant_path("/jobs"), json=job,
        )
        self._raise_for_status(resp)
        return self._json_object(resp)

    async def find_job(self, name: str) -> dict[str, Any] | None:
        """Return the job with exactly this name, or None."""
        resp = await self._request_with_retry(
            "GET",
            self._tenant_path("/jobs"),
            params={"name": name, "exact": "t"},
        )
        self._raise_for_status(resp)
        try:
            jobs = resp.json()
        except ValueError as e:
            raise ShieldAPIError(resp.status_code, "non-JSON jobs search body") from e
        if not isinstance(jobs, list):
            raise ShieldAPIError(
                status_code=0,
                message=f"Expected list from jobs search, got {type(jobs).__name__}",
            )
        for job in jobs:
            if isinstance(job, dict) and job.get("name") == name:
                return job
        return None

    async def delete_job(self, job_uuid: str) -> None:
        resp = await self._request_with_retry(
            "DELETE", self._tenant_path(f"/jobs/{job_uuid}"),
        )
        self._raise_for_status(resp)

    async def delete_target(self, target_uuid: str) -> None:
        resp = await self._request_with_retry(
            "DELETE", self._tenant_path(f"/targets/{target_uuid}"),
        )
        self._raise_for_status(resp)
