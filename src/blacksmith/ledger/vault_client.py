"""Async client for a Vault KV (version 1) secrets engine.

This is the single point of Vault HTTP interaction for the broker.
"""

from __future__ import annotations

from typing import Any

import httpx

from .errors import VaultAuthError, VaultError, VaultUnavailableError


class VaultClient:
    """Minimal async KV v1 client authenticated with a Vault token."""

    def __init__(
        self,
        *,
        address: str,
        token: str,
        mount: str = "secret",
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 30.0,
        verify: bool = True,
    ) -> None:
        if not address:
            raise ValueError("address is required")
        if not token:
            raise ValueError("token is required")

        self._address = address.rstrip("/")
        self._token = token
        self._mount = mount.strip("/") or "secret"
        self._timeout_seconds = float(timeout_seconds)
        self._client = http_client or httpx.AsyncClient(verify=verify)

    async def aclose(self) -> None:
        await self._client.aclose()

    def _url(self, path: str) -> str:
        return f"{self._address}/v1/{self._mount}/{path.lstrip('/')}"

    def _headers(self) -> dict[str, str]:
        return {"X-Vault-Token": self._token}

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any | None = None,
    ) -> httpx.Response:
        try:
            return await self._client.request(
                method,
                self._url(path),
                headers=self._headers(),
                json=json,
                timeout=self._timeout_seconds,
            )
        except httpx.HTTPError as exc:
            raise VaultUnavailableError(0, f"request failed: {exc}", path=path) from exc

    @staticmethod
    def _raise_for_status(resp: httpx.Response, path: str) -> None:
        if resp.status_code < 400:
            return

        message = f"HTTP {resp.status_code}"
        try:
            payload = resp.json()
            if isinstance(payload, dict) and payload.get("errors"):
                message = "; ".join(str(e) for e in payload["errors"])
        except ValueError:
            pass

        if resp.status_code in (401, 403):
            raise VaultAuthError(resp.status_code, message, path=path)
        if resp.status_code == 503:
            raise VaultUnavailableError(resp.status_code, message, path=path)
        raise VaultError(resp.status_code, message, path=path)

    async def read(self, path: str) -> dict[str, Any] | None:
        """Return the secret's data, or None if nothing is stored at ``path``."""
        resp = await self._request("GET", path)
        if resp.status_code == 404:
            return None
        self._raise_for_status(resp, path)
        try:
            payload = resp.json()
        except ValueError as e:
            raise VaultError(resp.status_code, "response body is not JSON", path=path) from e
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            raise VaultError(resp.status_code, "response carried no data object", path=path)
        return data

    async def write(self, path: str, data: dict[str, Any]) -> None:
        resp = await self._request("POST", path, json=data)
        self._raise_for_status(resp, path)

    async def delete(self, path: str) -> None:
        """Delete the secret at ``path``. Deleting a missing secret succeeds."""
        resp = await self._request("DELETE", path)
        if resp.status_code == 404:
            return
        self._raise_for_status(resp, path)
