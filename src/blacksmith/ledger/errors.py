"""Vault client error hierarchy.

Kept small and dependency-free so these errors can be raised across the
ledger without leaking httpx.Response objects (or tokens).
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class VaultError(Exception):
    """Base Vault error for KV requests."""

    status_code: int
    message: str
    path: str | None = None

    def __str__(self) -> str:
        bits: list[str] = [f"VaultError(status={self.status_code})", self.message]
        if self.path:
            bits.append(f"path={self.path}")
        return " ".join(bits)


class VaultAuthError(VaultError):
    """401/403 auth errors (bad or expired token, missing policy)."""


class VaultUnavailableError(VaultError):
    """Vault could not be reached, or is sealed (503)."""
