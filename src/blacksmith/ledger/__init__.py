"""Durable operation ledger (Vault KV)."""

from .errors import VaultAuthError, VaultError, VaultUnavailableError
from .vault_client import VaultClient
from .vault_ledger import VaultOperationLedger, record_path

__all__ = [
    "VaultAuthError",
    "VaultClient",
    "VaultError",
    "VaultOperationLedger",
    "VaultUnavailableError",
    "record_path",
]
