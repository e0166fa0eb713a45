"""Vault-backed operation ledger.

Implements the ``OperationLedger`` protocol on top of :class:`VaultClient`.
Each instance has one secret at ``<mount>/<instance_id>`` holding::

    {"state": "<kind>", "task": "<task id>", "credentials": {...} | null}

Writes overwrite, so there is never more than one record per instance.
"""

from __future__ import annotations

from urllib.parse import quote

from blacksmith.errors import LedgerError
from blacksmith.provisioning.state import OperationRecord

from .errors import VaultError
from .vault_client import VaultClient


def record_path(instance_id: str) -> str:
    if not instance_id:
        raise ValueError("instance_id is required")
    # A single path segment, even if the ID contains '/' or '..'.
    return quote(instance_id, safe="")


class VaultOperationLedger:
    """Operation records stored as Vault KV secrets."""

    def __init__(self, client: VaultClient) -> None:
        self._client = client

    async def put(self, instance_id: str, record: OperationRecord) -> None:
        try:
            await self._client.write(record_path(instance_id), record.to_dict())
        except VaultError as exc:
            raise LedgerError(f"failed to write record for {instance_id!r}: {exc}") from exc

    async def get(self, instance_id: str) -> OperationRecord | None:
        try:
            data = await self._client.read(record_path(instance_id))
        except VaultError as exc:
            raise LedgerError(f"failed to read record for {instance_id!r}: {exc}") from exc
        if data is None:
            return None
        return OperationRecord.from_dict(data)

    async def delete(self, instance_id: str) -> None:
        try:
            await self._client.delete(record_path(instance_id))
        except VaultError as exc:
            raise LedgerError(f"failed to delete record for {instance_id!r}: {exc}") from exc
