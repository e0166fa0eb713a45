"""Collaborator protocol interfaces for dependency injection.

These protocols define the contracts that concrete implementations (InMemory
for local dev and tests, BOSH/Vault/SHIELD for real deployments) must
satisfy. The app factory and the orchestrator accept any implementation that
matches them.

Error contract:
  - ``DeploymentGateway`` methods raise ``GatewayError`` (``TaskLookupError``
    from ``poll_task`` when the task cannot be resolved).
  - ``OperationLedger`` methods raise ``LedgerError``; ``get`` returns None
    for a missing record and ``delete`` of a missing record succeeds.
  - ``BackupScheduler`` methods raise the schedule ``BrokerError`` kinds.
  - ``ManifestRenderer.render`` raises ``ManifestError``.
"""

from __future__ import annotations

from typing import Any, Mapping, Protocol, runtime_checkable

from .backups.naming import ScheduleKey
from .backups.targets import BackupPolicy
from .catalog.models import Plan
from .provisioning.manifest import RenderedManifest
from .provisioning.state import EnvironmentInfo, OperationRecord, TaskStatus


@runtime_checkable
class DeploymentGateway(Protocol):
    """Long-running deploy/teardown operations tracked by task ID."""

    async def fetch_environment_info(self) -> EnvironmentInfo: ...
    async def submit_deployment(self, manifest: str) -> str: ...
    async def submit_teardown(self, instance_id: str) -> str: ...
    async def poll_task(self, task_id: str) -> TaskStatus: ...


@runtime_checkable
class OperationLedger(Protocol):
    """Durable ``instance_id -> OperationRecord`` store."""

    async def put(self, instance_id: str, record: OperationRecord) -> None: ...
    async def get(self, instance_id: str) -> OperationRecord | None: ...
    async def delete(self, instance_id: str) -> None: ...


@runtime_checkable
class BackupScheduler(Protocol):
    """Periodic backup job registration for instances."""

    async def register_schedule(self, key: ScheduleKey, policy: BackupPolicy) -> None: ...
    async def deregister_schedule(self, key: ScheduleKey) -> None: ...


@runtime_checkable
class ManifestRenderer(Protocol):
    """Turn a plan plus parameters into a manifest and credentials."""

    def render(self, plan: Plan, params: Mapping[str, Any]) -> RenderedManifest: ...
