"""In-memory collaborator implementations for local development.

These are used when ENVIRONMENT=local and by the unit tests. They satisfy
the protocol interfaces but keep everything in dicts (no persistence across
restarts). Task progress is driven by the caller via ``set_task_state``.
"""

from __future__ import annotations

import itertools
from typing import Any

from blacksmith.backups.naming import ScheduleKey
from blacksmith.backups.targets import BackupPolicy
from blacksmith.errors import (
    BackendUnavailable,
    GatewayError,
    LedgerError,
    ScheduleNotFound,
    TaskLookupError,
)
from blacksmith.provisioning.state import EnvironmentInfo, OperationRecord, TaskStatus

LOCAL_DIRECTOR_UUID = "00000000-0000-0000-0000-000000000000"


class InMemoryDeploymentGateway:
    """Deployment gateway that records submissions and hands out task IDs.

    New tasks start ``queued``. Set ``fail_info``, ``fail_submit`` or
    ``fail_poll`` to simulate an unreachable or rejecting orchestrator.
    """

    def __init__(self, *, director_uuid: str = LOCAL_DIRECTOR_UUID) -> None:
        self._director_uuid = director_uuid
        self._ids = itertools.count(1)
        self._tasks: dict[str, TaskStatus] = {}
        self.deployments: list[str] = []
        self.teardowns: list[str] = []
        self.fail_info = False
        self.fail_submit = False
        self.fail_poll = False

    async def fetch_environment_info(self) -> EnvironmentInfo:
        if self.fail_info:
            raise GatewayError("director unreachable")
        return EnvironmentInfo(uuid=self._director_uuid, name="local", version="0.0.0")

    async def submit_deployment(self, manifest: str) -> str:
        if self.fail_submit:
            raise GatewayError("deployment rejected")
        self.deployments.append(manifest)
        return self._new_task("create deployment")

    async def submit_teardown(self, instance_id: str) -> str:
        if self.fail_submit:
            raise GatewayError("teardown rejected")
        self.teardowns.append(instance_id)
        return self._new_task(f"delete deployment {instance_id}")

    async def poll_task(self, task_id: str) -> TaskStatus:
        if self.fail_poll:
            raise TaskLookupError(f"failed to get task {task_id!r}")
        task = self._tasks.get(task_id)
        if task is None:
            raise TaskLookupError(f"unknown task {task_id!r}")
        return task

    def set_task_state(self, task_id: str, state: str) -> None:
        task = self._tasks[task_id]
        self._tasks[task_id] = TaskStatus(
            task_id=task_id, state=state, description=task.description,
        )

    def add_task(self, task_id: str, state: str, description: str = "") -> None:
        self._tasks[task_id] = TaskStatus(task_id=task_id, state=state, description=description)

    def _new_task(self, description: str) -> str:
        task_id = str(next(self._ids))
        self._tasks[task_id] = TaskStatus(task_id=task_id, state="queued", description=description)
        return task_id


class InMemoryOperationLedger:
    def __init__(self) -> None:
        self._records: dict[str, OperationRecord] = {}
        self.fail_writes = False
        self.fail_reads = False

    async def put(self, instance_id: str, record: OperationRecord) -> None:
        if self.fail_writes:
            raise LedgerError(f"failed to write record for {instance_id!r}")
        self._records[instance_id] = record

    async def get(self, instance_id: str) -> OperationRecord | None:
        if self.fail_reads:
            raise LedgerError(f"failed to read record for {instance_id!r}")
        return self._records.get(instance_id)

    async def delete(self, instance_id: str) -> None:
        if self.fail_writes:
            raise LedgerError(f"failed to delete record for {instance_id!r}")
        self._records.pop(instance_id, None)

    def __contains__(self, instance_id: object) -> bool:
        return instance_id in self._records

    def __len__(self) -> int:
        return len(self._records)


class InMemoryBackupScheduler:
    def __init__(self) -> None:
        self.schedules: dict[ScheduleKey, dict[str, Any]] = {}
        self.unavailable = False

    async def register_schedule(self, key: ScheduleKey, policy: BackupPolicy) -> None:
        if self.unavailable:
            raise BackendUnavailable("backup service unavailable", instance_id=key.instance_id)
        self.schedules.setdefault(key, policy.model_dump())

    async def deregister_schedule(self, key: ScheduleKey) -> None:
        if key not in self.schedules:
            raise ScheduleNotFound(
                f"no backup schedule for instance {key.instance_id!r}",
                instance_id=key.instance_id,
            )
        del self.schedules[key]
