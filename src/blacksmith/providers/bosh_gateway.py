"""DeploymentGateway backed by a BOSH director.

Translates ``BoshAPIError`` into the gateway error contract and normalizes
task states: ``done`` stays ``done``; the director's failure states
(``error``, ``cancelled``, ``timeout``) all report as ``error``; anything
else (``queued``, ``processing``, ``cancelling``) is passed through and
treated as in progress by the orchestrator.
"""

from __future__ import annotations

from blacksmith.errors import GatewayError, TaskLookupError
from blacksmith.provisioning.manifest import deployment_name
from blacksmith.provisioning.state import (
    TASK_DONE,
    TASK_ERROR,
    EnvironmentInfo,
    TaskStatus,
)

from .bosh_client import BoshAPIError, BoshClient, BoshNotFoundError

_FAILED_TASK_STATES = frozenset({'error', 'cancelled', 'timeout'})


def normalize_task_state(raw_state: str) -> str:
    if raw_state == TASK_DONE:
        return TASK_DONE
    if raw_state in _FAILED_TASK_STATES:
        return TASK_ERROR
    return raw_state


class BoshDeploymentGateway:
    """``DeploymentGateway`` implementation using :class:`BoshClient`."""

    def __init__(self, client: BoshClient) -> None:
        self._client = client

    async def fetch_environment_info(self) -> EnvironmentInfo:
        try:
            info = await self._client.get_info()
        except BoshAPIError as exc:
            raise GatewayError(f'failed to get director info: {exc.message}') from exc

        uuid = info.get('uuid')
        if not uuid:
            raise GatewayError('director info carried no uuid')
        return EnvironmentInfo(
            uuid=str(uuid),
            name=str(info.get('name', '')),
            version=str(info.get('version', '')),
        )

    async def submit_deployment(self, manifest: str) -> str:
        try:
            return await self._client.create_deployment(manifest)
        except BoshAPIError as exc:
            raise GatewayError(f'deployment rejected: {exc.message}') from exc

    async def submit_teardown(self, instance_id: str) -> str:
        try:
            return await self._client.delete_deployment(deployment_name(instance_id))
        except BoshAPIError as exc:
            raise GatewayError(f'teardown rejected: {exc.message}') from exc

    async def poll_task(self, task_id: str) -> TaskStatus:
        try:
            task = await self._client.get_task(task_id)
        except BoshNotFoundError as exc:
            raise TaskLookupError(f'unknown task {task_id!r}') from exc
        except BoshAPIError as exc:
            raise TaskLookupError(f'failed to get task {task_id!r}: {exc.message}') from exc

        return TaskStatus(
            task_id=task_id,
            state=normalize_task_state(str(task.get('state', ''))),
            description=str(task.get('description', '')),
        )
