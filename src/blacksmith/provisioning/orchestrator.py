"""Lifecycle orchestrator: provision, deprovision, bind, unbind, update, and
last-operation reconciliation for broker-managed instances.

The orchestrator holds no instance state. Everything it knows about an
instance lives in the operation ledger (one record per instance) and in the
deployment orchestrator's task history, so a restarted broker picks up
in-flight operations on the next poll.

Write ordering: the ledger is written only after the deployment gateway has
accepted a submission, so a recorded task ID always refers to real work.

Ledger-write failures are handled asymmetrically:
  - after a provision submission the failure is raised as
    ``LedgerWriteFailed``; the deployment keeps running untracked until the
    caller retries;
  - after a teardown submission the failure is logged and swallowed.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncIterator

import structlog

from blacksmith.backups.targets import BackupPolicy
from blacksmith.catalog.catalog import PlanCatalog
from blacksmith.errors import (
    BackendDeploymentFailed,
    BackendUnavailable,
    BrokerError,
    GatewayError,
    InstanceNotFound,
    InvalidOperationState,
    LedgerError,
    LedgerWriteFailed,
    ManifestGenerationFailed,
    NotSupported,
    UnrecognizedTask,
)
from blacksmith.observability.logging import LoggingConfig, get_logger
from blacksmith.observability.metrics import LIFECYCLE_OPERATIONS_TOTAL

from .details import (
    AsyncOperation,
    Binding,
    BindDetails,
    DeprovisionDetails,
    LastOperation,
    ProvisionDetails,
    UnbindDetails,
    UpdateDetails,
)
from .locks import InstanceLocks, NullLocks
from .manifest import ManifestError, deployment_name
from .state import (
    DEPROVISION,
    PROVISION,
    OperationRecord,
    UnknownOperationKind,
    reconcile,
)

if TYPE_CHECKING:
    from blacksmith.protocols import DeploymentGateway, ManifestRenderer, OperationLedger

logger = get_logger(__name__)


class LifecycleOrchestrator:
    """Implements the broker lifecycle operations against injected collaborators.

    Args:
        catalog: Read-only plan catalog.
        gateway: Deployment orchestrator façade.
        ledger: Durable per-instance operation records.
        renderer: Manifest and credential renderer.
        log_config: Logging settings; ``debug`` enables manifest dumps.
        serialize_instances: Serialize calls for the same instance ID
            in-process. Disable only when the caller already guarantees it.
    """

    def __init__(
        self,
        *,
        catalog: PlanCatalog,
        gateway: DeploymentGateway,
        ledger: OperationLedger,
        renderer: ManifestRenderer,
        log_config: LoggingConfig | None = None,
        serialize_instances: bool = True,
    ) -> None:
        self._catalog = catalog
        self._gateway = gateway
        self._ledger = ledger
        self._renderer = renderer
        self._log_config = log_config or LoggingConfig()
        self._locks: InstanceLocks | NullLocks = (
            InstanceLocks() if serialize_instances else NullLocks()
        )

    @property
    def catalog(self) -> PlanCatalog:
        return self._catalog

    @asynccontextmanager
    async def _operation(
        self, operation: str, instance_id: str, *, exclusive: bool = True,
    ) -> AsyncIterator[structlog.stdlib.BoundLogger]:
        if not instance_id:
            raise ValueError('instance_id is required')
        log = logger.bind(operation=operation, instance_id=instance_id)
        if exclusive:
            guard = self._locks.hold(instance_id)
        else:
            guard = NullLocks().hold(instance_id)
        async with guard:
            try:
                yield log
            except BrokerError as exc:
                log.warning('operation_failed', error=exc.code, detail=exc.message)
                LIFECYCLE_OPERATIONS_TOTAL.labels(operation=operation, outcome=exc.code).inc()
                raise

    # ── Provision ────────────────────────────────────────────────────

    async def provision(
        self, instance_id: str, details: ProvisionDetails,
    ) -> AsyncOperation:
        """Render and submit a deployment, then record its task.

        Raises:
            PlanNotFound, BackendUnavailable, ManifestGenerationFailed,
            BackendDeploymentFailed, LedgerWriteFailed.
        """
        async with self._operation(PROVISION, instance_id) as log:
            log.info(
                'provision_started',
                service_id=details.service_id,
                plan_id=details.plan_id,
            )
            plan = self._catalog.lookup(details.service_id, details.plan_id)

            try:
                info = await self._gateway.fetch_environment_info()
            except GatewayError as exc:
                raise BackendUnavailable(
                    f'deployment orchestrator unavailable: {exc}',
                    instance_id=instance_id,
                ) from exc

            params = {
                **details.parameters,
                'name': deployment_name(instance_id),
                'instance_id': instance_id,
                'director_uuid': info.uuid,
                'service_id': details.service_id,
                'plan_id': details.plan_id,
            }
            try:
                rendered = self._renderer.render(plan, params)
            except ManifestError as exc:
                raise ManifestGenerationFailed(
                    f'manifest generation failed: {exc}',
                    instance_id=instance_id,
                ) from exc

            if self._log_config.debug:
                log.debug('manifest_rendered', manifest=rendered.manifest)

            try:
                task_id = await self._gateway.submit_deployment(rendered.manifest)
            except GatewayError as exc:
                raise BackendDeploymentFailed(
                    f'backend deployment failed: {exc}',
                    instance_id=instance_id,
                ) from exc

            record = OperationRecord(
                kind=PROVISION,
                task_id=task_id,
                credentials=rendered.credentials,
            )
            try:
                await self._ledger.put(instance_id, record)
            except LedgerError as exc:
                raise LedgerWriteFailed(
                    f'deployment task {task_id} submitted but not tracked: {exc}',
                    instance_id=instance_id,
                ) from exc

            log.info('provision_submitted', task_id=task_id)
            LIFECYCLE_OPERATIONS_TOTAL.labels(operation=PROVISION, outcome='accepted').inc()
            return AsyncOperation(instance_id=instance_id, operation=PROVISION, task_id=task_id)

    # ── Deprovision ──────────────────────────────────────────────────

    async def deprovision(
        self,
        instance_id: str,
        details: DeprovisionDetails | None = None,
    ) -> AsyncOperation:
        """Submit a teardown and record its task.

        Succeeds whether or not the instance has a prior record.

        Raises:
            BackendDeploymentFailed: The teardown was not accepted; nothing
                was recorded, so the caller may retry.
        """
        async with self._operation(DEPROVISION, instance_id) as log:
            log.info('deprovision_started', deployment=deployment_name(instance_id))
            try:
                task_id = await self._gateway.submit_teardown(instance_id)
            except GatewayError as exc:
                raise BackendDeploymentFailed(
                    f'backend teardown failed: {exc}',
                    instance_id=instance_id,
                ) from exc

            try:
                await self._ledger.put(
                    instance_id, OperationRecord(kind=DEPROVISION, task_id=task_id),
                )
            except LedgerError as exc:
                log.error('deprovision_tracking_failed', task_id=task_id, error=str(exc))

            log.info('deprovision_submitted', task_id=task_id)
            LIFECYCLE_OPERATIONS_TOTAL.labels(operation=DEPROVISION, outcome='accepted').inc()
            return AsyncOperation(instance_id=instance_id, operation=DEPROVISION, task_id=task_id)

    # ── Bind / Unbind ────────────────────────────────────────────────

    async def bind(
        self,
        instance_id: str,
        binding_id: str,
        details: BindDetails | None = None,
    ) -> Binding:
        """Return the credentials recorded at provision time, verbatim.

        Binding before provisioning completes is allowed and returns
        whatever the record holds.

        Raises:
            InstanceNotFound: No record exists for the instance.
            BackendUnavailable: The ledger could not be read.
        """
        async with self._operation('bind', instance_id, exclusive=False) as log:
            log = log.bind(binding_id=binding_id)
            record = await self._read_record(instance_id)
            if record is None:
                raise InstanceNotFound(
                    f'instance {instance_id!r} not found',
                    instance_id=instance_id,
                )
            log.info('bind_succeeded')
            LIFECYCLE_OPERATIONS_TOTAL.labels(operation='bind', outcome='succeeded').inc()
            return Binding(credentials=record.credentials)

    async def unbind(
        self,
        instance_id: str,
        binding_id: str,
        details: UnbindDetails | None = None,
    ) -> None:
        """No-op. Credentials are shared per instance and are not revoked."""
        logger.info('unbind', instance_id=instance_id, binding_id=binding_id)
        LIFECYCLE_OPERATIONS_TOTAL.labels(operation='unbind', outcome='succeeded').inc()

    # ── Update ───────────────────────────────────────────────────────

    async def update(
        self,
        instance_id: str,
        details: UpdateDetails | None = None,
    ) -> AsyncOperation:
        """Always fails with ``NotSupported``, whatever the arguments."""
        exc = NotSupported(
            'updating service instances is not supported',
            instance_id=instance_id or None,
        )
        logger.warning('operation_failed', operation='update', instance_id=instance_id, error=exc.code)
        LIFECYCLE_OPERATIONS_TOTAL.labels(operation='update', outcome=exc.code).inc()
        raise exc

    # ── Last operation ───────────────────────────────────────────────

    async def last_operation(self, instance_id: str) -> LastOperation:
        """Report the state of the instance's current operation.

        Reads the record, polls its task, and classifies the result. A
        terminal deprovision clears the record. Never submits new work.

        Raises:
            InvalidOperationState: No record, or a record of unknown kind.
            UnrecognizedTask: The task could not be polled.
            BackendUnavailable: The ledger could not be read.
        """
        async with self._operation('last_operation', instance_id) as log:
            record = await self._read_record(instance_id)
            if record is None:
                raise InvalidOperationState(
                    f'no operation recorded for instance {instance_id!r}',
                    instance_id=instance_id,
                )

            try:
                status = await self._gateway.poll_task(record.task_id)
            except GatewayError as exc:
                log.error('task_lookup_failed', kind=record.kind, task_id=record.task_id)
                raise UnrecognizedTask(
                    f'unrecognized backend task {record.task_id!r}',
                    instance_id=instance_id,
                ) from exc

            try:
                outcome = reconcile(record.kind, status.state)
            except UnknownOperationKind as exc:
                raise InvalidOperationState(
                    f'invalid state type {record.kind!r}',
                    instance_id=instance_id,
                ) from exc

            log = log.bind(kind=record.kind, task_id=record.task_id)
            if outcome.clear_record:
                log.info('clearing_operation_record')
                try:
                    await self._ledger.delete(instance_id)
                except LedgerError as exc:
                    # The next poll sees the same terminal task and retries the delete.
                    log.error('record_clear_failed', error=str(exc))

            if outcome.is_terminal:
                log.info('operation_finished', state=outcome.state)
            LIFECYCLE_OPERATIONS_TOTAL.labels(
                operation='last_operation', outcome=outcome.state,
            ).inc()
            return LastOperation(
                state=outcome.state,
                kind=record.kind,
                description=status.description,
            )

    # ── Backups ──────────────────────────────────────────────────────

    async def backup_policy(
        self, instance_id: str, service_id: str, plan_id: str,
    ) -> BackupPolicy | None:
        """The plan's backup policy resolved against the instance's credentials.

        Returns None when the plan has no backup policy.

        Raises:
            PlanNotFound, BackendUnavailable.
        """
        plan = self._catalog.lookup(service_id, plan_id)
        if plan.backup is None:
            return None
        record = await self._read_record(instance_id)
        credentials = record.credentials if record is not None else None
        return plan.backup.for_instance(credentials or {})

    async def _read_record(self, instance_id: str) -> OperationRecord | None:
        try:
            return await self._ledger.get(instance_id)
        except LedgerError as exc:
            raise BackendUnavailable(
                f'operation ledger unavailable: {exc}',
                instance_id=instance_id,
            ) from exc
