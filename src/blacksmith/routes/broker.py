"""Open Service Broker (v2) API.

  GET    /v2/catalog                                          → catalog listing
  PUT    /v2/service_instances/{instance_id}                  → provision (202)
  DELETE /v2/service_instances/{instance_id}                  → deprovision (202)
  PATCH  /v2/service_instances/{instance_id}                  → update (422)
  GET    /v2/service_instances/{instance_id}/last_operation   → last operation
  PUT    /v2/service_instances/{iid}/service_bindings/{bid}   → bind (201)
  DELETE /v2/service_instances/{iid}/service_bindings/{bid}   → unbind (200)

Lifecycle errors are rendered as OSB error bodies
``{"error": <code>, "description": <message>}`` with the status carried by
the error class.

Backup schedules are registered after a provision is accepted and removed
once a deprovision is reported as succeeded. Schedule failures are logged
and counted but never change the lifecycle response.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from blacksmith.backups.naming import ScheduleKey
from blacksmith.catalog.models import Plan, Service
from blacksmith.errors import BrokerError
from blacksmith.observability.logging import get_logger
from blacksmith.observability.metrics import BACKUP_SCHEDULE_OPERATIONS_TOTAL
from blacksmith.protocols import BackupScheduler
from blacksmith.provisioning.details import (
    BindDetails,
    DeprovisionDetails,
    ProvisionDetails,
    UnbindDetails,
    UpdateDetails,
)
from blacksmith.provisioning.orchestrator import LifecycleOrchestrator
from blacksmith.provisioning.state import DEPROVISION, SUCCEEDED

logger = get_logger(__name__)


# ── Request schemas ───────────────────────────────────────────────────


class ProvisionRequest(BaseModel):
    service_id: str
    plan_id: str
    organization_guid: str = ''
    space_guid: str = ''
    parameters: dict[str, Any] = Field(default_factory=dict)
    context: dict[str, Any] = Field(default_factory=dict)


class UpdateRequest(BaseModel):
    service_id: str = ''
    plan_id: str | None = None
    parameters: dict[str, Any] = Field(default_factory=dict)
    previous_values: dict[str, Any] = Field(default_factory=dict)


class BindRequest(BaseModel):
    service_id: str = ''
    plan_id: str = ''
    app_guid: str | None = None
    bind_resource: dict[str, Any] = Field(default_factory=dict)
    parameters: dict[str, Any] = Field(default_factory=dict)


# ── Response helpers ──────────────────────────────────────────────────


def _error_response(exc: BrokerError) -> JSONResponse:
    return JSONResponse(status_code=exc.http_status, content=exc.to_payload())


def _async_required() -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={
            'error': 'AsyncRequired',
            'description': 'This service plan requires client support for asynchronous service operations.',
        },
    )


def _plan_response(plan: Plan) -> dict:
    return {
        'id': plan.id,
        'name': plan.name,
        'description': plan.description or plan.name,
        'free': plan.free,
    }


def _service_response(service: Service) -> dict:
    return {
        'id': service.id,
        'name': service.name,
        'description': service.description or service.name,
        'bindable': service.bindable,
        'plan_updateable': False,
        'tags': list(service.tags),
        'plans': [_plan_response(p) for p in service.plans],
    }


# ── Route factory ─────────────────────────────────────────────────────


def create_broker_router(
    orchestrator: LifecycleOrchestrator,
    scheduler: BackupScheduler,
) -> APIRouter:
    """Create the OSB v2 router.

    Args:
        orchestrator: Lifecycle orchestrator that performs the operations.
        scheduler: Backup scheduler notified after provision/deprovision.

    Returns:
        FastAPI router with the broker endpoints under ``/v2``.
    """
    router = APIRouter(prefix='/v2', tags=['broker'])

    async def register_backups(instance_id: str, service_id: str, plan_id: str) -> None:
        try:
            policy = await orchestrator.backup_policy(instance_id, service_id, plan_id)
            if policy is None:
                return
            await scheduler.register_schedule(
                ScheduleKey(service_id, plan_id, instance_id), policy,
            )
        except BrokerError as exc:
            logger.error(
                'backup_schedule_register_failed',
                instance_id=instance_id,
                error=exc.code,
                detail=exc.message,
            )
            BACKUP_SCHEDULE_OPERATIONS_TOTAL.labels(operation='register', outcome=exc.code).inc()
            return
        BACKUP_SCHEDULE_OPERATIONS_TOTAL.labels(operation='register', outcome='succeeded').inc()

    async def deregister_backups(instance_id: str, service_id: str, plan_id: str) -> None:
        try:
            if orchestrator.catalog.lookup(service_id, plan_id).backup is None:
                return
            await scheduler.deregister_schedule(ScheduleKey(service_id, plan_id, instance_id))
        except BrokerError as exc:
            logger.error(
                'backup_schedule_deregister_failed',
                instance_id=instance_id,
                error=exc.code,
                detail=exc.message,
            )
            BACKUP_SCHEDULE_OPERATIONS_TOTAL.labels(operation='deregister', outcome=exc.code).inc()
            return
        BACKUP_SCHEDULE_OPERATIONS_TOTAL.labels(operation='deregister', outcome='succeeded').inc()

    @router.get('/catalog')
    async def get_catalog():
        return {
            'services': [_service_response(s) for s in orchestrator.catalog.services],
        }

    @router.put('/service_instances/{instance_id}')
    async def provision_instance(
        instance_id: str,
        body: ProvisionRequest,
        accepts_incomplete: bool = False,
    ):
        """Start provisioning; the platform then polls last_operation."""
        if not accepts_incomplete:
            return _async_required()

        details = ProvisionDetails(
            service_id=body.service_id,
            plan_id=body.plan_id,
            parameters=body.parameters,
            organization_guid=body.organization_guid,
            space_guid=body.space_guid,
        )
        try:
            result = await orchestrator.provision(instance_id, details)
        except BrokerError as exc:
            return _error_response(exc)

        await register_backups(instance_id, body.service_id, body.plan_id)
        return JSONResponse(status_code=202, content={'operation': result.operation})

    @router.delete('/service_instances/{instance_id}')
    async def deprovision_instance(
        instance_id: str,
        service_id: str = '',
        plan_id: str = '',
        accepts_incomplete: bool = False,
    ):
        if not accepts_incomplete:
            return _async_required()

        try:
            result = await orchestrator.deprovision(
                instance_id,
                DeprovisionDetails(service_id=service_id, plan_id=plan_id),
            )
        except BrokerError as exc:
            return _error_response(exc)
        return JSONResponse(status_code=202, content={'operation': result.operation})

    @router.patch('/service_instances/{instance_id}')
    async def update_instance(instance_id: str, body: UpdateRequest):
        try:
            result = await orchestrator.update(
                instance_id,
                UpdateDetails(
                    service_id=body.service_id,
                    plan_id=body.plan_id or '',
                    parameters=body.parameters,
                ),
            )
        except BrokerError as exc:
            return _error_response(exc)
        return JSONResponse(status_code=202, content={'operation': result.operation})

    @router.get('/service_instances/{instance_id}/last_operation')
    async def get_last_operation(
        instance_id: str,
        service_id: str = '',
        plan_id: str = '',
        operation: str = '',
    ):
        """Poll the instance's current operation.

        A succeeded deprovision also removes the instance's backup schedule
        when ``service_id`` and ``plan_id`` are supplied.
        """
        try:
            result = await orchestrator.last_operation(instance_id)
        except BrokerError as exc:
            return _error_response(exc)

        if result.kind == DEPROVISION and result.state == SUCCEEDED:
            if service_id and plan_id:
                await deregister_backups(instance_id, service_id, plan_id)
            else:
                logger.warning('backup_schedule_deregister_skipped', instance_id=instance_id)

        payload = {'state': result.state}
        if result.description:
            payload['description'] = result.description
        return payload

    @router.put('/service_instances/{instance_id}/service_bindings/{binding_id}')
    async def bind_instance(instance_id: str, binding_id: str, body: BindRequest):
        details = BindDetails(
            service_id=body.service_id,
            plan_id=body.plan_id,
            app_guid=body.app_guid or '',
            parameters=body.parameters,
        )
        try:
            binding = await orchestrator.bind(instance_id, binding_id, details)
        except BrokerError as exc:
            return _error_response(exc)
        credentials = dict(binding.credentials) if binding.credentials is not None else {}
        return JSONResponse(status_code=201, content={'credentials': credentials})

    @router.delete('/service_instances/{instance_id}/service_bindings/{binding_id}')
    async def unbind_instance(
        instance_id: str,
        binding_id: str,
        service_id: str = '',
        plan_id: str = '',
    ):
        await orchestrator.unbind(
            instance_id,
            binding_id,
            UnbindDetails(service_id=service_id, plan_id=plan_id),
        )
        return {}

    return router
