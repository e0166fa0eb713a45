"""Unit tests for the lifecycle orchestrator.

Uses the in-memory gateway and ledger; task progress is driven with
``InMemoryDeploymentGateway.set_task_state``.
"""

from __future__ import annotations

import asyncio

import pytest
import yaml

from blacksmith.errors import (
    BackendDeploymentFailed,
    BackendUnavailable,
    InstanceNotFound,
    InvalidOperationState,
    LedgerError,
    LedgerWriteFailed,
    ManifestGenerationFailed,
    NotSupported,
    PlanNotFound,
    UnrecognizedTask,
)
from blacksmith.inmemory import InMemoryDeploymentGateway, InMemoryOperationLedger
from blacksmith.observability.logging import LoggingConfig
from blacksmith.provisioning import (
    DEPROVISION,
    FAILED,
    IN_PROGRESS,
    PROVISION,
    SUCCEEDED,
    LifecycleOrchestrator,
    OperationRecord,
    ProvisionDetails,
    TemplateManifestRenderer,
    UpdateDetails,
)
from blacksmith.provisioning.manifest import ManifestError, RenderedManifest, derive_secret

SMALL = ProvisionDetails(service_id='redis-svc', plan_id='redis-small')


@pytest.fixture
def gateway():
    return InMemoryDeploymentGateway(director_uuid='dir-uuid')


@pytest.fixture
def ledger():
    return InMemoryOperationLedger()


@pytest.fixture
def orchestrator(catalog, gateway, ledger):
    return LifecycleOrchestrator(
        catalog=catalog,
        gateway=gateway,
        ledger=ledger,
        renderer=TemplateManifestRenderer(seed='test-seed'),
    )


class _FailingRenderer:
    def render(self, plan, params):
        raise ManifestError('boom')


class _RecordingRenderer:
    def __init__(self):
        self.params = None

    def render(self, plan, params):
        self.params = dict(params)
        return RenderedManifest(manifest='name: x', credentials={})


# ── Provision ────────────────────────────────────────────────────


class TestProvision:
    @pytest.mark.asyncio
    async def test_submits_and_records(self, orchestrator, gateway, ledger):
        result = await orchestrator.provision('i1', SMALL)

        assert result.operation == PROVISION
        assert result.is_async is True
        assert len(gateway.deployments) == 1
        manifest = yaml.safe_load(gateway.deployments[0])
        assert manifest['name'] == 'i1'
        assert manifest['director_uuid'] == 'dir-uuid'

        record = await ledger.get('i1')
        assert record.kind == PROVISION
        assert record.task_id == result.task_id
        assert record.credentials['host'] == 'i1.redis.internal'

    @pytest.mark.asyncio
    async def test_broker_values_override_caller_parameters(self, catalog, gateway, ledger):
        renderer = _RecordingRenderer()
        orch = LifecycleOrchestrator(
            catalog=catalog, gateway=gateway, ledger=ledger, renderer=renderer,
        )
        details = ProvisionDetails(
            service_id='redis-svc',
            plan_id='redis-small',
            parameters={'name': 'hijack', 'instances': 4},
        )

        await orch.provision('i1', details)

        assert renderer.params['name'] == 'i1'
        assert renderer.params['instance_id'] == 'i1'
        assert renderer.params['director_uuid'] == 'dir-uuid'
        assert renderer.params['instances'] == 4

    @pytest.mark.asyncio
    async def test_secret_parameters_are_ignored(self, orchestrator, ledger):
        details = ProvisionDetails(
            service_id='redis-svc',
            plan_id='redis-small',
            parameters={'secret_password': 'chosen'},
        )

        await orchestrator.provision('i1', details)

        record = await ledger.get('i1')
        assert record.credentials['password'] == derive_secret('test-seed', 'i1', 'password')

    @pytest.mark.asyncio
    async def test_unknown_plan(self, orchestrator, gateway, ledger):
        with pytest.raises(PlanNotFound):
            await orchestrator.provision(
                'i1', ProvisionDetails(service_id='redis-svc', plan_id='nope'),
            )
        assert gateway.deployments == []
        assert 'i1' not in ledger

    @pytest.mark.asyncio
    async def test_director_unreachable(self, orchestrator, gateway, ledger):
        gateway.fail_info = True
        with pytest.raises(BackendUnavailable):
            await orchestrator.provision('i1', SMALL)
        assert gateway.deployments == []
        assert 'i1' not in ledger

    @pytest.mark.asyncio
    async def test_render_failure(self, catalog, gateway, ledger):
        orch = LifecycleOrchestrator(
            catalog=catalog, gateway=gateway, ledger=ledger, renderer=_FailingRenderer(),
        )
        with pytest.raises(ManifestGenerationFailed) as exc_info:
            await orch.provision('i1', SMALL)
        assert exc_info.value.retryable is False
        assert gateway.deployments == []
        assert 'i1' not in ledger

    @pytest.mark.asyncio
    async def test_submission_rejected(self, orchestrator, gateway, ledger):
        gateway.fail_submit = True
        with pytest.raises(BackendDeploymentFailed):
            await orchestrator.provision('i1', SMALL)
        assert 'i1' not in ledger

    @pytest.mark.asyncio
    async def test_ledger_write_failure_is_surfaced(self, orchestrator, gateway, ledger):
        ledger.fail_writes = True
        with pytest.raises(LedgerWriteFailed) as exc_info:
            await orchestrator.provision('i1', SMALL)
        # The deployment was submitted before the write failed.
        assert len(gateway.deployments) == 1
        assert exc_info.value.instance_id == 'i1'

    @pytest.mark.asyncio
    async def test_empty_instance_id_rejected(self, orchestrator):
        with pytest.raises(ValueError):
            await orchestrator.provision('', SMALL)

    @pytest.mark.asyncio
    async def test_debug_logging_does_not_change_result(self, catalog, gateway, ledger):
        orch = LifecycleOrchestrator(
            catalog=catalog,
            gateway=gateway,
            ledger=ledger,
            renderer=TemplateManifestRenderer(seed='test-seed'),
            log_config=LoggingConfig(debug=True),
        )
        result = await orch.provision('i1', SMALL)
        assert result.operation == PROVISION


# ── Deprovision ──────────────────────────────────────────────────


class TestDeprovision:
    @pytest.mark.asyncio
    async def test_submits_teardown_and_overwrites_record(self, orchestrator, gateway, ledger):
        await orchestrator.provision('i1', SMALL)

        result = await orchestrator.deprovision('i1')

        assert result.operation == DEPROVISION
        assert gateway.teardowns == ['i1']
        record = await ledger.get('i1')
        assert record == OperationRecord(kind=DEPROVISION, task_id=result.task_id)

    @pytest.mark.asyncio
    async def test_without_prior_record(self, orchestrator, ledger):
        result = await orchestrator.deprovision('never-provisioned')
        assert (await ledger.get('never-provisioned')).task_id == result.task_id

    @pytest.mark.asyncio
    async def test_teardown_rejected(self, orchestrator, gateway, ledger):
        gateway.fail_submit = True
        with pytest.raises(BackendDeploymentFailed):
            await orchestrator.deprovision('i1')
        assert 'i1' not in ledger

    @pytest.mark.asyncio
    async def test_ledger_write_failure_is_swallowed(self, orchestrator, gateway, ledger):
        ledger.fail_writes = True
        result = await orchestrator.deprovision('i1')
        assert result.operation == DEPROVISION
        assert gateway.teardowns == ['i1']


# ── Bind / Unbind / Update ───────────────────────────────────────


class TestBind:
    @pytest.mark.asyncio
    async def test_returns_stored_credentials(self, orchestrator, ledger):
        await orchestrator.provision('i1', SMALL)
        stored = (await ledger.get('i1')).credentials

        binding = await orchestrator.bind('i1', 'b1')

        assert binding.credentials == stored

    @pytest.mark.asyncio
    async def test_bind_before_provision_completes(self, orchestrator, gateway):
        await orchestrator.provision('i1', SMALL)
        binding = await orchestrator.bind('i1', 'b1')
        assert binding.credentials['port'] == 6379

    @pytest.mark.asyncio
    async def test_unknown_instance(self, orchestrator):
        with pytest.raises(InstanceNotFound) as exc_info:
            await orchestrator.bind('missing', 'b1')
        assert exc_info.value.http_status == 404

    @pytest.mark.asyncio
    async def test_ledger_read_failure(self, orchestrator, ledger):
        ledger.fail_reads = True
        with pytest.raises(BackendUnavailable):
            await orchestrator.bind('i1', 'b1')

    @pytest.mark.asyncio
    async def test_unbind_is_a_noop(self, orchestrator, ledger):
        await orchestrator.provision('i1', SMALL)
        before = await ledger.get('i1')
        assert await orchestrator.unbind('i1', 'b1') is None
        assert await ledger.get('i1') == before

    @pytest.mark.asyncio
    async def test_update_not_supported(self, orchestrator):
        with pytest.raises(NotSupported):
            await orchestrator.update('i1')

    @pytest.mark.asyncio
    async def test_update_not_supported_for_any_input(self, orchestrator):
        with pytest.raises(NotSupported):
            await orchestrator.update('')
        with pytest.raises(NotSupported):
            await orchestrator.update('i1', UpdateDetails(service_id='redis-svc', plan_id='nope'))


# ── Last operation ───────────────────────────────────────────────


class TestLastOperation:
    @pytest.mark.asyncio
    async def test_provision_lifecycle(self, orchestrator, gateway, ledger):
        result = await orchestrator.provision('i1', SMALL)

        assert (await orchestrator.last_operation('i1')).state == IN_PROGRESS

        gateway.set_task_state(result.task_id, 'done')
        last = await orchestrator.last_operation('i1')
        assert last.state == SUCCEEDED
        assert last.kind == PROVISION
        # Provision records are kept so later binds still work.
        assert 'i1' in ledger

    @pytest.mark.asyncio
    async def test_provision_failure_keeps_record(self, orchestrator, gateway, ledger):
        result = await orchestrator.provision('i1', SMALL)
        gateway.set_task_state(result.task_id, 'error')

        assert (await orchestrator.last_operation('i1')).state == FAILED
        assert 'i1' in ledger

    @pytest.mark.asyncio
    async def test_provision_scenario_from_record(self, orchestrator, gateway, ledger):
        await ledger.put('i1', OperationRecord(kind=PROVISION, task_id='t1'))
        gateway.add_task('t1', 'done')

        last = await orchestrator.last_operation('i1')

        assert last.state == SUCCEEDED
        assert (await ledger.get('i1')).task_id == 't1'

    @pytest.mark.asyncio
    async def test_failed_deprovision_clears_record(self, orchestrator, gateway, ledger):
        await ledger.put('i1', OperationRecord(kind=DEPROVISION, task_id='t2'))
        gateway.add_task('t2', 'error')

        last = await orchestrator.last_operation('i1')

        assert last.state == FAILED
        assert last.kind == DEPROVISION
        assert 'i1' not in ledger

    @pytest.mark.asyncio
    async def test_successful_deprovision_clears_record(self, orchestrator, gateway, ledger):
        result = await orchestrator.deprovision('i1')
        gateway.set_task_state(result.task_id, 'done')

        assert (await orchestrator.last_operation('i1')).state == SUCCEEDED
        assert 'i1' not in ledger

        with pytest.raises(InvalidOperationState):
            await orchestrator.last_operation('i1')

    @pytest.mark.asyncio
    async def test_in_progress_deprovision_keeps_record(self, orchestrator, gateway, ledger):
        result = await orchestrator.deprovision('i1')
        gateway.set_task_state(result.task_id, 'processing')

        assert (await orchestrator.last_operation('i1')).state == IN_PROGRESS
        assert 'i1' in ledger

    @pytest.mark.asyncio
    async def test_no_record(self, orchestrator):
        with pytest.raises(InvalidOperationState) as exc_info:
            await orchestrator.last_operation('i1')
        assert exc_info.value.http_status == 410

    @pytest.mark.asyncio
    async def test_unknown_kind(self, orchestrator, gateway, ledger):
        await ledger.put('i1', OperationRecord(kind='garbled', task_id='t1'))
        gateway.add_task('t1', 'done')
        with pytest.raises(InvalidOperationState):
            await orchestrator.last_operation('i1')

    @pytest.mark.asyncio
    async def test_unknown_task(self, orchestrator, ledger):
        await ledger.put('i1', OperationRecord(kind=PROVISION, task_id='404'))
        with pytest.raises(UnrecognizedTask):
            await orchestrator.last_operation('i1')

    @pytest.mark.asyncio
    async def test_ledger_read_failure(self, orchestrator, ledger):
        ledger.fail_reads = True
        with pytest.raises(BackendUnavailable):
            await orchestrator.last_operation('i1')

    @pytest.mark.asyncio
    async def test_clear_failure_still_reports_terminal_state(self, orchestrator, gateway, ledger):
        await ledger.put('i1', OperationRecord(kind=DEPROVISION, task_id='t2'))
        gateway.add_task('t2', 'done')
        ledger.fail_writes = True

        assert (await orchestrator.last_operation('i1')).state == SUCCEEDED
        assert 'i1' in ledger

    @pytest.mark.asyncio
    async def test_polling_never_submits_work(self, orchestrator, gateway):
        result = await orchestrator.provision('i1', SMALL)
        for _ in range(3):
            await orchestrator.last_operation('i1')
        gateway.set_task_state(result.task_id, 'done')
        await orchestrator.last_operation('i1')
        assert len(gateway.deployments) == 1
        assert gateway.teardowns == []

    @pytest.mark.asyncio
    async def test_state_survives_new_orchestrator(self, catalog, gateway, ledger, orchestrator):
        result = await orchestrator.provision('i1', SMALL)
        gateway.set_task_state(result.task_id, 'done')

        restarted = LifecycleOrchestrator(
            catalog=catalog,
            gateway=gateway,
            ledger=ledger,
            renderer=TemplateManifestRenderer(seed='test-seed'),
        )
        assert (await restarted.last_operation('i1')).state == SUCCEEDED


# ── Backups ──────────────────────────────────────────────────────


class TestBackupPolicy:
    @pytest.mark.asyncio
    async def test_resolves_against_instance_credentials(self, orchestrator):
        await orchestrator.provision('i1', SMALL)

        policy = await orchestrator.backup_policy('i1', 'redis-svc', 'redis-small')

        assert policy.target.redis_host == 'i1.redis.internal'
        assert policy.target.redis_password != '${password}'
        assert policy.schedule == 'daily 4am'

    @pytest.mark.asyncio
    async def test_plan_without_backups(self, orchestrator):
        assert await orchestrator.backup_policy('i1', 'redis-svc', 'redis-cluster') is None


# ── Concurrency ──────────────────────────────────────────────────


class _SlowLedger(InMemoryOperationLedger):
    def __init__(self):
        super().__init__()
        self.active = 0
        self.max_active = 0

    async def put(self, instance_id, record):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        await asyncio.sleep(0.01)
        await super().put(instance_id, record)
        self.active -= 1


class TestSerialization:
    @pytest.mark.asyncio
    async def test_same_instance_calls_are_serialized(self, catalog, gateway):
        ledger = _SlowLedger()
        orch = LifecycleOrchestrator(
            catalog=catalog,
            gateway=gateway,
            ledger=ledger,
            renderer=TemplateManifestRenderer(seed='test-seed'),
        )
        await asyncio.gather(orch.provision('i1', SMALL), orch.deprovision('i1'))
        assert ledger.max_active == 1

    @pytest.mark.asyncio
    async def test_different_instances_run_concurrently(self, catalog, gateway):
        ledger = _SlowLedger()
        orch = LifecycleOrchestrator(
            catalog=catalog,
            gateway=gateway,
            ledger=ledger,
            renderer=TemplateManifestRenderer(seed='test-seed'),
        )
        await asyncio.gather(orch.provision('i1', SMALL), orch.provision('i2', SMALL))
        assert ledger.max_active == 2

    @pytest.mark.asyncio
    async def test_serialization_can_be_disabled(self, catalog, gateway):
        ledger = _SlowLedger()
        orch = LifecycleOrchestrator(
            catalog=catalog,
            gateway=gateway,
            ledger=ledger,
            renderer=TemplateManifestRenderer(seed='test-seed'),
            serialize_instances=False,
        )
        await asyncio.gather(orch.provision('i1', SMALL), orch.deprovision('i1'))
        assert ledger.max_active == 2


def test_ledger_error_is_a_collaborator_error():
    from blacksmith.errors import CollaboratorError

    assert issubclass(LedgerError, CollaboratorError)
