"""Unit tests for catalog loading and plan lookup."""

from __future__ import annotations

import pytest

from blacksmith.backups.targets import RedisBrokerTarget
from blacksmith.catalog import (
    CatalogError,
    Plan,
    PlanCatalog,
    PlanKey,
    Service,
    load_catalog,
)
from blacksmith.errors import PlanNotFound


def _plan(plan_id: str, service_id: str = 'svc') -> Plan:
    return Plan(id=plan_id, name=plan_id, service_id=service_id, manifest='name: x')


# ── Loading ──────────────────────────────────────────────────────


class TestLoadCatalog:
    def test_loads_service_and_plans(self, catalog):
        assert len(catalog) == 2
        (service,) = catalog.services
        assert service.id == 'redis-svc'
        assert service.name == 'redis'
        assert service.tags == ('redis', 'cache')
        assert [p.id for p in service.plans] == ['redis-small', 'redis-cluster']

    def test_keys_are_service_then_plan(self, catalog):
        assert set(catalog.keys()) == {
            PlanKey('redis-svc', 'redis-small'),
            PlanKey('redis-svc', 'redis-cluster'),
        }

    def test_plan_carries_templates_and_params(self, catalog):
        plan = catalog.lookup('redis-svc', 'redis-small')
        assert '${secret_password}' in plan.manifest
        assert plan.params['instances'] == 1
        assert plan.credentials['port'] == 6379

    def test_credentials_file_is_optional(self, catalog):
        plan = catalog.lookup('redis-svc', 'redis-cluster')
        assert dict(plan.credentials) == {}
        assert plan.free is False

    def test_backup_policy_validated_at_load(self, catalog):
        plan = catalog.lookup('redis-svc', 'redis-small')
        assert isinstance(plan.backup.target, RedisBrokerTarget)
        assert plan.backup.schedule == 'daily 4am'
        assert catalog.lookup('redis-svc', 'redis-cluster').backup is None

    def test_missing_directory_fails(self, tmp_path):
        with pytest.raises(CatalogError, match='not found'):
            load_catalog(tmp_path / 'nope')

    def test_missing_manifest_fails(self, service_dir):
        (service_dir / 'cluster' / 'manifest.yml').unlink()
        with pytest.raises(CatalogError, match='manifest not found'):
            load_catalog(service_dir)

    def test_unknown_backup_plugin_fails(self, service_dir):
        text = (service_dir / 'service.yml').read_text()
        (service_dir / 'service.yml').write_text(text.replace('redis-broker', 'mysql'))
        with pytest.raises(CatalogError, match='invalid backup policy'):
            load_catalog(service_dir)

    def test_service_requires_id(self, service_dir):
        text = (service_dir / 'service.yml').read_text()
        (service_dir / 'service.yml').write_text(text.replace('id: redis-svc\n', ''))
        with pytest.raises(CatalogError, match="'id' is required"):
            load_catalog(service_dir)

    def test_loading_same_directory_twice_is_a_duplicate(self, service_dir):
        with pytest.raises(CatalogError, match='duplicate plan'):
            load_catalog(service_dir, service_dir)


# ── Lookup ───────────────────────────────────────────────────────


class TestPlanCatalog:
    def test_lookup_unknown_plan_raises_plan_not_found(self, catalog):
        with pytest.raises(PlanNotFound) as exc_info:
            catalog.lookup('redis-svc', 'missing')
        assert exc_info.value.service_id == 'redis-svc'
        assert exc_info.value.plan_id == 'missing'
        assert exc_info.value.http_status == 400
        assert exc_info.value.retryable is False

    def test_lookup_does_not_confuse_key_order(self):
        catalog = PlanCatalog([Service(id='a', name='a', plans=(_plan('b', 'a'),))])
        assert catalog.lookup('a', 'b').id == 'b'
        with pytest.raises(PlanNotFound):
            catalog.lookup('b', 'a')

    def test_same_plan_id_under_two_services(self):
        catalog = PlanCatalog([
            Service(id='s1', name='s1', plans=(_plan('small', 's1'),)),
            Service(id='s2', name='s2', plans=(_plan('small', 's2'),)),
        ])
        assert len(catalog) == 2
        assert catalog.lookup('s2', 'small').service_id == 's2'

    def test_rejects_plan_listed_under_wrong_service(self):
        with pytest.raises(CatalogError, match='claims service'):
            PlanCatalog([Service(id='s1', name='s1', plans=(_plan('p', 's2'),))])

    def test_empty_catalog(self):
        catalog = PlanCatalog([])
        assert len(catalog) == 0
        with pytest.raises(PlanNotFound):
            catalog.lookup('s', 'p')
