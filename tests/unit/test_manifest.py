"""Unit tests for manifest rendering and credential generation."""

from __future__ import annotations

import pytest
import yaml

from blacksmith.catalog import Plan
from blacksmith.provisioning.manifest import (
    ManifestError,
    TemplateManifestRenderer,
    deployment_name,
    derive_secret,
)

SEED = 'test-seed'


def _params(**overrides):
    params = {'instance_id': 'i1', 'name': 'i1', 'director_uuid': 'dir-uuid'}
    params.update(overrides)
    return params


def test_deployment_name_is_instance_id():
    assert deployment_name('i1') == 'i1'


def test_derive_secret_is_deterministic_and_scoped():
    first = derive_secret(SEED, 'i1', 'password')
    assert first == derive_secret(SEED, 'i1', 'password')
    assert len(first) == 32
    assert first != derive_secret(SEED, 'i2', 'password')
    assert first != derive_secret(SEED, 'i1', 'admin')
    assert first != derive_secret('other-seed', 'i1', 'password')


def test_renderer_requires_seed():
    with pytest.raises(ValueError):
        TemplateManifestRenderer(seed='')


class TestRender:
    def test_renders_manifest_and_credentials(self, catalog):
        renderer = TemplateManifestRenderer(seed=SEED)
        plan = catalog.lookup('redis-svc', 'redis-small')

        rendered = renderer.render(plan, _params())

        manifest = yaml.safe_load(rendered.manifest)
        assert manifest['name'] == 'i1'
        assert manifest['director_uuid'] == 'dir-uuid'
        assert manifest['instance_groups'][0]['instances'] == 1
        secret = derive_secret(SEED, 'i1', 'password')
        assert manifest['instance_groups'][0]['properties']['password'] == secret
        assert rendered.credentials == {
            'host': 'i1.redis.internal',
            'port': 6379,
            'password': secret,
        }

    def test_caller_params_override_plan_defaults(self, catalog):
        renderer = TemplateManifestRenderer(seed=SEED)
        plan = catalog.lookup('redis-svc', 'redis-small')

        rendered = renderer.render(plan, _params(instances=5))

        manifest = yaml.safe_load(rendered.manifest)
        assert manifest['instance_groups'][0]['instances'] == 5

    def test_missing_placeholder_fails(self):
        plan = Plan(id='p', name='p', service_id='s', manifest='name: ${unknown}')
        renderer = TemplateManifestRenderer(seed=SEED)
        with pytest.raises(ManifestError, match='unknown'):
            renderer.render(plan, _params())

    def test_bad_placeholder_syntax_fails(self):
        plan = Plan(id='p', name='p', service_id='s', manifest='name: ${')
        with pytest.raises(ManifestError):
            TemplateManifestRenderer(seed=SEED).render(plan, _params())

    def test_manifest_must_be_a_mapping(self):
        plan = Plan(id='p', name='p', service_id='s', manifest='- just\n- a list\n')
        with pytest.raises(ManifestError, match='mapping'):
            TemplateManifestRenderer(seed=SEED).render(plan, _params())

    def test_instance_id_is_required(self):
        plan = Plan(id='p', name='p', service_id='s', manifest='name: x')
        with pytest.raises(ManifestError, match='instance_id'):
            TemplateManifestRenderer(seed=SEED).render(plan, {'name': 'x'})

    def test_nested_credentials_are_rendered(self):
        plan = Plan(
            id='p',
            name='p',
            service_id='s',
            manifest='name: ${name}',
            credentials={'uris': ['redis://${name}'], 'admin': {'pass': '${secret_admin}'}},
        )
        rendered = TemplateManifestRenderer(seed=SEED).render(plan, _params())
        assert rendered.credentials['uris'] == ['redis://i1']
        assert rendered.credentials['admin']['pass'] == derive_secret(SEED, 'i1', 'admin')

    def test_caller_cannot_choose_secrets(self, catalog):
        renderer = TemplateManifestRenderer(seed=SEED)
        plan = catalog.lookup('redis-svc', 'redis-small')

        rendered = renderer.render(plan, _params(secret_password='chosen'))

        secret = derive_secret(SEED, 'i1', 'password')
        assert rendered.credentials['password'] == secret
        manifest = yaml.safe_load(rendered.manifest)
        assert manifest['instance_groups'][0]['properties']['password'] == secret

    def test_parameter_values_cannot_add_manifest_keys(self, catalog):
        renderer = TemplateManifestRenderer(seed=SEED)
        plan = catalog.lookup('redis-svc', 'redis-small')

        rendered = renderer.render(plan, _params(instances='1\n    azs: [z9]'))

        group = yaml.safe_load(rendered.manifest)['instance_groups'][0]
        assert 'azs' not in group
        assert group['instances'] == '1\n    azs: [z9]'

    def test_embedded_placeholder_stays_inside_its_scalar(self):
        plan = Plan(id='p', name='p', service_id='s', manifest='name: ${name}-redis\n')
        rendered = TemplateManifestRenderer(seed=SEED).render(
            plan, _params(name='x\nextra: true'),
        )
        assert yaml.safe_load(rendered.manifest) == {'name': 'x\nextra: true-redis'}

    def test_whole_placeholder_keeps_structured_values(self):
        plan = Plan(
            id='p', name='p', service_id='s',
            manifest='name: ${name}\nproperties: ${props}\n',
        )
        rendered = TemplateManifestRenderer(seed=SEED).render(
            plan, _params(props={'maxmemory': '1gb', 'ports': [6379]}),
        )
        assert yaml.safe_load(rendered.manifest)['properties'] == {
            'maxmemory': '1gb',
            'ports': [6379],
        }

    def test_invalid_template_yaml_fails(self):
        plan = Plan(id='p', name='p', service_id='s', manifest='name: [unclosed\n')
        with pytest.raises(ManifestError, match='not valid YAML'):
            TemplateManifestRenderer(seed=SEED).render(plan, _params())
