"""Deployment manifest rendering and credential generation.

Templates use ``string.Template`` placeholders (``${name}``). The manifest
template is parsed as YAML first and placeholders are substituted into the
loaded scalars, so a parameter value is always data and never manifest
syntax. A scalar that is exactly one placeholder takes the parameter's
value with its type (``instances: ${instances}`` stays an integer); a
placeholder inside a longer string is interpolated as text. Placeholders
therefore cannot appear inside flow collections (``[${a}]``).

The rendering context is, in increasing precedence:

  1. the plan's default ``params``;
  2. the caller's provisioning parameters;
  3. broker-supplied values: ``name`` (deployment name), ``instance_id``,
     ``director_uuid``, ``plan_id``, ``service_id``.

Any placeholder of the form ``${secret_<label>}`` resolves to a secret
derived as ``HMAC-SHA256(seed, "<instance_id>:<label>")``. Parameters whose
names start with ``secret_`` are ignored, so secrets are always derived.
The derivation is deterministic, so re-rendering the same instance yields
the same secrets, but the broker still renders only once and stores the
result.
"""

from __future__ import annotations

import hashlib
import hmac
import re
from dataclasses import dataclass
from string import Template
from typing import Any, Mapping

import yaml

from blacksmith.catalog.models import Plan

SECRET_PREFIX = 'secret_'
_SECRET_LENGTH = 32
_WHOLE_PLACEHOLDER = re.compile(r'\$\{([_a-z][_a-z0-9]*)\}', re.IGNORECASE | re.ASCII)


class ManifestError(ValueError):
    """Raised when a plan's templates cannot be rendered."""


@dataclass(frozen=True, slots=True)
class RenderedManifest:
    manifest: str
    credentials: Mapping[str, Any]


def deployment_name(instance_id: str) -> str:
    """Deployment name for an instance.

    The instance ID alone names the deployment so that teardown needs no
    plan lookup; instance IDs are unique for the broker's lifetime.
    """
    return instance_id


def derive_secret(seed: str, instance_id: str, label: str) -> str:
    digest = hmac.new(
        seed.encode('utf-8'),
        f'{instance_id}:{label}'.encode('utf-8'),
        hashlib.sha256,
    ).hexdigest()
    return digest[:_SECRET_LENGTH]


class _RenderContext(dict):
    """Template mapping that derives ``secret_*`` values on first use."""

    def __init__(self, values: Mapping[str, Any], *, seed: str, instance_id: str) -> None:
        super().__init__(values)
        self._seed = seed
        self._instance_id = instance_id

    def __missing__(self, key: str) -> str:
        if key.startswith(SECRET_PREFIX) and len(key) > len(SECRET_PREFIX):
            value = derive_secret(self._seed, self._instance_id, key[len(SECRET_PREFIX):])
            self[key] = value
            return value
        raise KeyError(key)


class TemplateManifestRenderer:
    """Render a plan's manifest and credential templates."""

    def __init__(self, *, seed: str) -> None:
        if not seed:
            raise ValueError('seed is required')
        self._seed = seed

    def render(
        self,
        plan: Plan,
        params: Mapping[str, Any],
    ) -> RenderedManifest:
        """Render ``plan`` with the given parameters.

        ``params`` must include ``instance_id``.

        Raises:
            ManifestError: On a missing placeholder, bad template syntax, or
                a manifest template that does not parse as a YAML mapping.
        """
        instance_id = str(params.get('instance_id', ''))
        if not instance_id:
            raise ManifestError('instance_id is required to render a manifest')

        values = {
            key: value
            for key, value in {**plan.params, **params}.items()
            if not str(key).startswith(SECRET_PREFIX)
        }
        context = _RenderContext(values, seed=self._seed, instance_id=instance_id)

        try:
            template = yaml.safe_load(plan.manifest)
        except yaml.YAMLError as exc:
            raise ManifestError(f'manifest template is not valid YAML: {exc}') from exc
        if not isinstance(template, dict):
            raise ManifestError('manifest template must be a YAML mapping')

        document = _render_value(template, context, what='manifest')
        manifest = yaml.safe_dump(document, sort_keys=False, default_flow_style=False)

        credentials = {
            key: _render_value(value, context, what=f'credential {key!r}')
            for key, value in plan.credentials.items()
        }
        return RenderedManifest(manifest=manifest, credentials=credentials)


def _render_value(value: Any, context: _RenderContext, *, what: str) -> Any:
    if isinstance(value, str):
        whole = _WHOLE_PLACEHOLDER.fullmatch(value)
        if whole is not None:
            return _plain(_lookup(whole.group(1), context, what=what))
        return _substitute(value, context, what=what)
    if isinstance(value, Mapping):
        # Keys are always text; only values take typed parameters.
        return {
            _render_key(k, context, what=what): _render_value(v, context, what=what)
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [_render_value(v, context, what=what) for v in value]
    return value


def _render_key(key: Any, context: _RenderContext, *, what: str) -> Any:
    return _substitute(key, context, what=what) if isinstance(key, str) else key


def _lookup(key: str, context: _RenderContext, *, what: str) -> Any:
    try:
        return context[key]
    except KeyError as exc:
        raise ManifestError(f'{what}: unknown placeholder {key!r}') from exc


def _plain(value: Any) -> Any:
    """Copy parameter values into types ``yaml.safe_dump`` can represent."""
    if isinstance(value, Mapping):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


def _substitute(template: str, context: _RenderContext, *, what: str) -> str:
    try:
        return Template(template).substitute(context)
    except KeyError as exc:
        raise ManifestError(f'{what}: unknown placeholder {exc.args[0]!r}') from exc
    except ValueError as exc:
        raise ManifestError(f'{what}: {exc}') from exc
