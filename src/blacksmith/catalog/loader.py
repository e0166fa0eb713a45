"""Catalog loading from service directories.

Each catalog source is a service directory laid out as::

    redis/
      service.yml              # service + plan definitions
      small/manifest.yml       # deployment manifest template for plan "small"
      small/credentials.yml    # optional credential templates for "small"

``service.yml`` fields::

    id, name, description, bindable, tags
    plans:
      - id, name, description, free
        manifest:    path relative to the service dir (default <name>/manifest.yml)
        credentials: path relative to the service dir (default <name>/credentials.yml)
        params:      default template parameters
        backup:      optional BackupPolicy (target plugin config, compression, ...)

Loading happens once at startup; any malformed source fails the whole load.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from blacksmith.backups.targets import BackupPolicy
from blacksmith.observability.logging import LoggingConfig, get_logger

from .catalog import CatalogError, PlanCatalog
from .models import Plan, Service, _frozen

logger = get_logger(__name__)

SERVICE_FILE = 'service.yml'


def load_catalog(
    *dirs: str | Path,
    log_config: LoggingConfig | None = None,
) -> PlanCatalog:
    """Load every service directory into a single :class:`PlanCatalog`.

    Raises:
        CatalogError: If a directory, file, or definition is invalid.
    """
    log_config = log_config or LoggingConfig()
    services = [read_service(Path(d)) for d in dirs]
    catalog = PlanCatalog(services)

    if log_config.debug:
        for key in catalog.keys():
            logger.debug(
                'catalog_tracking_plan',
                service_id=key.service_id,
                plan_id=key.plan_id,
            )
    logger.info(
        'catalog_loaded',
        services=len(services),
        plans=len(catalog),
    )
    return catalog


def read_service(service_dir: Path) -> Service:
    """Parse one service directory."""
    if not service_dir.is_dir():
        raise CatalogError(f'service directory not found: {service_dir}')

    raw = _read_yaml(service_dir / SERVICE_FILE)
    if not isinstance(raw, dict):
        raise CatalogError(f'{service_dir / SERVICE_FILE}: expected a mapping')

    service_id = _require_str(raw, 'id', service_dir)
    plans_raw = raw.get('plans') or []
    if not isinstance(plans_raw, list):
        raise CatalogError(f'{service_dir}: plans must be a list')

    plans = tuple(
        _read_plan(service_dir, service_id, entry) for entry in plans_raw
    )
    tags = raw.get('tags') or []
    return Service(
        id=service_id,
        name=_require_str(raw, 'name', service_dir),
        description=str(raw.get('description', '')),
        bindable=bool(raw.get('bindable', True)),
        tags=tuple(str(t) for t in tags),
        plans=plans,
    )


def _read_plan(service_dir: Path, service_id: str, raw: Any) -> Plan:
    if not isinstance(raw, dict):
        raise CatalogError(f'{service_dir}: each plan must be a mapping')

    plan_id = _require_str(raw, 'id', service_dir)
    name = _require_str(raw, 'name', service_dir)

    manifest_path = service_dir / str(raw.get('manifest', f'{name}/manifest.yml'))
    if not manifest_path.is_file():
        raise CatalogError(f'plan {plan_id!r}: manifest not found at {manifest_path}')
    manifest = manifest_path.read_text(encoding='utf-8')

    credentials: dict[str, Any] = {}
    creds_path = service_dir / str(raw.get('credentials', f'{name}/credentials.yml'))
    if creds_path.is_file():
        loaded = _read_yaml(creds_path)
        if loaded is not None and not isinstance(loaded, dict):
            raise CatalogError(f'{creds_path}: expected a mapping')
        credentials = loaded or {}
    elif 'credentials' in raw:
        raise CatalogError(f'plan {plan_id!r}: credentials not found at {creds_path}')

    params = raw.get('params') or {}
    if not isinstance(params, dict):
        raise CatalogError(f'plan {plan_id!r}: params must be a mapping')

    backup = None
    if raw.get('backup') is not None:
        try:
            backup = BackupPolicy.model_validate(raw['backup'])
        except ValidationError as exc:
            raise CatalogError(f'plan {plan_id!r}: invalid backup policy: {exc}') from exc

    return Plan(
        id=plan_id,
        name=name,
        service_id=service_id,
        manifest=manifest,
        description=str(raw.get('description', '')),
        free=bool(raw.get('free', True)),
        credentials=_frozen(credentials),
        params=_frozen(params),
        backup=backup,
    )


def _read_yaml(path: Path) -> Any:
    if not path.is_file():
        raise CatalogError(f'file not found: {path}')
    try:
        return yaml.safe_load(path.read_text(encoding='utf-8'))
    except yaml.YAMLError as exc:
        raise CatalogError(f'{path}: invalid YAML: {exc}') from exc


def _require_str(raw: dict[str, Any], key: str, where: Path) -> str:
    value = raw.get(key)
    if not isinstance(value, str) or not value.strip():
        raise CatalogError(f'{where}: {key!r} is required')
    return value
