"""Pytest configuration for blacksmith tests."""
import sys
from pathlib import Path

# Add src/ to path for src-layout imports
_PROJECT_ROOT = Path(__file__).parent.parent
_SRC = _PROJECT_ROOT / 'src'
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))

import pytest

SERVICE_YML = """\
id: redis-svc
name: redis
description: Redis key/value store
tags: [redis, cache]
plans:
  - id: redis-small
    name: small
    description: Single-node Redis
    params:
      instances: 1
    backup:
      target:
        plugin: redis-broker
        redis_host: ${host}
        redis_password: ${password}
      schedule: daily 4am
  - id: redis-cluster
    name: cluster
    free: false
    params:
      instances: 3
"""

MANIFEST_YML = """\
name: ${name}
director_uuid: ${director_uuid}
instance_groups:
  - name: redis
    instances: ${instances}
    properties:
      password: ${secret_password}
"""

CREDENTIALS_YML = """\
host: ${name}.redis.internal
port: 6379
password: ${secret_password}
"""


@pytest.fixture
def service_dir(tmp_path):
    """A service directory with a backed-up ``small`` plan and a ``cluster`` plan."""
    root = tmp_path / 'redis'
    (root / 'small').mkdir(parents=True)
    (root / 'cluster').mkdir()
    (root / 'service.yml').write_text(SERVICE_YML)
    (root / 'small' / 'manifest.yml').write_text(MANIFEST_YML)
    (root / 'small' / 'credentials.yml').write_text(CREDENTIALS_YML)
    (root / 'cluster' / 'manifest.yml').write_text(MANIFEST_YML)
    return root


@pytest.fixture
def catalog(service_dir):
    from blacksmith.catalog import load_catalog

    return load_catalog(service_dir)
