"""Backup policy and per-plugin target configuration.

Target configuration is validated once, when the catalog is loaded, as a
discriminated union keyed on ``plugin``. An unknown plugin name or a missing
field fails the catalog load rather than the first backup registration.

String fields may reference the instance's rendered credentials with
``${name}`` placeholders (``${host}``, ``${password}``); they are resolved
per instance by :meth:`BackupPolicy.for_instance`. Unknown placeholders are
left as written.
"""

from __future__ import annotations

from string import Template
from typing import Annotated, Any, Literal, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field


class _TargetBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra='forbid')

    def plugin_config(self) -> dict[str, Any]:
        """Plugin configuration as sent to the backup service."""
        return self.model_dump(exclude={'plugin'})


class RabbitMQBrokerTarget(_TargetBase):
    plugin: Literal['rabbitmq-broker']
    rmq_url: str
    rmq_username: str
    rmq_password: str
    skip_ssl_validation: bool = False


class PostgresTarget(_TargetBase):
    plugin: Literal['postgres']
    pg_host: str
    pg_port: int = 5432
    pg_user: str
    pg_password: str
    pg_database: str | None = None


class RedisBrokerTarget(_TargetBase):
    plugin: Literal['redis-broker']
    redis_host: str
    redis_port: int = 6379
    redis_password: str = ''


TargetConfig = Annotated[
    Union[RabbitMQBrokerTarget, PostgresTarget, RedisBrokerTarget],
    Field(discriminator='plugin'),
]


class BackupPolicy(BaseModel):
    """How one plan's instances are backed up.

    ``schedule`` and ``retain`` fall back to the scheduler's defaults when
    left unset.
    """

    model_config = ConfigDict(frozen=True, extra='forbid')

    target: TargetConfig
    compression: Literal['bzip2', 'gzip', 'none'] = 'bzip2'
    schedule: str | None = None
    retain: str | None = None

    def for_instance(self, values: Mapping[str, Any]) -> BackupPolicy:
        """Resolve ``${...}`` placeholders in the target against ``values``."""
        flat = {k: v for k, v in values.items() if isinstance(v, (str, int, float))}
        resolved = {
            field_name: (
                Template(value).safe_substitute(flat) if isinstance(value, str) else value
            )
            for field_name, value in self.target.model_dump().items()
        }
        return self.model_copy(
            update={'target': type(self.target).model_validate(resolved)},
        )
