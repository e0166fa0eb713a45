"""Backup scheduling for broker-managed instances."""

from .naming import ScheduleKey, ScheduleNames, schedule_names
from .scheduler import NoopBackupScheduler, ShieldBackupScheduler
from .shield_client import (
    ShieldAPIError,
    ShieldClient,
    ShieldNotFoundError,
    ShieldUnavailableError,
)
from .targets import (
    BackupPolicy,
    PostgresTarget,
    RabbitMQBrokerTarget,
    RedisBrokerTarget,
)

__all__ = [
    'BackupPolicy',
    'NoopBackupScheduler',
    'PostgresTarget',
    'RabbitMQBrokerTarget',
    'RedisBrokerTarget',
    'ScheduleKey',
    'ScheduleNames',
    'ShieldAPIError',
    'ShieldBackupScheduler',
    'ShieldClient',
    'ShieldNotFoundError',
    'ShieldUnavailableError',
    'schedule_names',
]
