"""Backup schedule registration backed by SHIELD.

A schedule is a SHIELD target (what to back up) plus a job (when, where to,
how long to keep). Registration creates the target, then the job that points
at it. Deregistration looks the job up by name, deletes the job, then its
target; objects that disappear between lookup and delete count as deleted.
"""

from __future__ import annotations

from typing import Any

from blacksmith.errors import (
    BackendUnavailable,
    ScheduleCreationFailed,
    ScheduleDeletionFailed,
    ScheduleNotFound,
)
from blacksmith.observability.logging import get_logger

from .naming import ScheduleKey, schedule_names
from .shield_client import (
    ShieldAPIError,
    ShieldClient,
    ShieldNotFoundError,
    ShieldUnavailableError,
)
from .targets import BackupPolicy

logger = get_logger(__name__)

MANAGED_SUMMARY = 'This object is managed by Blacksmith.'
JOB_RETRIES = 3


class ShieldBackupScheduler:
    """``BackupScheduler`` implementation using :class:`ShieldClient`."""

    def __init__(
        self,
        client: ShieldClient,
        *,
        store_uuid: str,
        default_schedule: str = 'daily 3am',
        default_retain: str = '7d',
    ) -> None:
        if not store_uuid:
            raise ValueError('store_uuid is required')
        self._client = client
        self._store_uuid = store_uuid
        self._default_schedule = default_schedule
        self._default_retain = default_retain

    async def register_schedule(self, key: ScheduleKey, policy: BackupPolicy) -> None:
        """Create the target and job for ``key``. No-op if the job exists.

        If the job cannot be created, the target created for it is deleted
        again so a later attempt starts clean.

        Raises:
            BackendUnavailable: SHIELD could not be reached.
            ScheduleCreationFailed: SHIELD rejected the target or job.
        """
        names = schedule_names(key)
        try:
            if await self._client.find_job(names.job) is not None:
                logger.info('backup_schedule_exists', job=names.job, instance_id=key.instance_id)
                return

            target_uuid = _uuid_of(
                await self._client.create_target(
                    {
                        'name': names.target,
                        'summary': MANAGED_SUMMARY,
                        'plugin': policy.target.plugin,
                        'compression': policy.compression,
                        'config': policy.target.plugin_config(),
                    }
                )
            )
            try:
                await self._client.create_job(
                    {
                        'name': names.job,
                        'summary': MANAGED_SUMMARY,
                        'target': target_uuid,
                        'store': self._store_uuid,
                        'schedule': policy.schedule or self._default_schedule,
                        'retain': policy.retain or self._default_retain,
                        'retries': JOB_RETRIES,
                    }
                )
            except ShieldAPIError:
                await self._discard_target(target_uuid, names.target)
                raise
        except ShieldUnavailableError as exc:
            raise BackendUnavailable(
                f'backup service unavailable: {exc.message}',
                instance_id=key.instance_id,
            ) from exc
        except ShieldAPIError as exc:
            raise ScheduleCreationFailed(
                f'failed to create backup schedule {names.job!r}: {exc.message}',
                instance_id=key.instance_id,
            ) from exc

        logger.info('backup_schedule_registered', job=names.job, instance_id=key.instance_id)

    async def _discard_target(self, target_uuid: str, name: str) -> None:
        try:
            await self._client.delete_target(target_uuid)
        except ShieldAPIError as exc:
            logger.warning('backup_target_cleanup_failed', target=name, error=exc.message)
        else:
            logger.info('backup_target_discarded', target=name)

    async def deregister_schedule(self, key: ScheduleKey) -> None:
        """Delete the job for ``key`` and then its target.

        Raises:
            ScheduleNotFound: No job with the expected name exists.
            ScheduleDeletionFailed: SHIELD failed to delete either object.
        """
        names = schedule_names(key)
        try:
            job = await self._client.find_job(names.job)
        except ShieldAPIError as exc:
            raise ScheduleDeletionFailed(
                f'failed to look up backup job {names.job!r}: {exc.message}',
                instance_id=key.instance_id,
            ) from exc
        if job is None:
            raise ScheduleNotFound(
                f'backup job {names.job!r} not found',
                instance_id=key.instance_id,
            )

        target_uuid = _target_uuid_of(job)
        try:
            try:
                await self._client.delete_job(_uuid_of(job))
            except ShieldNotFoundError:
                logger.info('backup_job_already_deleted', job=names.job)
            if target_uuid:
                try:
                    await self._client.delete_target(target_uuid)
                except ShieldNotFoundError:
                    logger.info('backup_target_already_deleted', target=names.target)
        except ShieldAPIError as exc:
            raise ScheduleDeletionFailed(
                f'failed to delete backup schedule {names.job!r}: {exc.message}',
                instance_id=key.instance_id,
            ) from exc

        logger.info('backup_schedule_deregistered', job=names.job, instance_id=key.instance_id)


class NoopBackupScheduler:
    """Scheduler used when no backup service is configured."""

    async def register_schedule(self, key: ScheduleKey, policy: BackupPolicy) -> None:
        return None

    async def deregister_schedule(self, key: ScheduleKey) -> None:
        return None


def _uuid_of(obj: dict[str, Any]) -> str:
    uuid = obj.get('uuid')
    if not isinstance(uuid, str) or not uuid:
        raise ShieldAPIError(0, 'response object has no uuid')
    return uuid


def _target_uuid_of(job: dict[str, Any]) -> str | None:
    target = job.get('target')
    if isinstance(target, dict):
        return target.get('uuid') or None
    if isinstance(target, str):
        return target or None
    return job.get('target_uuid') or None
