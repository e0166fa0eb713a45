"""Broker error hierarchy.

Every failure a lifecycle operation can report is one of these classes.
Each carries a stable ``code`` (rendered as the OSB ``error`` field), the
HTTP status the broker API answers with, and a ``retryable`` flag:

- retryable errors come from collaborator outages and may succeed when the
  caller tries again;
- permanent errors (bad plan, template failure, unsupported operation) will
  fail the same way on every attempt.

The core never retries on its own; the flag is informational for callers.
"""

from __future__ import annotations


class BrokerError(Exception):
    """Base error for lifecycle and backup-scheduling operations."""

    code: str = 'BrokerError'
    http_status: int = 500
    retryable: bool = True

    def __init__(self, message: str = '', *, instance_id: str | None = None) -> None:
        self.message = message or self.code
        self.instance_id = instance_id
        super().__init__(self.message)

    def to_payload(self) -> dict[str, str]:
        """OSB error body."""
        return {'error': self.code, 'description': self.message}


class PlanNotFound(BrokerError):
    code = 'PlanNotFound'
    http_status = 400
    retryable = False

    def __init__(self, service_id: str, plan_id: str) -> None:
        self.service_id = service_id
        self.plan_id = plan_id
        super().__init__(
            f'plan {plan_id!r} not found for service {service_id!r}'
        )


class BackendUnavailable(BrokerError):
    """The deployment orchestrator or backup service could not be reached."""

    code = 'BackendUnavailable'
    http_status = 502


class ManifestGenerationFailed(BrokerError):
    """Template rendering failed. Retrying the same request will not help."""

    code = 'ManifestGenerationFailed'
    http_status = 500
    retryable = False


class BackendDeploymentFailed(BrokerError):
    code = 'BackendDeploymentFailed'
    http_status = 502


class LedgerWriteFailed(BrokerError):
    code = 'LedgerWriteFailed'
    http_status = 500


class InstanceNotFound(BrokerError):
    code = 'InstanceNotFound'
    http_status = 404
    retryable = False


class InvalidOperationState(BrokerError):
    """No operation record (or an unreadable one) exists for the instance."""

    code = 'InvalidOperationState'
    http_status = 410
    retryable = False


class UnrecognizedTask(BrokerError):
    code = 'UnrecognizedTask'
    http_status = 500


class ScheduleCreationFailed(BrokerError):
    code = 'ScheduleCreationFailed'
    http_status = 502


class ScheduleNotFound(BrokerError):
    code = 'ScheduleNotFound'
    http_status = 404
    retryable = False


class ScheduleDeletionFailed(BrokerError):
    code = 'ScheduleDeletionFailed'
    http_status = 502


class NotSupported(BrokerError):
    code = 'NotSupported'
    http_status = 422
    retryable = False


# ── Collaborator errors ──────────────────────────────────────────────
# Raised by gateway/ledger/scheduler adapters. The orchestrator and the
# broker API translate these into the BrokerError kinds above depending on
# which lifecycle step was running.


class CollaboratorError(Exception):
    """Base error for external collaborator adapters."""


class GatewayError(CollaboratorError):
    """The deployment orchestrator call failed or was rejected."""


class TaskLookupError(GatewayError):
    """A task ID could not be resolved by the deployment orchestrator."""


class LedgerError(CollaboratorError):
    """The operation ledger could not be read or written."""
