"""Operation records and the last-operation reconciliation table.

An instance has no state of its own beyond the single operation record kept
in the ledger. What the broker reports for an instance is a pure function of
that record's ``kind`` and the polled status of its task:

  provision   + done  -> succeeded
  provision   + error -> failed
  provision   + other -> in progress
  deprovision + done  -> succeeded   (record cleared)
  deprovision + error -> failed      (record cleared)
  deprovision + other -> in progress
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping

PROVISION = 'provision'
DEPROVISION = 'deprovision'

OPERATION_KINDS = frozenset({PROVISION, DEPROVISION})

# Task states reported by the deployment orchestrator that end a task.
TASK_DONE = 'done'
TASK_ERROR = 'error'

# Reported states (OSB last_operation vocabulary).
SUCCEEDED = 'succeeded'
FAILED = 'failed'
IN_PROGRESS = 'in progress'

TERMINAL_REPORTED_STATES = frozenset({SUCCEEDED, FAILED})

_TERMINAL_TASK_OUTCOMES: Mapping[str, str] = MappingProxyType(
    {
        TASK_DONE: SUCCEEDED,
        TASK_ERROR: FAILED,
    }
)

# Kinds whose record is removed once a terminal task state is observed.
_CLEARS_ON_TERMINAL = frozenset({DEPROVISION})


@dataclass(frozen=True, slots=True)
class OperationRecord:
    """The current operation for one instance.

    ``kind`` is kept as the raw stored string so that a garbled record can
    still be read and reported rather than failing deserialization.
    """

    kind: str
    task_id: str
    credentials: Mapping[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            'state': self.kind,
            'task': self.task_id,
            'credentials': dict(self.credentials) if self.credentials is not None else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> OperationRecord:
        credentials = data.get('credentials')
        return cls(
            kind=str(data.get('state', '')),
            task_id=str(data.get('task', '')),
            credentials=credentials if isinstance(credentials, Mapping) else None,
        )


@dataclass(frozen=True, slots=True)
class TaskStatus:
    """Polled status of a deployment-orchestrator task."""

    task_id: str
    state: str
    description: str = ''


@dataclass(frozen=True, slots=True)
class EnvironmentInfo:
    """Deployment orchestrator metadata used when rendering manifests."""

    uuid: str
    name: str = ''
    version: str = ''


@dataclass(frozen=True, slots=True)
class Reconciliation:
    """Outcome of classifying one poll."""

    state: str
    clear_record: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_REPORTED_STATES


class UnknownOperationKind(ValueError):
    """Raised when a record's ``kind`` has no reconciliation rule."""

    def __init__(self, kind: str) -> None:
        self.kind = kind
        super().__init__(f'invalid operation kind {kind!r}')


def reconcile(kind: str, task_state: str) -> Reconciliation:
    """Classify a polled task state for a record of the given kind.

    Raises:
        UnknownOperationKind: If ``kind`` is not a known operation kind.
    """
    if kind not in OPERATION_KINDS:
        raise UnknownOperationKind(kind)

    reported = _TERMINAL_TASK_OUTCOMES.get(task_state)
    if reported is None:
        return Reconciliation(state=IN_PROGRESS)
    return Reconciliation(state=reported, clear_record=kind in _CLEARS_ON_TERMINAL)
