"""Typed request details and results for lifecycle operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping


@dataclass(frozen=True, slots=True)
class ProvisionDetails:
    service_id: str
    plan_id: str
    parameters: Mapping[str, Any] = field(default_factory=dict)
    organization_guid: str = ''
    space_guid: str = ''


@dataclass(frozen=True, slots=True)
class DeprovisionDetails:
    service_id: str = ''
    plan_id: str = ''


@dataclass(frozen=True, slots=True)
class BindDetails:
    service_id: str = ''
    plan_id: str = ''
    app_guid: str = ''
    parameters: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class UnbindDetails:
    service_id: str = ''
    plan_id: str = ''


@dataclass(frozen=True, slots=True)
class UpdateDetails:
    service_id: str = ''
    plan_id: str = ''
    parameters: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class AsyncOperation:
    """Acceptance of an asynchronous lifecycle operation."""

    instance_id: str
    operation: str
    task_id: str
    is_async: bool = True


@dataclass(frozen=True, slots=True)
class Binding:
    credentials: Mapping[str, Any] | None


@dataclass(frozen=True, slots=True)
class LastOperation:
    """Reported state for the instance's current operation.

    ``kind`` tells the caller which flow the state belongs to, which matters
    once a deprovision record has been cleared.
    """

    state: str
    kind: str
    description: str = ''
