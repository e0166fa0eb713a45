"""Service and plan definitions loaded from the catalog directories."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, NamedTuple

from blacksmith.backups.targets import BackupPolicy


class PlanKey(NamedTuple):
    """Composite catalog key. Always ``(service_id, plan_id)`` in that order."""

    service_id: str
    plan_id: str


def _frozen(value: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(value or {}))


@dataclass(frozen=True, slots=True)
class Plan:
    """One deployable variant of a service.

    Attributes:
        id: Plan ID as advertised in the OSB catalog.
        name: Human-readable plan name.
        service_id: Owning service ID.
        manifest: Deployment manifest template (``string.Template`` syntax).
        credentials: Credential templates rendered once at provision time.
        params: Default template parameters; caller parameters override them.
        backup: Optional backup policy for instances of this plan.
    """

    id: str
    name: str
    service_id: str
    manifest: str
    description: str = ''
    free: bool = True
    credentials: Mapping[str, Any] = field(default_factory=lambda: _frozen(None))
    params: Mapping[str, Any] = field(default_factory=lambda: _frozen(None))
    backup: BackupPolicy | None = None

    @property
    def key(self) -> PlanKey:
        return PlanKey(self.service_id, self.id)


@dataclass(frozen=True, slots=True)
class Service:
    id: str
    name: str
    description: str = ''
    bindable: bool = True
    tags: tuple[str, ...] = ()
    plans: tuple[Plan, ...] = ()
