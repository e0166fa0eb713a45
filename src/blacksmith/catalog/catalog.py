"""Read-only plan catalog."""

from __future__ import annotations

from types import MappingProxyType
from typing import Iterable, Mapping

from blacksmith.errors import PlanNotFound

from .models import Plan, PlanKey, Service


class CatalogError(ValueError):
    """Raised when catalog sources are missing or malformed."""


class PlanCatalog:
    """Load-once mapping from ``(service_id, plan_id)`` to a :class:`Plan`.

    Built once at startup and never mutated afterwards, so concurrent
    lookups need no locking.
    """

    def __init__(self, services: Iterable[Service]) -> None:
        services = tuple(services)
        plans: dict[PlanKey, Plan] = {}
        for service in services:
            for plan in service.plans:
                if plan.service_id != service.id:
                    raise CatalogError(
                        f'plan {plan.id!r} claims service {plan.service_id!r} '
                        f'but is listed under {service.id!r}'
                    )
                if plan.key in plans:
                    raise CatalogError(
                        f'duplicate plan {plan.id!r} for service {service.id!r}'
                    )
                plans[plan.key] = plan

        self._services = services
        self._plans: Mapping[PlanKey, Plan] = MappingProxyType(plans)

    @property
    def services(self) -> tuple[Service, ...]:
        return self._services

    def keys(self) -> tuple[PlanKey, ...]:
        return tuple(self._plans)

    def lookup(self, service_id: str, plan_id: str) -> Plan:
        """Return the plan for ``(service_id, plan_id)``.

        Raises:
            PlanNotFound: If no such plan was loaded.
        """
        try:
            return self._plans[PlanKey(service_id, plan_id)]
        except KeyError:
            raise PlanNotFound(service_id, plan_id) from None

    def __len__(self) -> int:
        return len(self._plans)
