"""Service/plan catalog: definitions, lookup, and loading."""

from .catalog import CatalogError, PlanCatalog
from .loader import load_catalog, read_service
from .models import Plan, PlanKey, Service

__all__ = [
    'CatalogError',
    'Plan',
    'PlanCatalog',
    'PlanKey',
    'Service',
    'load_catalog',
    'read_service',
]
