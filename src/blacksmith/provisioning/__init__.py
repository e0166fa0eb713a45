"""Lifecycle orchestration for broker-managed instances."""

from .details import (
    AsyncOperation,
    Binding,
    BindDetails,
    DeprovisionDetails,
    LastOperation,
    ProvisionDetails,
    UnbindDetails,
    UpdateDetails,
)
from .locks import InstanceLocks, NullLocks
from .manifest import (
    ManifestError,
    RenderedManifest,
    TemplateManifestRenderer,
    deployment_name,
    derive_secret,
)
from .orchestrator import LifecycleOrchestrator
from .state import (
    DEPROVISION,
    FAILED,
    IN_PROGRESS,
    PROVISION,
    SUCCEEDED,
    EnvironmentInfo,
    OperationRecord,
    Reconciliation,
    TaskStatus,
    UnknownOperationKind,
    reconcile,
)

__all__ = [
    'AsyncOperation',
    'Binding',
    'BindDetails',
    'DEPROVISION',
    'DeprovisionDetails',
    'EnvironmentInfo',
    'FAILED',
    'IN_PROGRESS',
    'InstanceLocks',
    'LastOperation',
    'LifecycleOrchestrator',
    'ManifestError',
    'NullLocks',
    'OperationRecord',
    'PROVISION',
    'ProvisionDetails',
    'Reconciliation',
    'RenderedManifest',
    'SUCCEEDED',
    'TaskStatus',
    'TemplateManifestRenderer',
    'UnbindDetails',
    'UnknownOperationKind',
    'UpdateDetails',
    'deployment_name',
    'derive_secret',
    'reconcile',
]
