"""Deployment orchestrator providers for the broker."""

from .bosh_client import (
    BoshAPIError,
    BoshClient,
    BoshNotFoundError,
    BoshTimeoutError,
)
from .bosh_gateway import BoshDeploymentGateway, normalize_task_state

__all__ = [
    "BoshAPIError",
    "BoshClient",
    "BoshDeploymentGateway",
    "BoshNotFoundError",
    "BoshTimeoutError",
    "normalize_task_state",
]
