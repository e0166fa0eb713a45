"""Blacksmith: an Open Service Broker for BOSH-deployed services."""

from .main import create_app
from .settings import BrokerSettings

__all__ = ["create_app", "BrokerSettings"]
