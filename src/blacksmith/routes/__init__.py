"""HTTP route factories."""

from .broker import create_broker_router

__all__ = ['create_broker_router']
