"""Broker API authentication."""

from .basic_auth import BasicAuthMiddleware, credentials_match, parse_basic_credentials

__all__ = [
    'BasicAuthMiddleware',
    'credentials_match',
    'parse_basic_credentials',
]
