"""
keyadmin core package.

This package contains the API access gateway used by the key manager
admin console: backend availability tracking, fallback data and the
typed client for keys, providers, packages and proxies.
"""

from .core.api_gateway import ApiGateway, create_gateway
from .core.config import Settings

__all__ = ['ApiGateway', 'create_gateway', 'Settings']
