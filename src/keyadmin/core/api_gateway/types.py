"""
Type definitions for the API gateway package.

This module contains core data types used across the gateway:
- Resource: fallback-eligible backend resources
- DataSource: where the last value of a resource came from
- GatewayUsage: request statistics
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class Resource(str, Enum):
    """Fallback-eligible backend resources."""

    KEYS = "keys"
    PROVIDERS = "providers"
    AUDIT_LOG = "audit_log"
    PACKAGES = "packages"
    DASHBOARD_STATS = "dashboard_stats"
    BANK_INFO = "bank_info"
    PROXIES = "proxies"
    PROXY_STATS = "proxy_stats"


class DataSource(str, Enum):
    """Sources for read results."""

    API = "api"
    FALLBACK = "fallback"


@dataclass
class GatewayUsage:
    """Gateway usage statistics."""

    requests_count: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    fallback_responses: int = 0
    rejected_writes: int = 0
    last_request_time: Optional[datetime] = None


__all__ = [
    "Resource",
    "DataSource",
    "GatewayUsage",
]
