"""
Fallback data for the API gateway package.

This module provides the FallbackDataset class: a static catalog of
plausible example payloads returned by read operations while the backend is
unavailable. Payloads use the backend's wire shape and are built fresh on
every call, so callers can never mutate the catalog.
"""

import asyncio
import copy
import random
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from .types import Resource

DAY = timedelta(days=1)
HOUR = timedelta(hours=1)


def _keys(now: datetime) -> List[Dict[str, Any]]:
    return [
        {
            "_id": "mock-key-1",
            "key": "TV-DEMO-2024-001",
            "isActive": True,
            "credit": 1000,
            "expiredAt": now + 30 * DAY,
            "note": "Demo key for testing",
            "maxActivations": 100,
            "activationCount": 15,
            "createdAt": now - 10 * DAY,
            "updatedAt": now,
        },
        {
            "_id": "mock-key-2",
            "key": "TV-PROD-2024-002",
            "isActive": True,
            "credit": 5000,
            "expiredAt": now + 90 * DAY,
            "note": "Production key",
            "maxActivations": 500,
            "activationCount": 234,
            "createdAt": now - 45 * DAY,
            "updatedAt": now,
        },
        {
            "_id": "mock-key-3",
            "key": "TV-EXPIRED-001",
            "isActive": False,
            "credit": 0,
            "expiredAt": now - 7 * DAY,
            "note": "Expired key",
            "maxActivations": 50,
            "activationCount": 50,
            "createdAt": now - 120 * DAY,
            "updatedAt": now - 7 * DAY,
        },
    ]


def _providers(now: datetime) -> List[Dict[str, Any]]:
    return [
        {
            "_id": "mock-provider-1",
            "name": "OpenAI GPT-4",
            "status": "Operational",
            "costToday": 8.25,
            "totalRequests": 9120,
            "apiKeys": ["sk-mock-key-1", "sk-mock-key-2"],
            "lastChecked": now - timedelta(minutes=5),
        },
        {
            "_id": "mock-provider-2",
            "name": "Google Gemini Pro",
            "status": "Operational",
            "costToday": 3.15,
            "totalRequests": 4870,
            "apiKeys": ["gem-mock-key-1"],
            "lastChecked": now - timedelta(minutes=12),
        },
        {
            "_id": "mock-provider-3",
            "name": "Deepseek V3",
            "status": "Degraded",
            "costToday": 1.05,
            "totalRequests": 1244,
            "apiKeys": [],
            "lastChecked": now - HOUR,
        },
    ]


def _audit_log(now: datetime) -> List[Dict[str, Any]]:
    return [
        {
            "_id": "mock-log-1",
            "action": "CREATE_KEY",
            "details": "Created key TV-DEMO-2024-001",
            "timestamp": now - 2 * HOUR,
            "userId": "admin",
            "ip": "192.168.1.1",
        },
        {
            "_id": "mock-log-2",
            "action": "UPDATE_CREDIT",
            "details": "Added 1000 credit to key TV-PROD-2024-002",
            "timestamp": now - 4 * HOUR,
            "userId": "admin",
            "ip": "192.168.1.1",
        },
        {
            "_id": "mock-log-3",
            "action": "REVOKE_KEY",
            "details": "Revoked key TV-EXPIRED-001",
            "timestamp": now - 6 * HOUR,
            "userId": "admin",
            "ip": "192.168.1.1",
        },
    ]


def _packages(now: datetime) -> List[Dict[str, Any]]:
    return [
        {
            "_id": "mock-package-1",
            "name": "Basic",
            "credits": 1000,
            "price": 50000,
            "isActive": True,
            "description": "For individual users",
        },
        {
            "_id": "mock-package-2",
            "name": "Pro",
            "credits": 5000,
            "price": 200000,
            "bonus": "+10%",
            "isPopular": True,
            "isActive": True,
            "description": "For small businesses",
        },
        {
            "_id": "mock-package-3",
            "name": "Enterprise",
            "credits": 20000,
            "price": 750000,
            "isActive": True,
            "description": "For large organizations",
        },
    ]


def _dashboard_stats(now: datetime) -> Dict[str, Any]:
    return {
        "billingStats": {"totalRevenue": 125000000, "monthlyTransactions": 45},
        "apiUsageStats": {"totalRequests": 15234, "costToday": 12.45},
    }


def _bank_info(now: datetime) -> Dict[str, Any]:
    return {
        "bankName": "Demo Commercial Bank",
        "accountNumber": "0123456789",
        "accountName": "KEY MANAGER DEMO",
        "branchName": "Head Office",
        "note": "Demo account, do not transfer",
    }


def _proxies(now: datetime) -> List[Dict[str, Any]]:
    return [
        {
            "_id": "mock-proxy-1",
            "name": "US East Proxy 1",
            "host": "proxy1.example.com",
            "port": 8080,
            "username": "user1",
            "password": "pass1",
            "protocol": "http",
            "isActive": True,
            "location": "US East",
            "provider": "ProxyProvider",
            "lastUsed": now - timedelta(minutes=30),
            "successCount": 150,
            "failureCount": 5,
            "avgResponseTime": 250,
            "assignedApiKey": "sk-1234...abcd",
            "notes": "Primary US proxy",
            "createdAt": now - 7 * DAY,
            "updatedAt": now,
        },
        {
            "_id": "mock-proxy-2",
            "name": "EU West Proxy 1",
            "host": "proxy2.example.com",
            "port": 3128,
            "protocol": "https",
            "isActive": True,
            "location": "EU West",
            "provider": "ProxyProvider",
            "successCount": 89,
            "failureCount": 11,
            "avgResponseTime": 320,
            "notes": "European region proxy",
            "createdAt": now - 5 * DAY,
            "updatedAt": now,
        },
        {
            "_id": "mock-proxy-3",
            "name": "Asia Pacific Proxy 1",
            "host": "proxy3.example.com",
            "port": 1080,
            "protocol": "socks5",
            "isActive": False,
            "location": "Asia Pacific",
            "provider": "ProxyProvider",
            "successCount": 45,
            "failureCount": 15,
            "avgResponseTime": 450,
            "assignedApiKey": "sk-5678...efgh",
            "notes": "Currently inactive due to issues",
            "createdAt": now - 10 * DAY,
            "updatedAt": now,
        },
    ]


def _count_by(items: List[Dict[str, Any]], field: str) -> List[Dict[str, Any]]:
    counts: Dict[str, int] = {}
    for item in items:
        value = item.get(field)
        counts[value] = counts.get(value, 0) + 1
    return [{"_id": value, "count": count} for value, count in sorted(counts.items(), key=lambda kv: -kv[1])]


def _success_rate(item: Dict[str, Any]) -> float:
    total = item["successCount"] + item["failureCount"]
    return round(item["successCount"] / total * 100, 1) if total else 0.0


def _proxy_stats(now: datetime) -> Dict[str, Any]:
    proxies = _proxies(now)
    total = len(proxies)
    active = sum(1 for p in proxies if p["isActive"])
    assigned = sum(1 for p in proxies if p.get("assignedApiKey"))
    available = sum(1 for p in proxies if p["isActive"] and not p.get("assignedApiKey"))
    recent = sum(1 for p in proxies if p.get("lastUsed") and now - p["lastUsed"] <= DAY)
    performers = sorted(proxies, key=_success_rate, reverse=True)
    return {
        "overview": {
            "total": total,
            "active": active,
            "assigned": assigned,
            "available": available,
            "recentActivity": recent,
            "assignmentRate": round(assigned / total * 100, 1) if total else 0.0,
        },
        "locationStats": _count_by(proxies, "location"),
        "protocolStats": _count_by(proxies, "protocol"),
        "providerStats": _count_by(proxies, "provider"),
        "topPerformers": [
            {
                "name": p["name"],
                "endpoint": f"{p['host']}:{p['port']}",
                "successRate": _success_rate(p),
                "avgResponseTime": p["avgResponseTime"],
            }
            for p in performers
        ],
    }


_BUILDERS: Dict[Resource, Callable[[datetime], Any]] = {
    Resource.KEYS: _keys,
    Resource.PROVIDERS: _providers,
    Resource.AUDIT_LOG: _audit_log,
    Resource.PACKAGES: _packages,
    Resource.DASHBOARD_STATS: _dashboard_stats,
    Resource.BANK_INFO: _bank_info,
    Resource.PROXIES: _proxies,
    Resource.PROXY_STATS: _proxy_stats,
}


class FallbackDataset:
    """
    Read-only catalog of example payloads keyed by resource.

    ``overrides`` replaces individual entries (used by demos and tests);
    overridden payloads are deep-copied on every access.
    """

    def __init__(self, overrides: Optional[Dict[Resource, Any]] = None):
        self._overrides: Dict[Resource, Any] = dict(overrides or {})

    def get(self, resource: Resource, now: Optional[datetime] = None) -> Any:
        """
        Return a fresh copy of the fallback payload for a resource.

        Args:
            resource: Resource to look up.
            now: Reference time for relative timestamps (default: current time).

        Returns:
            Backend-shaped payload (list or dict).
        """
        if resource in self._overrides:
            return copy.deepcopy(self._overrides[resource])
        return _BUILDERS[resource](now or datetime.now())

    def proxy_page(self, params: Optional[Dict[str, Any]] = None, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Build a proxy list page from the fallback proxies.

        Applies the same filters the backend accepts: status, location,
        assigned, page and limit.
        """
        params = params or {}
        proxies = self.get(Resource.PROXIES, now)

        status = params.get("status", "all")
        if status == "active":
            proxies = [p for p in proxies if p.get("isActive")]
        elif status == "inactive":
            proxies = [p for p in proxies if not p.get("isActive")]

        location = params.get("location")
        if location:
            proxies = [p for p in proxies if p.get("location") == location]

        assigned = params.get("assigned", "all")
        if assigned == "true":
            proxies = [p for p in proxies if p.get("assignedApiKey")]
        elif assigned == "false":
            proxies = [p for p in proxies if not p.get("assignedApiKey")]

        page = max(int(params.get("page", 1)), 1)
        limit = max(int(params.get("limit", 20)), 1)
        total = len(proxies)
        start = (page - 1) * limit
        return {
            "proxies": proxies[start:start + limit],
            "pagination": {
                "currentPage": page,
                "totalPages": max((total + limit - 1) // limit, 1),
                "totalItems": total,
                "itemsPerPage": limit,
            },
        }


async def simulate_delay(min_ms: int = 200, max_ms: int = 800) -> float:
    """
    Sleep for a random duration to mimic realistic network latency.

    Returns:
        The delay in seconds.
    """
    delay = random.uniform(min_ms, max_ms) / 1000 if max_ms > 0 else 0.0
    logger.debug(f"Simulating network delay of {delay * 1000:.0f} ms for fallback data")
    await asyncio.sleep(delay)
    return delay


__all__ = [
    "FallbackDataset",
    "simulate_delay",
]
