"""
Pytest configuration for keyadmin test suite.

This file provides common fixtures for all tests.
Note: Python path is configured via pytest.ini's pythonpath setting.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest
import pytest_asyncio
from loguru import logger

from keyadmin.core.api_gateway import ApiGateway
from keyadmin.core.config import Settings

BASE_URL = "http://backend.test/api"


@pytest.fixture
def loguru_caplog(caplog):
    """Fixture to bridge loguru to pytest caplog with proper cleanup."""
    # Remove all handlers to avoid duplicate logs or side effects
    logger.remove()

    # Add caplog handler
    handler_id = logger.add(caplog.handler, format="{message}")
    caplog.set_level(logging.DEBUG)

    yield caplog

    # Cleanup: remove caplog handler
    try:
        logger.remove(handler_id)
    except ValueError:
        # Handler already removed
        pass


# ============================================================================
# Fake backend
# ============================================================================

class FakeBackend:
    """
    Call-recording request handler for httpx.MockTransport.

    Each route holds a queue of outcomes: an httpx.Response, an exception
    instance to raise, or a JSON-serializable body returned with status 200.
    The last outcome of a queue repeats. Unknown routes answer 404.
    """

    def __init__(self):
        self.calls: List[httpx.Request] = []
        self._routes: Dict[Tuple[str, str], List[Any]] = {}

    def add(self, method: str, path: str, *outcomes: Any) -> None:
        self._routes[(method, path)] = list(outcomes)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        path = request.url.path[len("/api"):]
        outcomes = self._routes.get((request.method, path))
        if not outcomes:
            return httpx.Response(404, json={"message": f"No route for {request.method} {path}"})

        outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, httpx.Response):
            return outcome
        return httpx.Response(200, json=outcome)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def count(self, method: Optional[str] = None, path: Optional[str] = None) -> int:
        """Number of recorded calls, optionally filtered by method and path."""
        return sum(
            1
            for request in self.calls
            if (method is None or request.method == method)
            and (path is None or request.url.path == "/api" + path)
        )

    def last_json(self) -> Any:
        """Decoded JSON body of the most recent request."""
        return json.loads(self.calls[-1].content)


@pytest.fixture
def backend():
    """Fake backend with no routes configured."""
    return FakeBackend()


@pytest.fixture
def gateway_settings():
    """Settings with instant retries and fallback latency for fast tests."""
    return Settings(
        api_url=BASE_URL,
        retry_delay=0,
        fallback_delay_min_ms=0,
        fallback_delay_max_ms=0,
        recheck_interval=3600,
        _env_file=None,
    )


@pytest_asyncio.fixture
async def gateway(gateway_settings, backend):
    """ApiGateway wired to the fake backend."""
    gw = ApiGateway(gateway_settings, transport=backend.transport)
    yield gw
    await gw.aclose()


@pytest_asyncio.fixture
async def offline_gateway(gateway):
    """Gateway whose backend was just marked unavailable (no re-probe due)."""
    gateway.availability.mark_unavailable()
    return gateway


# ============================================================================
# Payload fixtures
# ============================================================================

@pytest.fixture
def key_payload():
    """A single key in the backend's wire shape."""
    return {
        "_id": "65f0c0ffee0000000000001",
        "key": "TV-LIVE-0001",
        "isActive": True,
        "credit": 250,
        "expiredAt": "2030-01-01T00:00:00Z",
        "maxActivations": 3,
        "activationCount": 1,
        "note": None,
        "createdAt": "2024-01-01T00:00:00Z",
        "updatedAt": "2024-02-01T00:00:00Z",
    }


@pytest.fixture
def proxy_payload():
    """A single proxy in the backend's wire shape."""
    return {
        "_id": "proxy-live-1",
        "name": "Live Proxy",
        "host": "10.0.0.5",
        "port": 3128,
        "protocol": "http",
        "isActive": True,
        "location": "US East",
        "provider": "ProxyCo",
        "successCount": 9,
        "failureCount": 1,
        "avgResponseTime": 120,
    }
