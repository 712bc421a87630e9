"""
Tests for fallback-eligible read operations of ApiGateway.

This module tests:
- Live reads, bare and enveloped responses
- Fallback substitution while the backend is marked unavailable
- Bounded read retries on network failures only
- Availability transitions triggered by reads
- Opportunistic re-probing of a failed backend
"""

import asyncio
from datetime import datetime, timedelta

import httpx
import pytest

from keyadmin.core.api_gateway import DataSource, Resource
from keyadmin.core.api_gateway.errors import ValidationError
from keyadmin.core.api_gateway.models import (
    AuditLogEntry,
    BankInfo,
    CreditPackage,
    DashboardStats,
    Key,
    Provider,
    ProxyPage,
    ProxyStatistics,
)

pytestmark = pytest.mark.asyncio

READS = [
    ("fetch_keys", Resource.KEYS, list, Key),
    ("fetch_providers", Resource.PROVIDERS, list, Provider),
    ("fetch_audit_logs", Resource.AUDIT_LOG, list, AuditLogEntry),
    ("fetch_packages", Resource.PACKAGES, list, CreditPackage),
    ("fetch_dashboard_stats", Resource.DASHBOARD_STATS, DashboardStats, None),
    ("fetch_bank_info", Resource.BANK_INFO, BankInfo, None),
    ("fetch_proxies", Resource.PROXIES, ProxyPage, None),
    ("fetch_proxy_stats", Resource.PROXY_STATS, ProxyStatistics, None),
]


class TestLiveReads:
    """Tests for reads served by the backend."""

    async def test_fetch_keys_bare_list(self, gateway, backend, key_payload):
        """Test that a bare JSON list is parsed into Key models."""
        # Arrange
        backend.add("GET", "/keys", [key_payload])

        # Act
        keys = await gateway.fetch_keys()

        # Assert
        assert len(keys) == 1
        assert keys[0].id == "65f0c0ffee0000000000001"
        assert keys[0].key == "TV-LIVE-0001"
        assert keys[0].credit == 250
        assert keys[0].note == ""
        assert gateway.data_source(Resource.KEYS) == DataSource.API
        assert gateway.availability.is_available() is True

    async def test_fetch_keys_enveloped(self, gateway, backend, key_payload):
        """Test that a success envelope is unwrapped to its data."""
        # Arrange
        backend.add("GET", "/keys", {"success": True, "data": [key_payload]})

        # Act
        keys = await gateway.fetch_keys()

        # Assert
        assert [k.key for k in keys] == ["TV-LIVE-0001"]

    async def test_fetch_bank_info_named_envelope_key(self, gateway, backend):
        """Test that bank info is unwrapped from its named envelope key."""
        # Arrange
        backend.add(
            "GET",
            "/bank-info",
            {
                "success": True,
                "bankInfo": {"bankName": "ACB", "accountNumber": "123", "accountName": "OWNER"},
            },
        )

        # Act
        info = await gateway.fetch_bank_info()

        # Assert
        assert info.bank_name == "ACB"
        assert info.branch_name == ""
        assert gateway.data_source(Resource.BANK_INFO) == DataSource.API

    async def test_fetch_proxies_sends_filters(self, gateway, backend, proxy_payload):
        """Test that proxy list filters travel as query parameters."""
        # Arrange
        backend.add(
            "GET",
            "/admin/proxies",
            {
                "success": True,
                "data": {
                    "proxies": [proxy_payload],
                    "pagination": {"currentPage": 1, "totalPages": 1, "totalItems": 1, "itemsPerPage": 10},
                },
            },
        )

        # Act
        page = await gateway.fetch_proxies(page=1, limit=10, status="active", assigned="false")

        # Assert
        params = backend.calls[-1].url.params
        assert params["status"] == "active"
        assert params["assigned"] == "false"
        assert params["limit"] == "10"
        assert "location" not in params
        assert page.proxies[0].host == "10.0.0.5"
        assert page.pagination.items_per_page == 10

    async def test_fetch_proxies_rejects_invalid_filter_locally(self, gateway, backend):
        """Test that an unknown status filter fails before any call."""
        # Arrange & Act & Assert
        with pytest.raises(ValidationError):
            await gateway.fetch_proxies(status="sleeping")
        assert backend.count() == 0

    async def test_unknown_provider_status_coerced(self, gateway, backend):
        # Arrange
        backend.add("GET", "/providers", [{"_id": "p1", "name": "Vendor", "status": "Melting", "apiKeys": None}])

        # Act
        providers = await gateway.fetch_providers()

        # Assert
        assert providers[0].status.value == "Unknown"
        assert providers[0].api_keys == []


class TestFallbackSubstitution:
    """Tests for reads while the backend is marked unavailable."""

    @pytest.mark.parametrize("method,resource,shape,item_model", READS)
    async def test_every_read_returns_fallback_without_network(
        self, offline_gateway, backend, method, resource, shape, item_model
    ):
        """Test that each read resolves with schema-shaped data and issues no call."""
        # Arrange & Act
        result = await getattr(offline_gateway, method)()

        # Assert
        assert isinstance(result, shape)
        if item_model is not None:
            assert result
            assert all(isinstance(item, item_model) for item in result)
        assert offline_gateway.data_source(resource) == DataSource.FALLBACK
        assert backend.count() == 0

    async def test_fallback_proxies_apply_filters(self, offline_gateway, backend):
        # Arrange & Act
        page = await offline_gateway.fetch_proxies(status="inactive")

        # Assert
        assert [p.id for p in page.proxies] == ["mock-proxy-3"]
        assert page.pagination.total_items == 1
        assert backend.count() == 0

    async def test_concurrent_reads_all_fall_back(self, offline_gateway, backend):
        """Test that parallel reads share the offline flag without calling out."""
        # Arrange & Act
        keys, providers, stats = await asyncio.gather(
            offline_gateway.fetch_keys(),
            offline_gateway.fetch_providers(),
            offline_gateway.fetch_dashboard_stats(),
        )

        # Assert
        assert keys and providers
        assert stats.api_usage_stats.total_requests > 0
        assert backend.count() == 0
        assert offline_gateway.get_usage_stats()["fallback_responses"] == 3

    async def test_fallback_waits_simulated_delay(self, offline_gateway, mocker):
        """Test that fallback data is delivered after the simulated latency."""
        # Arrange
        delay = mocker.patch(
            "keyadmin.core.api_gateway.gateway.simulate_delay", new_callable=mocker.AsyncMock, return_value=0.0
        )

        # Act
        await offline_gateway.fetch_packages()

        # Assert
        delay.assert_awaited_once_with(0, 0)


class TestReadFailures:
    """Tests for reads that fail against the backend."""

    async def test_timeout_falls_back_and_marks_unavailable(self, gateway, backend):
        """Test that a timing-out read returns fallback keys and flips the flag."""
        # Arrange
        backend.add("GET", "/keys", httpx.ReadTimeout("timed out"))

        # Act
        keys = await gateway.fetch_keys()

        # Assert
        assert len(keys) > 0
        assert all(k.key and isinstance(k.is_active, bool) and isinstance(k.credit, int) for k in keys)
        assert gateway.availability.is_available() is False
        assert gateway.data_source(Resource.KEYS) == DataSource.FALLBACK
        assert backend.count("GET", "/keys") == 2

    async def test_read_retry_recovers(self, gateway, backend, key_payload):
        """Test that a second attempt after a network failure succeeds."""
        # Arrange
        backend.add("GET", "/keys", httpx.ConnectError("connection refused"), [key_payload])

        # Act
        keys = await gateway.fetch_keys()

        # Assert
        assert [k.key for k in keys] == ["TV-LIVE-0001"]
        assert gateway.availability.is_available() is True
        assert gateway.data_source(Resource.KEYS) == DataSource.API
        assert backend.count("GET", "/keys") == 2

    async def test_server_error_not_retried_and_keeps_flag(self, gateway, backend):
        """Test that an HTTP 500 falls back once without touching availability."""
        # Arrange
        backend.add("GET", "/providers", httpx.Response(500, json={"message": "database down"}))

        # Act
        providers = await gateway.fetch_providers()

        # Assert
        assert [p.id for p in providers] == ["mock-provider-1", "mock-provider-2", "mock-provider-3"]
        assert gateway.availability.is_available() is True
        assert backend.count("GET", "/providers") == 1

    async def test_unexpected_shape_falls_back(self, gateway, backend, loguru_caplog):
        """Test that a body failing schema validation is replaced by fallback data."""
        # Arrange
        backend.add("GET", "/packages", {"unexpected": True})

        # Act
        packages = await gateway.fetch_packages()

        # Assert
        assert [p.name for p in packages] == ["Basic", "Pro", "Enterprise"]
        assert gateway.data_source(Resource.PACKAGES) == DataSource.FALLBACK
        assert any("serving fallback data" in record.message for record in loguru_caplog.records)
        assert gateway.is_offline() is False
        assert gateway.is_serving_fallback() is True

    async def test_fallback_indicator_clears_after_live_read(self, gateway, backend, key_payload):
        """Test that a valid response replaces fallback data and clears the indicator."""
        # Arrange
        backend.add("GET", "/keys", [{"_id": "live-1", "key": "LIVE", "credit": None}], [key_payload])

        # Act
        demo_keys = await gateway.fetch_keys()
        serving_demo = gateway.is_serving_fallback()
        live_keys = await gateway.fetch_keys()

        # Assert
        assert demo_keys[0].key == "TV-DEMO-2024-001"
        assert serving_demo is True
        assert live_keys[0].key == "TV-LIVE-0001"
        assert gateway.is_serving_fallback() is False

    async def test_unsuccessful_envelope_falls_back(self, gateway, backend):
        # Arrange
        backend.add("GET", "/audit-log", {"success": False, "message": "not allowed"})

        # Act
        entries = await gateway.fetch_audit_logs()

        # Assert
        assert entries[0].id == "mock-log-1"
        assert gateway.data_source(Resource.AUDIT_LOG) == DataSource.FALLBACK


class TestAvailabilityRecovery:
    """Tests for leaving offline mode."""

    async def test_success_restores_live_reads(self, offline_gateway, backend, key_payload):
        """Test that one successful response re-enables live reads."""
        # Arrange
        backend.add("GET", "/status", {"status": "ok"})
        backend.add("GET", "/keys", [key_payload])

        # Act
        awake = await offline_gateway.wake_up()
        keys = await offline_gateway.fetch_keys()

        # Assert
        assert awake is True
        assert offline_gateway.availability.is_available() is True
        assert backend.count("GET", "/keys") == 1
        assert keys[0].key == "TV-LIVE-0001"
        assert offline_gateway.data_source(Resource.KEYS) == DataSource.API

    async def test_read_reprobes_when_recheck_due(self, offline_gateway, backend, key_payload):
        """Test that a stale offline flag is re-verified before falling back."""
        # Arrange
        offline_gateway.availability.last_checked_at = datetime.now() - timedelta(hours=2)
        backend.add("GET", "/status", {"status": "ok"})
        backend.add("GET", "/keys", [key_payload])

        # Act
        keys = await offline_gateway.fetch_keys()

        # Assert
        assert keys[0].key == "TV-LIVE-0001"
        assert backend.count("GET", "/status") == 1
        assert offline_gateway.is_offline() is False

    async def test_failed_reprobe_falls_back(self, offline_gateway, backend):
        """Test that a failed re-probe costs one attempt and then serves fallback data."""
        # Arrange
        offline_gateway.availability.last_checked_at = datetime.now() - timedelta(hours=2)
        backend.add("GET", "/status", httpx.ConnectError("connection refused"))

        # Act
        keys = await offline_gateway.fetch_keys()

        # Assert
        assert keys[0].id == "mock-key-1"
        assert backend.count("GET", "/status") == 1
        assert backend.count("GET", "/keys") == 0
        assert offline_gateway.is_offline() is True
