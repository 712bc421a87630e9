"""
Tests for the liveness probe, diagnostics and lifecycle of ApiGateway.
"""

import httpx
import pytest

from keyadmin.core.api_gateway import ApiGateway, ServerError, create_gateway

pytestmark = pytest.mark.asyncio


class TestWakeUp:
    """Tests for wake_up method."""

    async def test_success_marks_available(self, offline_gateway, backend):
        # Arrange
        backend.add("GET", "/status", {"status": "ok"})

        # Act
        result = await offline_gateway.wake_up()

        # Assert
        assert result is True
        assert offline_gateway.availability.is_available() is True
        assert backend.count("GET", "/status") == 1

    async def test_uses_short_timeout(self, gateway, backend):
        """Test that the probe carries its own timeout, not the client default."""
        # Arrange
        backend.add("GET", "/status", {"status": "ok"})

        # Act
        await gateway.wake_up()

        # Assert
        timeout = backend.calls[-1].extensions["timeout"]
        assert timeout["read"] == 5.0
        assert timeout["connect"] == 5.0

    async def test_retry_budget_exhausted_before_success(self, gateway, backend):
        """Test that two failures exhaust the two-attempt budget even if a third would succeed."""
        # Arrange
        backend.add(
            "GET",
            "/status",
            httpx.ConnectError("connection refused"),
            httpx.ReadTimeout("timed out"),
            {"status": "ok"},
        )

        # Act
        result = await gateway.wake_up()

        # Assert
        assert result is False
        assert gateway.availability.is_available() is False
        assert backend.count("GET", "/status") == 2

    async def test_second_attempt_succeeds(self, gateway, backend, loguru_caplog):
        # Arrange
        backend.add("GET", "/status", httpx.ConnectError("connection refused"), {"status": "ok"})

        # Act
        result = await gateway.wake_up()

        # Assert
        assert result is True
        assert gateway.availability.is_available() is True
        assert any("Retrying GET /status" in record.message for record in loguru_caplog.records)

    async def test_server_error_reports_unavailable_without_retry(self, gateway, backend):
        """Test that an unhealthy status answer is not retried and counts as unavailable."""
        # Arrange
        backend.add("GET", "/status", httpx.Response(503, text="Service Unavailable"))

        # Act
        result = await gateway.wake_up()

        # Assert
        assert result is False
        assert gateway.is_offline() is True
        assert backend.count("GET", "/status") == 1


class TestRefreshAvailability:
    """Tests for refresh_availability method."""

    async def test_available_backend_not_probed(self, gateway, backend):
        # Arrange & Act
        result = await gateway.refresh_availability()

        # Assert
        assert result is True
        assert backend.count() == 0

    async def test_recent_failure_not_reprobed(self, offline_gateway, backend):
        """Test that a failure inside the recheck interval is trusted."""
        # Arrange & Act
        result = await offline_gateway.refresh_availability()

        # Assert
        assert result is False
        assert backend.count() == 0

    async def test_force_probes(self, offline_gateway, backend):
        # Arrange
        backend.add("GET", "/status", {"status": "ok"})

        # Act
        result = await offline_gateway.refresh_availability(force=True)

        # Assert
        assert result is True
        assert backend.count("GET", "/status") == 1


class TestDiagnostics:
    """Tests for usage statistics and request headers."""

    async def test_usage_stats(self, gateway, backend, key_payload):
        # Arrange
        backend.add("GET", "/keys", [key_payload])
        backend.add("POST", "/keys/revoke", httpx.Response(404, json={"message": "Key not found"}))

        # Act
        await gateway.fetch_keys()
        with pytest.raises(ServerError):
            await gateway.revoke_key("TV-MISSING")
        stats = gateway.get_usage_stats()

        # Assert
        assert stats["base_url"] == "http://backend.test/api"
        assert stats["requests_count"] == 2
        assert stats["successful_requests"] == 1
        assert stats["failed_requests"] == 1
        assert stats["success_rate"] == 50
        assert stats["fallback_responses"] == 0
        assert stats["last_request_time"] is not None

    async def test_usage_stats_before_any_request(self, gateway):
        # Arrange & Act
        stats = gateway.get_usage_stats()

        # Assert
        assert stats["requests_count"] == 0
        assert stats["success_rate"] == 0
        assert stats["last_request_time"] is None

    async def test_default_headers(self, gateway, backend):
        # Arrange
        backend.add("GET", "/status", {"status": "ok"})

        # Act
        await gateway.wake_up()

        # Assert
        headers = backend.calls[-1].headers
        assert headers["content-type"] == "application/json"
        assert headers["user-agent"].startswith("keyadmin/")


class TestLifecycle:
    """Tests for gateway construction and cleanup."""

    async def test_async_context_closes_client(self, gateway_settings, backend):
        # Arrange & Act
        async with ApiGateway(gateway_settings, transport=backend.transport) as gw:
            assert gw.is_offline() is False

        # Assert
        assert gw._client.is_closed is True

    async def test_create_gateway_has_independent_state(self, gateway_settings):
        """Test that gateways never share availability."""
        # Arrange
        first = create_gateway(gateway_settings)
        second = create_gateway(gateway_settings)

        # Act
        first.availability.mark_unavailable()

        # Assert
        assert first.is_offline() is True
        assert second.is_offline() is False
        assert first.base_url == "http://backend.test/api"

        await first.aclose()
        await second.aclose()
