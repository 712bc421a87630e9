"""
API gateway orchestrator for keyadmin.

This module provides the ApiGateway class: one async method per backend
operation, a single configured HTTP client, backend availability tracking,
fallback data for reads and a hard refusal of writes while the backend is
unavailable.
"""

import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Type, TypeVar
from urllib.parse import quote

import httpx
import pydantic
from loguru import logger
from pydantic import TypeAdapter
from tenacity import RetryCallState, retry, retry_if_exception_type, stop_after_attempt, wait_fixed

from ..config import Settings, resolve_base_url
from ..version import get_version
from .availability import BackendAvailability
from .errors import (
    BackendUnavailableError,
    ConnectivityError,
    GatewayError,
    ServerError,
    UnexpectedResponseError,
    classify_error,
    extract_error_message,
    is_network_error,
)
from .fallback import FallbackDataset, simulate_delay
from .models import (
    AuditLogEntry,
    AutoAssignResult,
    BankInfo,
    CreditPackage,
    DashboardStats,
    Key,
    Provider,
    Proxy,
    ProxyBatchTestResult,
    ProxyPage,
    ProxyStatistics,
    ProxyTestResult,
)
from .requests import RequestBuilder, validate_identifier
from .types import DataSource, GatewayUsage, Resource

T = TypeVar("T")
ModelT = TypeVar("ModelT", bound=pydantic.BaseModel)

_KEY_LIST = TypeAdapter(List[Key])
_PROVIDER_LIST = TypeAdapter(List[Provider])
_AUDIT_LOG_LIST = TypeAdapter(List[AuditLogEntry])
_PACKAGE_LIST = TypeAdapter(List[CreditPackage])

PROXIES_PATH = "/admin/proxies"


def _segment(value: str) -> str:
    """Quote an identifier for use as a single path segment."""
    return quote(value, safe="")


class ApiGateway:
    """
    Client-side access layer for the key manager backend.

    Reads never raise on backend failures: they return fallback data instead
    and record the data source. Writes raise BackendUnavailableError while
    the backend is marked unavailable and are never retried.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        availability: Optional[BackendAvailability] = None,
        fallback: Optional[FallbackDataset] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the ApiGateway.

        Args:
            settings: Gateway settings (loaded from the environment when omitted).
            availability: Availability state holder; a fresh one per gateway by default.
            fallback: Fallback dataset for reads.
            transport: Optional httpx transport (used to fake the backend in tests).
        """
        self.settings = settings or Settings()
        self.availability = availability or BackendAvailability()
        self._fallback = fallback or FallbackDataset()
        self._request_builder = RequestBuilder()
        self._usage = GatewayUsage()
        self._sources: Dict[Resource, DataSource] = {}

        self.base_url = resolve_base_url(self.settings)
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.settings.request_timeout,
            headers={
                "Content-Type": "application/json",
                "User-Agent": f"keyadmin/{get_version()}",
            },
            transport=transport,
        )
        logger.debug(f"API gateway configured for {self.base_url}")

    async def __aenter__(self) -> "ApiGateway":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _send(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
        unwrap_key: str = "data",
    ) -> Any:
        """
        Issue one HTTP call. Every request passes through here.

        A response of any kind proves the backend is reachable, but only a
        2xx marks it available; failures without a response mark it
        unavailable when they are network-class.

        Raises:
            ConnectivityError: No response was received.
            ServerError: Non-2xx status, an undecodable body or an unsuccessful envelope.
        """
        kwargs: Dict[str, Any] = {}
        if json is not None:
            kwargs["json"] = json
        if params:
            kwargs["params"] = dict(params)
        if timeout is not None:
            kwargs["timeout"] = timeout

        self._usage.requests_count += 1
        self._usage.last_request_time = datetime.now()
        logger.debug(f"API request: {method} {path}" + (f" params={params}" if params else ""))
        start_time = time.time()

        request = self._client.build_request(method, path, **kwargs)
        try:
            response = await self._client.send(request, stream=True)
        except (httpx.RequestError, OSError) as e:
            raise self._connectivity_failure(method, path, e) from e

        try:
            await response.aread()
        except httpx.DecodingError as e:
            # The backend answered, so availability is left as it was
            self._usage.failed_requests += 1
            logger.warning(f"{method} {path} returned an undecodable {response.status_code} body: {e}")
            raise ServerError(f"Undecodable server response: {e}", response.status_code) from e
        except (httpx.RequestError, OSError) as e:
            raise self._connectivity_failure(method, path, e) from e
        finally:
            await response.aclose()

        request_time = time.time() - start_time
        if response.is_error:
            self._usage.failed_requests += 1
            message = extract_error_message(response)
            logger.warning(f"{method} {path} returned {response.status_code} in {request_time:.2f}s: {message}")
            raise ServerError(message, response.status_code)

        self.availability.mark_available()
        self._usage.successful_requests += 1
        logger.debug(f"{method} {path} completed with {response.status_code} in {request_time:.2f}s")
        return self._unwrap(response, unwrap_key)

    def _connectivity_failure(self, method: str, path: str, error: Exception) -> ConnectivityError:
        """Record a request that got no usable response and build the error to raise."""
        api_error = classify_error(error)
        self._usage.failed_requests += 1
        if is_network_error(api_error):
            self.availability.mark_unavailable()
        logger.warning(f"{method} {path} failed without a response: {api_error.error_type.value} - {api_error.message}")
        return ConnectivityError(api_error=api_error)

    @staticmethod
    def _unwrap(response: httpx.Response, unwrap_key: str) -> Any:
        """
        Normalize the response body to the resource itself.

        Bare bodies are returned unchanged. Envelopes carrying a boolean
        ``success`` are unwrapped to ``unwrap_key`` (or ``data``); an
        unsuccessful envelope raises ServerError.
        """
        if not response.content:
            return None
        try:
            body = response.json()
        except ValueError:
            raise ServerError("Invalid JSON in server response", response.status_code)

        if isinstance(body, dict) and isinstance(body.get("success"), bool):
            if not body["success"]:
                message = body.get("message") or body.get("error") or f"Server error: status {response.status_code}"
                raise ServerError(str(message), response.status_code)
            for key in (unwrap_key, "data"):
                if key in body:
                    return body[key]
        return body

    @staticmethod
    def _log_retry(retry_state: RetryCallState) -> None:
        method, path = retry_state.args[:2]
        logger.info(f"Retrying {method} {path} after attempt {retry_state.attempt_number}")

    async def _send_with_retry(self, attempts: int, method: str, path: str, **kwargs: Any) -> Any:
        """Send an idempotent request, retrying only network-class failures."""
        send = retry(
            stop=stop_after_attempt(attempts),
            wait=wait_fixed(self.settings.retry_delay),
            retry=retry_if_exception_type(ConnectivityError),
            before_sleep=self._log_retry,
            reraise=True,
        )(self._send)
        return await send(method, path, **kwargs)

    # ------------------------------------------------------------------
    # Read / write skeletons
    # ------------------------------------------------------------------

    async def _serve_fallback(
        self,
        resource: Resource,
        parser: Callable[[Any], T],
        fallback_factory: Optional[Callable[[], Any]] = None,
    ) -> T:
        await simulate_delay(self.settings.fallback_delay_min_ms, self.settings.fallback_delay_max_ms)
        payload = fallback_factory() if fallback_factory else self._fallback.get(resource)
        self._usage.fallback_responses += 1
        self._sources[resource] = DataSource.FALLBACK
        return parser(payload)

    async def _read(
        self,
        resource: Resource,
        path: str,
        parser: Callable[[Any], T],
        *,
        params: Optional[Mapping[str, Any]] = None,
        timeout: Optional[float] = None,
        unwrap_key: str = "data",
        fallback_factory: Optional[Callable[[], Any]] = None,
    ) -> T:
        """
        Read a resource from the backend, or fallback data when it is down.

        Never raises for backend failures.
        """
        if not self.availability.is_available() and self.availability.recheck_due(self.settings.recheck_interval):
            logger.debug(f"Re-checking backend before reading '{resource.value}'")
            await self._probe(attempts=1)

        if not self.availability.is_available():
            logger.warning(f"Backend unavailable; serving fallback data for '{resource.value}'")
            return await self._serve_fallback(resource, parser, fallback_factory)

        try:
            body = await self._send_with_retry(
                self.settings.read_attempts, "GET", path, params=params, timeout=timeout, unwrap_key=unwrap_key
            )
            result = parser(body)
        except Exception as e:
            logger.warning(f"Read of '{resource.value}' failed ({type(e).__name__}: {e}); serving fallback data")
            return await self._serve_fallback(resource, parser, fallback_factory)

        self._sources[resource] = DataSource.API
        return result

    async def _write(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        json: Any = None,
        timeout: Optional[float] = None,
        unwrap_key: str = "data",
    ) -> Any:
        """
        Send a state-changing request. Never retried, never served from fallback data.

        Raises:
            BackendUnavailableError: The backend is marked unavailable; nothing was sent.
            ServerError: The backend rejected the request.
            ConnectivityError: No response was received.
        """
        if not self.availability.is_available():
            self._usage.rejected_writes += 1
            logger.warning(f"Rejected '{operation}': backend is marked unavailable")
            raise BackendUnavailableError(operation)
        try:
            return await self._send(method, path, json=json, timeout=timeout, unwrap_key=unwrap_key)
        except GatewayError as e:
            logger.error(f"'{operation}' failed: {e}")
            raise

    @staticmethod
    def _parse_result(model: Type[ModelT], body: Any, operation: str) -> ModelT:
        """
        Parse the result of an applied write.

        Raises:
            UnexpectedResponseError: The write succeeded but the body does not fit ``model``.
        """
        try:
            return model.model_validate(body)
        except pydantic.ValidationError as e:
            logger.error(f"'{operation}' was applied but returned an unexpected response shape: {e}")
            raise UnexpectedResponseError(operation, body) from e

    # ------------------------------------------------------------------
    # Liveness
    # ------------------------------------------------------------------

    async def _probe(self, attempts: int) -> bool:
        try:
            await self._send_with_retry(
                attempts, "GET", self.settings.status_path, timeout=self.settings.probe_timeout
            )
        except ConnectivityError as e:
            logger.warning(f"Backend wake-up call failed: {e}")
            return False
        except ServerError as e:
            self.availability.mark_unavailable()
            logger.warning(f"Backend wake-up call returned {e.status_code}: {e.message}")
            return False
        return True

    async def wake_up(self) -> bool:
        """
        Probe the backend with a short timeout, retrying transient failures.

        Returns:
            True if the backend answered; the availability flag is updated either way.
        """
        return await self._probe(self.settings.probe_attempts)

    async def refresh_availability(self, force: bool = False) -> bool:
        """
        Re-verify a previously failed backend, at most once per recheck interval.

        Args:
            force: Probe regardless of the interval.

        Returns:
            The availability flag after the (possibly skipped) probe.
        """
        if force or self.availability.recheck_due(self.settings.recheck_interval):
            return await self.wake_up()
        return self.availability.is_available()

    def is_offline(self) -> bool:
        """True while the backend is marked unavailable."""
        return not self.availability.is_available()

    def is_serving_fallback(self) -> bool:
        """
        True while any resource's latest result is fallback data.

        This covers a reachable backend whose response failed validation,
        which ``is_offline`` does not.
        """
        return self.is_offline() or DataSource.FALLBACK in self._sources.values()

    def data_source(self, resource: Resource) -> Optional[DataSource]:
        """Where the last result for a resource came from, or None if never read."""
        return self._sources.get(resource)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def fetch_keys(self) -> List[Key]:
        return await self._read(Resource.KEYS, "/keys", _KEY_LIST.validate_python)

    async def fetch_providers(self) -> List[Provider]:
        return await self._read(Resource.PROVIDERS, "/providers", _PROVIDER_LIST.validate_python)

    async def fetch_audit_logs(self) -> List[AuditLogEntry]:
        return await self._read(Resource.AUDIT_LOG, "/audit-log", _AUDIT_LOG_LIST.validate_python)

    async def fetch_packages(self) -> List[CreditPackage]:
        return await self._read(Resource.PACKAGES, "/packages", _PACKAGE_LIST.validate_python)

    async def fetch_dashboard_stats(self) -> DashboardStats:
        return await self._read(Resource.DASHBOARD_STATS, "/stats/dashboard", DashboardStats.model_validate)

    async def fetch_bank_info(self) -> BankInfo:
        return await self._read(Resource.BANK_INFO, "/bank-info", BankInfo.model_validate, unwrap_key="bankInfo")

    async def fetch_proxies(
        self,
        *,
        page: Optional[int] = None,
        limit: Optional[int] = None,
        status: Optional[str] = None,
        location: Optional[str] = None,
        assigned: Optional[str] = None,
    ) -> ProxyPage:
        """
        List proxies with optional filters.

        Raises:
            ValidationError: For invalid filter values (checked before any call).
        """
        params = self._request_builder.build_proxy_query(
            page=page, limit=limit, status=status, location=location, assigned=assigned
        )
        return await self._read(
            Resource.PROXIES,
            PROXIES_PATH,
            ProxyPage.model_validate,
            params=params,
            timeout=self.settings.proxy_timeout,
            fallback_factory=lambda: self._fallback.proxy_page(params),
        )

    async def fetch_proxy_stats(self) -> ProxyStatistics:
        return await self._read(
            Resource.PROXY_STATS,
            f"{PROXIES_PATH}/stats",
            ProxyStatistics.model_validate,
            timeout=self.settings.proxy_timeout,
        )

    # ------------------------------------------------------------------
    # Key writes
    # ------------------------------------------------------------------

    async def create_key(self, payload: Mapping[str, Any]) -> Any:
        body = self._request_builder.build_body(payload)
        return await self._write("create_key", "POST", "/keys", json=body)

    async def update_credit(self, key: str, amount: int) -> Any:
        """
        Apply a signed credit delta to a key, identified by its key string.

        Raises:
            ValidationError: Empty key, or an amount that is zero, NaN, infinite or fractional.
        """
        body = self._request_builder.build_credit_update(key, amount)
        return await self._write("update_credit", "POST", "/keys/update-credit", json=body)

    async def revoke_key(self, key: str) -> Any:
        body = {"key": validate_identifier(key, "key")}
        return await self._write("revoke_key", "POST", "/keys/revoke", json=body)

    async def update_key_status(self, key_id: str, is_active: bool) -> Any:
        key_id = validate_identifier(key_id, "key_id")
        body = self._request_builder.build_key_status(is_active)
        return await self._write("update_key_status", "PUT", f"/keys/{_segment(key_id)}/status", json=body)

    async def update_key_details(self, key_id: str, payload: Mapping[str, Any]) -> Any:
        key_id = validate_identifier(key_id, "key_id")
        body = self._request_builder.build_body(payload)
        return await self._write("update_key_details", "PUT", f"/keys/{_segment(key_id)}/details", json=body)

    # ------------------------------------------------------------------
    # Provider writes
    # ------------------------------------------------------------------

    async def create_provider(self, name: str) -> Any:
        body = self._request_builder.build_provider(name)
        return await self._write("create_provider", "POST", "/providers", json=body)

    async def add_provider_credential(self, provider_id: str, api_key: str) -> Any:
        provider_id = validate_identifier(provider_id, "provider_id")
        body = self._request_builder.build_provider_credential(api_key)
        return await self._write(
            "add_provider_credential", "POST", f"/providers/{_segment(provider_id)}/keys", json=body
        )

    async def delete_provider_credential(self, provider_id: str, api_key: str) -> Any:
        """Remove a credential; the credential travels in the request body since it has no id."""
        provider_id = validate_identifier(provider_id, "provider_id")
        body = self._request_builder.build_provider_credential(api_key)
        return await self._write(
            "delete_provider_credential", "DELETE", f"/providers/{_segment(provider_id)}/keys", json=body
        )

    # ------------------------------------------------------------------
    # Package writes
    # ------------------------------------------------------------------

    async def create_package(self, payload: Mapping[str, Any]) -> Any:
        body = self._request_builder.build_body(payload)
        return await self._write("create_package", "POST", "/packages", json=body)

    async def update_package(self, package_id: str, payload: Mapping[str, Any]) -> Any:
        package_id = validate_identifier(package_id, "package_id")
        body = self._request_builder.build_body(payload)
        return await self._write("update_package", "PUT", f"/packages/{_segment(package_id)}", json=body)

    async def delete_package(self, package_id: str) -> Any:
        package_id = validate_identifier(package_id, "package_id")
        return await self._write("delete_package", "DELETE", f"/packages/{_segment(package_id)}")

    async def update_bank_info(self, payload: Mapping[str, Any]) -> Any:
        body = self._request_builder.build_body(payload)
        return await self._write("update_bank_info", "POST", "/bank-info", json=body, unwrap_key="bankInfo")

    # ------------------------------------------------------------------
    # Proxy writes
    # ------------------------------------------------------------------

    async def create_proxy(self, payload: Mapping[str, Any]) -> Proxy:
        body = self._request_builder.build_body(payload)
        result = await self._write(
            "create_proxy", "POST", PROXIES_PATH, json=body, timeout=self.settings.proxy_timeout
        )
        return self._parse_result(Proxy, result, "create_proxy")

    async def update_proxy(self, proxy_id: str, payload: Mapping[str, Any]) -> Proxy:
        proxy_id = validate_identifier(proxy_id, "proxy_id")
        body = self._request_builder.build_body(payload)
        result = await self._write(
            "update_proxy",
            "PUT",
            f"{PROXIES_PATH}/{_segment(proxy_id)}",
            json=body,
            timeout=self.settings.proxy_timeout,
        )
        return self._parse_result(Proxy, result, "update_proxy")

    async def delete_proxy(self, proxy_id: str) -> bool:
        proxy_id = validate_identifier(proxy_id, "proxy_id")
        await self._write(
            "delete_proxy", "DELETE", f"{PROXIES_PATH}/{_segment(proxy_id)}", timeout=self.settings.proxy_timeout
        )
        return True

    async def test_proxy(self, proxy_id: str) -> ProxyTestResult:
        """Ask the backend to probe one proxy live."""
        proxy_id = validate_identifier(proxy_id, "proxy_id")
        result = await self._write(
            "test_proxy", "POST", f"{PROXIES_PATH}/{_segment(proxy_id)}/test", timeout=self.settings.proxy_timeout
        )
        return self._parse_result(ProxyTestResult, result, "test_proxy")

    async def batch_test_proxies(self) -> ProxyBatchTestResult:
        result = await self._write(
            "batch_test_proxies", "POST", f"{PROXIES_PATH}/batch-test", timeout=self.settings.proxy_timeout
        )
        return self._parse_result(ProxyBatchTestResult, result, "batch_test_proxies")

    async def auto_assign_proxies(self, provider: Optional[str] = None, force_reassign: bool = False) -> AutoAssignResult:
        body = self._request_builder.build_auto_assign(provider, force_reassign)
        result = await self._write(
            "auto_assign_proxies",
            "POST",
            f"{PROXIES_PATH}/auto-assign",
            json=body,
            timeout=self.settings.proxy_timeout,
        )
        return self._parse_result(AutoAssignResult, result, "auto_assign_proxies")

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def get_usage_stats(self) -> Dict[str, Any]:
        """
        Get gateway usage statistics.

        Returns:
            Dictionary of usage statistics.
        """
        usage = self._usage
        return {
            "base_url": self.base_url,
            "available": self.availability.is_available(),
            "requests_count": usage.requests_count,
            "successful_requests": usage.successful_requests,
            "failed_requests": usage.failed_requests,
            "fallback_responses": usage.fallback_responses,
            "rejected_writes": usage.rejected_writes,
            "success_rate": (usage.successful_requests / usage.requests_count * 100) if usage.requests_count > 0 else 0,
            "last_request_time": usage.last_request_time.isoformat() if usage.last_request_time else None,
        }


__all__ = [
    "ApiGateway",
    "PROXIES_PATH",
]
