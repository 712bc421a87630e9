"""
Resource schemas for the API gateway package.

Live responses and fallback payloads are validated against the same models,
so both paths hand callers identically shaped objects. Field names follow
Python conventions; the backend's camelCase names (and its ``_id`` key) are
accepted as aliases and restored by ``model_dump(by_alias=True)``.
"""

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def _id_field(**kwargs: Any) -> Any:
    return Field(validation_alias=AliasChoices("_id", "id"), serialization_alias="_id", **kwargs)


class GatewayModel(BaseModel):
    """Base model for backend resources."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------


class Key(GatewayModel):
    """License/activation key issued to an end user."""

    id: str = _id_field()
    key: str
    is_active: bool = True
    credit: int = 0
    expired_at: Optional[datetime] = None
    max_activations: int = 1
    activation_count: Optional[int] = None
    note: str = ""
    is_trial: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("note", mode="before")
    @classmethod
    def validate_note(cls, v: Any) -> str:
        return "" if v is None else v

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Check whether the key's expiry lies in the past."""
        if self.expired_at is None:
            return False
        now = now or datetime.now(self.expired_at.tzinfo)
        if now.tzinfo is None and self.expired_at.tzinfo is not None:
            now = now.replace(tzinfo=self.expired_at.tzinfo)
        elif now.tzinfo is not None and self.expired_at.tzinfo is None:
            now = now.replace(tzinfo=None)
        return self.expired_at < now


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


class ProviderStatus(str, Enum):
    """Operational status of a third-party provider."""

    OPERATIONAL = "Operational"
    DEGRADED = "Degraded"
    ERROR = "Error"
    UNKNOWN = "Unknown"


class Provider(GatewayModel):
    """Third-party upstream API vendor with its pooled credentials."""

    id: str = _id_field()
    name: str
    status: ProviderStatus = ProviderStatus.UNKNOWN
    api_keys: List[str] = Field(default_factory=list)
    cost_today: float = 0.0
    total_requests: int = 0
    daily_requests: Optional[int] = None
    successful_requests: Optional[int] = None
    failed_requests: Optional[int] = None
    success_rate: Optional[Union[float, str]] = None
    total_tokens_today: Optional[int] = None
    avg_response_time: Optional[float] = None
    last_checked: Optional[datetime] = None

    @field_validator("status", mode="before")
    @classmethod
    def validate_status(cls, v: Any) -> ProviderStatus:
        """Coerce unrecognized status values to Unknown."""
        try:
            return ProviderStatus(v)
        except ValueError:
            return ProviderStatus.UNKNOWN

    @field_validator("api_keys", mode="before")
    @classmethod
    def validate_api_keys(cls, v: Any) -> Any:
        return [] if v is None else v


# ---------------------------------------------------------------------------
# Audit log, packages, dashboard, bank info
# ---------------------------------------------------------------------------


class AuditLogEntry(GatewayModel):
    id: str = _id_field()
    action: str
    details: str = ""
    timestamp: datetime
    user_id: Optional[str] = None
    ip: Optional[str] = None


class CreditPackage(GatewayModel):
    """Purchasable bundle of credits."""

    id: str = _id_field()
    name: str
    price: float
    credits: int
    bonus: Optional[str] = None
    is_popular: bool = False
    is_active: bool = True
    description: Optional[str] = None


class BillingStats(GatewayModel):
    total_revenue: float = 0.0
    monthly_transactions: int = 0


class ApiUsageStats(GatewayModel):
    total_requests: int = 0
    cost_today: float = 0.0


class DashboardStats(GatewayModel):
    """Aggregate figures shown on the admin dashboard."""

    billing_stats: BillingStats = Field(default_factory=BillingStats)
    api_usage_stats: ApiUsageStats = Field(default_factory=ApiUsageStats)


class BankInfo(GatewayModel):
    """Bank account that customers pay into."""

    bank_name: str
    account_number: str
    account_name: str
    branch_name: str = ""
    note: str = ""


# ---------------------------------------------------------------------------
# Proxies
# ---------------------------------------------------------------------------


class ProxyProtocol(str, Enum):
    HTTP = "http"
    HTTPS = "https"
    SOCKS4 = "socks4"
    SOCKS5 = "socks5"


class Proxy(GatewayModel):
    """Outbound proxy in the pool."""

    id: str = _id_field()
    name: str
    host: str
    port: int
    username: Optional[str] = None
    password: Optional[str] = None
    protocol: ProxyProtocol = ProxyProtocol.HTTP
    is_active: bool = True
    location: str = ""
    provider: str = ""
    last_used: Optional[datetime] = None
    success_count: int = 0
    failure_count: int = 0
    avg_response_time: float = 0.0
    assigned_api_key: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Pagination(GatewayModel):
    current_page: int = 1
    total_pages: int = 1
    total_items: int = 0
    items_per_page: int = 20


class ProxyPage(GatewayModel):
    """One page of the proxy list."""

    proxies: List[Proxy] = Field(default_factory=list)
    pagination: Pagination = Field(default_factory=Pagination)


class ProxyTestResult(GatewayModel):
    success: bool
    ip: Optional[str] = None
    response_time: Optional[float] = None
    error: Optional[str] = None
    message: str = ""


class ProxyBatchTestItem(GatewayModel):
    proxy_id: str
    name: str
    host: str
    port: int
    success: bool
    response_time: Optional[float] = None
    error: Optional[str] = None


class ProxyBatchSummary(GatewayModel):
    total: int = 0
    success: int = 0
    failed: int = 0
    success_rate: float = 0.0


class ProxyBatchTestResult(GatewayModel):
    results: List[ProxyBatchTestItem] = Field(default_factory=list)
    summary: ProxyBatchSummary = Field(default_factory=ProxyBatchSummary)


class ProxyOverview(GatewayModel):
    total: int = 0
    active: int = 0
    assigned: int = 0
    available: int = 0
    recent_activity: int = 0
    assignment_rate: float = 0.0


class CountBucket(GatewayModel):
    """Group-by bucket; the backend reports the group key as ``_id``."""

    id: Optional[str] = _id_field(default=None)
    count: int = 0


class TopPerformer(GatewayModel):
    name: str
    endpoint: str
    success_rate: float
    avg_response_time: float


class ProxyStatistics(GatewayModel):
    overview: ProxyOverview = Field(default_factory=ProxyOverview)
    location_stats: List[CountBucket] = Field(default_factory=list)
    protocol_stats: List[CountBucket] = Field(default_factory=list)
    provider_stats: List[CountBucket] = Field(default_factory=list)
    top_performers: List[TopPerformer] = Field(default_factory=list)


class AutoAssignItem(GatewayModel):
    api_key: str
    provider: str
    status: str
    proxy_name: Optional[str] = None
    proxy_host: Optional[str] = None
    error: Optional[str] = None


class AutoAssignResult(GatewayModel):
    total_assigned: int = 0
    results: List[AutoAssignItem] = Field(default_factory=list)


__all__ = [
    "GatewayModel",
    "Key",
    "ProviderStatus",
    "Provider",
    "AuditLogEntry",
    "CreditPackage",
    "BillingStats",
    "ApiUsageStats",
    "DashboardStats",
    "BankInfo",
    "ProxyProtocol",
    "Proxy",
    "Pagination",
    "ProxyPage",
    "ProxyTestResult",
    "ProxyBatchTestItem",
    "ProxyBatchSummary",
    "ProxyBatchTestResult",
    "ProxyOverview",
    "CountBucket",
    "TopPerformer",
    "ProxyStatistics",
    "AutoAssignItem",
    "AutoAssignResult",
]
