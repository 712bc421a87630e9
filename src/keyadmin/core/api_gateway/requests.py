"""
Request building utilities for the API gateway package.

This module provides:
- Local precondition checks raised before any network call
- RequestBuilder class for building request payloads and query parameters
"""

import math
import numbers
from typing import Any, Dict, Mapping, Optional

from loguru import logger

from .errors import ValidationError

PROXY_STATUS_FILTERS = ("active", "inactive", "all")
PROXY_ASSIGNED_FILTERS = ("true", "false", "all")


def validate_identifier(value: Any, field: str = "id") -> str:
    """
    Ensure an identifier is a non-empty string.

    Args:
        value: Identifier to check.
        field: Field name used in the error message.

    Returns:
        The identifier with surrounding whitespace removed.

    Raises:
        ValidationError: If the value is not a non-empty string.
    """
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(field, "must be a non-empty string")
    return value.strip()


def validate_credit_delta(amount: Any) -> int:
    """
    Ensure a credit delta is a non-zero, finite, whole number.

    Positive values add credit, negative values deduct it.

    Raises:
        ValidationError: For zero, NaN, infinities, fractions and non-numbers.
    """
    if isinstance(amount, bool) or not isinstance(amount, numbers.Real):
        raise ValidationError("amount", "must be a number")
    if not math.isfinite(amount):
        raise ValidationError("amount", "must be a finite number")
    if amount != int(amount):
        raise ValidationError("amount", "must be a whole number of credits")
    if amount == 0:
        raise ValidationError("amount", "must not be zero")
    return int(amount)


def clean_payload(payload: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Return a copy of the payload without None values."""
    return {key: value for key, value in (payload or {}).items() if value is not None}


class RequestBuilder:
    """
    Builder for request payloads.

    Every method validates its inputs locally and raises ValidationError
    before the gateway touches the network.
    """

    def build_credit_update(self, key: Any, amount: Any) -> Dict[str, Any]:
        return {"key": validate_identifier(key, "key"), "amount": validate_credit_delta(amount)}

    def build_key_status(self, is_active: Any) -> Dict[str, Any]:
        if not isinstance(is_active, bool):
            raise ValidationError("isActive", "must be a boolean")
        return {"isActive": is_active}

    def build_provider(self, name: Any) -> Dict[str, Any]:
        return {"name": validate_identifier(name, "name")}

    def build_provider_credential(self, api_key: Any) -> Dict[str, Any]:
        return {"apiKey": validate_identifier(api_key, "apiKey")}

    def build_body(self, payload: Any) -> Dict[str, Any]:
        """Copy a JSON object payload, dropping None values."""
        if not isinstance(payload, Mapping):
            raise ValidationError("payload", "must be a JSON object")
        return clean_payload(payload)

    def build_proxy_query(
        self,
        *,
        page: Optional[int] = None,
        limit: Optional[int] = None,
        status: Optional[str] = None,
        location: Optional[str] = None,
        assigned: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Build query parameters for the proxy list.

        Args:
            page: 1-based page number.
            limit: Items per page.
            status: 'active', 'inactive' or 'all'.
            location: Exact location filter.
            assigned: 'true', 'false' or 'all'.

        Returns:
            Dictionary of query parameters with unset values omitted.
        """
        for field, value in (("page", page), ("limit", limit)):
            if value is not None and (isinstance(value, bool) or not isinstance(value, int) or value < 1):
                raise ValidationError(field, "must be a positive integer")
        if status is not None and status not in PROXY_STATUS_FILTERS:
            raise ValidationError("status", f"must be one of {PROXY_STATUS_FILTERS}")
        if assigned is not None and assigned not in PROXY_ASSIGNED_FILTERS:
            raise ValidationError("assigned", f"must be one of {PROXY_ASSIGNED_FILTERS}")

        params = clean_payload(
            {"page": page, "limit": limit, "status": status, "location": location, "assigned": assigned}
        )
        logger.debug(f"Proxy list query parameters: {params}")
        return params

    def build_auto_assign(self, provider: Optional[str] = None, force_reassign: bool = False) -> Dict[str, Any]:
        body: Dict[str, Any] = {"forceReassign": bool(force_reassign)}
        if provider is not None:
            body["provider"] = validate_identifier(provider, "provider")
        return body


__all__ = [
    "validate_identifier",
    "validate_credit_delta",
    "clean_payload",
    "RequestBuilder",
    "PROXY_STATUS_FILTERS",
    "PROXY_ASSIGNED_FILTERS",
]
