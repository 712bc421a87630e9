"""
Error handling for the API gateway package.

This module contains:
- APIErrorType enum for categorizing transport and HTTP failures
- APIError dataclass for error information
- GatewayError hierarchy surfaced to callers
- classify_error function for error classification
- extract_error_message for pulling a message out of an error response
"""

import socket
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional

import httpx

CONNECTIVITY_MESSAGE = "Unable to reach the server. Please check your network connection."


class APIErrorType(str, Enum):
    """Types of API errors."""

    AUTHENTICATION = "authentication"
    RATE_LIMIT = "rate_limit"
    NETWORK = "network"
    TIMEOUT = "timeout"
    INVALID_REQUEST = "invalid_request"
    SERVER_ERROR = "server_error"
    UNKNOWN = "unknown"


NETWORK_ERROR_TYPES = frozenset({APIErrorType.NETWORK, APIErrorType.TIMEOUT})


@dataclass
class APIError:
    """API error information."""

    error_type: APIErrorType
    message: str
    status_code: Optional[int] = None
    timestamp: Optional[datetime] = None

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = datetime.now()


class GatewayError(Exception):
    """Base class for errors raised by the API gateway."""

    pass


class BackendUnavailableError(GatewayError):
    """Raised for write operations while the backend is marked unavailable."""

    def __init__(self, operation: str):
        self.operation = operation
        message = f"Backend is unavailable; '{operation}' was not sent. Retry once connectivity is restored."
        super().__init__(message)


class ServerError(GatewayError):
    """The backend answered but rejected the request."""

    def __init__(self, message: str, status_code: int):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class ConnectivityError(GatewayError):
    """No response was received at all."""

    def __init__(self, message: str = CONNECTIVITY_MESSAGE, api_error: Optional[APIError] = None):
        self.message = message
        self.api_error = api_error
        super().__init__(message)


class UnexpectedResponseError(GatewayError):
    """The backend accepted a write but its response did not have the expected shape.

    The write was applied; repeating it repeats its side effect.
    """

    def __init__(self, operation: str, body: Any):
        self.operation = operation
        self.body = body
        super().__init__(f"'{operation}' was applied but the server response could not be read")


class ValidationError(GatewayError):
    """A local precondition failed before any network call."""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


def _classify_status(status_code: int, message: str) -> APIError:
    if status_code in (401, 403):
        return APIError(APIErrorType.AUTHENTICATION, message, status_code)
    if status_code == 429:
        return APIError(APIErrorType.RATE_LIMIT, message, status_code)
    if status_code >= 500:
        return APIError(APIErrorType.SERVER_ERROR, message, status_code)
    if status_code >= 400:
        return APIError(APIErrorType.INVALID_REQUEST, message, status_code)
    return APIError(APIErrorType.UNKNOWN, message, status_code)


def classify_error(error: Exception) -> APIError:
    """
    Classify exception into API error type.

    Args:
        error: The exception to classify.

    Returns:
        APIError with classified error type.
    """
    message = str(error) or type(error).__name__

    # Timeouts first: httpx.TimeoutException is also a TransportError
    if isinstance(error, (httpx.TimeoutException, TimeoutError, socket.timeout)):
        return APIError(APIErrorType.TIMEOUT, message)

    if isinstance(error, httpx.UnsupportedProtocol):
        return APIError(APIErrorType.INVALID_REQUEST, message)

    if isinstance(error, (httpx.TransportError, ConnectionError, socket.gaierror)):
        return APIError(APIErrorType.NETWORK, message)

    if isinstance(error, httpx.HTTPStatusError):
        return _classify_status(error.response.status_code, message)

    status_code = getattr(error, "status_code", None)
    if isinstance(status_code, int):
        return _classify_status(status_code, message)

    error_type = type(error).__name__.lower()
    if "timeout" in error_type:
        return APIError(APIErrorType.TIMEOUT, message)

    error_str = message.lower()
    if any(keyword in error_str for keyword in ["network", "connection", "dns"]):
        return APIError(APIErrorType.NETWORK, message)

    return APIError(APIErrorType.UNKNOWN, message)


def is_network_error(api_error: APIError) -> bool:
    """Return True for failures where the backend never answered."""
    return api_error.error_type in NETWORK_ERROR_TYPES


def extract_error_message(response: httpx.Response) -> str:
    """
    Pull a human-readable message out of an error response.

    Prefers the body's ``message`` field, then ``error``, then a generic
    status string.
    """
    try:
        body: Any = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        for field in ("message", "error"):
            value = body.get(field)
            if isinstance(value, str) and value.strip():
                return value
            if isinstance(value, dict) and isinstance(value.get("message"), str):
                return value["message"]

    return f"Server error: status {response.status_code}"


__all__ = [
    "APIErrorType",
    "APIError",
    "GatewayError",
    "BackendUnavailableError",
    "ServerError",
    "ConnectivityError",
    "ValidationError",
    "UnexpectedResponseError",
    "CONNECTIVITY_MESSAGE",
    "classify_error",
    "is_network_error",
    "extract_error_message",
]
