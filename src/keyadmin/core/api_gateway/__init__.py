"""
API Gateway package for keyadmin.

Provides a single access layer to the key manager backend with
availability tracking, fallback data for reads, refusal of writes
while offline, and bounded retries for idempotent calls.
"""

from typing import Optional

from ..config import Settings
from .types import DataSource, GatewayUsage, Resource
from .errors import (
    APIError,
    APIErrorType,
    BackendUnavailableError,
    ConnectivityError,
    GatewayError,
    ServerError,
    UnexpectedResponseError,
    ValidationError,
)
from .availability import BackendAvailability
from .fallback import FallbackDataset
from .gateway import ApiGateway


def create_gateway(settings: Optional[Settings] = None) -> ApiGateway:
    """
    Create an ApiGateway with its own availability state.

    Each call returns an independent gateway; share one instance per
    application rather than one per request.
    """
    return ApiGateway(settings or Settings())


__all__ = [
    "ApiGateway",
    "create_gateway",
    "BackendAvailability",
    "FallbackDataset",
    "Resource",
    "DataSource",
    "GatewayUsage",
    "APIError",
    "APIErrorType",
    "GatewayError",
    "BackendUnavailableError",
    "ServerError",
    "ConnectivityError",
    "UnexpectedResponseError",
    "ValidationError",
]
