"""
Configuration module for keyadmin.

This module handles gateway configuration, settings loading,
environment variable management and backend base URL resolution.
"""

from pathlib import Path
from typing import List, Optional
from urllib.parse import urlsplit

from loguru import logger
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_FALLBACK_API_URL = "https://key-manager-backend.onrender.com/api"
RELATIVE_API_PATH = "/api"


class Settings(BaseSettings):
    """Gateway settings model with validation."""

    # Backend location
    api_url: Optional[str] = Field(
        default=None, description="Explicit backend base URL override"
    )
    console_origin: Optional[str] = Field(
        default=None, description="Origin the admin console is served from (e.g. http://localhost:3000)"
    )
    local_hosts: List[str] = Field(
        default=["localhost", "127.0.0.1"],
        description="Hosts for which the same-origin /api path is used",
    )
    fallback_api_url: str = Field(
        default=DEFAULT_FALLBACK_API_URL, description="Absolute backend URL used when nothing else applies"
    )
    status_path: str = Field(default="/status", description="Lightweight liveness endpoint")

    # Timeouts (seconds)
    request_timeout: float = Field(default=15.0, description="Main client request timeout")
    probe_timeout: float = Field(default=5.0, description="Liveness probe timeout")
    proxy_timeout: float = Field(default=60.0, description="Timeout for proxy operations (live probes on the backend)")

    # Retry policy
    probe_attempts: int = Field(default=2, description="Total liveness probe attempts")
    read_attempts: int = Field(default=2, description="Total attempts for idempotent reads")
    retry_delay: float = Field(default=2.0, description="Fixed delay between attempts in seconds")

    # Availability tracking
    recheck_interval: float = Field(
        default=60.0, description="Minimum seconds between re-probes of a failed backend (0 disables)"
    )

    # Fallback data
    fallback_delay_min_ms: int = Field(default=200, description="Minimum simulated latency for fallback data")
    fallback_delay_max_ms: int = Field(default=800, description="Maximum simulated latency for fallback data")

    # Logging Settings
    log_level: str = Field(default="INFO", description="Logging level")
    log_to_file: bool = Field(default=False, description="Log to file")
    max_log_size: int = Field(default=10, description="Max log file size in MB")

    model_config = SettingsConfigDict(
        env_prefix="KEYADMIN_",
        env_file=".env",
        case_sensitive=False,
        validate_assignment=True,
        extra="ignore",
    )

    @field_validator("api_url", "console_origin")
    @classmethod
    def validate_optional_url(cls, v: Optional[str]) -> Optional[str]:
        """Treat blank strings as unset."""
        if v is None:
            return None
        v = v.strip()
        return v or None

    @field_validator("request_timeout", "probe_timeout", "proxy_timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Validate that timeouts are positive."""
        if v <= 0:
            raise ValueError(f"Timeout must be positive, got {v}")
        return v

    @field_validator("probe_timeout")
    @classmethod
    def validate_probe_timeout(cls, v: float) -> float:
        """The liveness probe must stay lightweight."""
        if v > 5:
            raise ValueError(f"probe_timeout must not exceed 5 seconds, got {v}")
        return v

    @field_validator("probe_attempts", "read_attempts")
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        """Retries are bounded to at most 2 attempts."""
        if v < 1 or v > 2:
            raise ValueError(f"Attempt count must be 1 or 2, got {v}")
        return v

    @field_validator("retry_delay", "recheck_interval")
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"Value must not be negative, got {v}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()

    @model_validator(mode="after")
    def validate_fallback_delay(self) -> "Settings":
        if self.fallback_delay_min_ms < 0 or self.fallback_delay_max_ms < self.fallback_delay_min_ms:
            raise ValueError(
                "fallback delay range is invalid: "
                f"{self.fallback_delay_min_ms}..{self.fallback_delay_max_ms} ms"
            )
        return self


def resolve_base_url(settings: Settings) -> str:
    """
    Resolve the backend base URL.

    Precedence: explicit override, then the same-origin /api path when the
    console runs on a known local host, then the absolute fallback URL.

    Args:
        settings: Gateway settings.

    Returns:
        Base URL without a trailing slash.
    """
    if settings.api_url:
        logger.debug(f"Using explicit backend URL override: {settings.api_url}")
        return settings.api_url.rstrip("/")

    if settings.console_origin:
        host = (urlsplit(settings.console_origin).hostname or "").lower()
        if host in {h.lower() for h in settings.local_hosts}:
            base = settings.console_origin.rstrip("/") + RELATIVE_API_PATH
            logger.debug(f"Console runs on local host '{host}', using same-origin API path: {base}")
            return base

    return settings.fallback_api_url.rstrip("/")


def get_config_path() -> Path:
    """Get the configuration directory path."""
    return Path.home() / ".keyadmin"


def ensure_config_dir() -> Path:
    """Ensure the configuration directory exists."""
    config_path = get_config_path()
    config_path.mkdir(exist_ok=True)
    return config_path


