"""
Utilities package for keyadmin.

This package contains helper functions for summarizing and formatting
gateway data for display.
"""

from .key_utils import KeySummary, summarize_keys
from .proxy_utils import (
    format_proxy_endpoint,
    format_proxy_url,
    format_response_time,
    format_success_rate,
    get_proxy_status_text,
)

__all__ = [
    "KeySummary",
    "summarize_keys",
    "format_proxy_endpoint",
    "format_proxy_url",
    "format_response_time",
    "format_success_rate",
    "get_proxy_status_text",
]
