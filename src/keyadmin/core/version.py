"""
Version helpers for keyadmin.

Provides a single function get_version() that returns the installed package version,
or '0.0.0+local' when running from a source checkout without metadata.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version as pkg_version
from typing import Final

DEFAULT_VERSION: Final[str] = "0.0.0+local"


def get_version() -> str:
    """Resolve the installed keyadmin version."""
    try:
        return pkg_version("keyadmin")
    except PackageNotFoundError:
        return DEFAULT_VERSION


__all__ = ["get_version", "DEFAULT_VERSION"]
