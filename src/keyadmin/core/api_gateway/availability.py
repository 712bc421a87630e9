"""
Backend availability tracking for the API gateway package.

BackendAvailability is the gateway's best-effort belief about whether the
backend is reachable. It is owned by a gateway instance rather than by the
module, so independent gateways never share state.
"""

from datetime import datetime, timedelta
from typing import Optional

from loguru import logger


class BackendAvailability:
    """
    Holds the availability flag and the time it was last confirmed.

    Concurrent callers may race on the flag; the last writer wins.
    """

    def __init__(self, available: bool = True):
        self.available = available
        self.last_checked_at: Optional[datetime] = None

    def is_available(self) -> bool:
        return self.available

    def mark_available(self) -> None:
        """Record a successful response from the backend."""
        if not self.available:
            logger.info("Backend is reachable again; leaving offline mode")
        self.available = True
        self.last_checked_at = datetime.now()

    def mark_unavailable(self) -> None:
        """Record a network-class failure."""
        if self.available:
            logger.info("Backend marked unavailable; reads will use fallback data")
        self.available = False
        self.last_checked_at = datetime.now()

    def recheck_due(self, interval: float) -> bool:
        """
        Check whether a failed backend should be probed again.

        Args:
            interval: Minimum number of seconds between probes. 0 disables re-probing.

        Returns:
            True if the backend is marked unavailable and the last check is
            older than ``interval`` seconds.
        """
        if self.available or interval <= 0:
            return False
        if self.last_checked_at is None:
            return True
        return datetime.now() - self.last_checked_at >= timedelta(seconds=interval)

    def __repr__(self) -> str:
        return f"BackendAvailability(available={self.available}, last_checked_at={self.last_checked_at})"


__all__ = ["BackendAvailability"]
