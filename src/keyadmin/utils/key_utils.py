"""Key utilities for keyadmin.

Aggregate figures over a key list for the admin dashboard.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from ..core.api_gateway.models import Key


@dataclass
class KeySummary:
    """Counts and credit totals over a set of keys.

    Attributes:
        total: Number of keys
        active: Keys that are active and not expired
        expired: Keys whose expiry lies in the past
        total_credit: Credit summed over all keys
        total_active_credit: Credit summed over active, unexpired keys
    """
    total: int = 0
    active: int = 0
    expired: int = 0
    total_credit: int = 0
    total_active_credit: int = 0


def summarize_keys(keys: Iterable[Key], now: Optional[datetime] = None) -> KeySummary:
    """Summarize a key list.

    Args:
        keys: Keys to summarize
        now: Reference time for expiry checks (default: current time)

    Returns:
        KeySummary with counts and credit totals
    """
    summary = KeySummary()
    for key in keys:
        expired = key.is_expired(now)
        summary.total += 1
        summary.total_credit += key.credit
        if expired:
            summary.expired += 1
        elif key.is_active:
            summary.active += 1
            summary.total_active_credit += key.credit
    return summary
