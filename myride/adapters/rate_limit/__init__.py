"""Rate limit ledger adapters.

This package provides a small abstraction layer so quotas can start with an
in-memory map and later migrate to a shared store without changing the
admission policy or the API layer.
"""

from myride.adapters.rate_limit.base import AbstractRateLedger, RateWindow
from myride.adapters.rate_limit.in_memory import InMemoryRateLedger

__all__ = [
    "AbstractRateLedger",
    "InMemoryRateLedger",
    "RateWindow",
]
