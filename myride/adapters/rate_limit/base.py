"""Rate limit ledger interfaces.

Admission policies depend on this abstraction (not the concrete map) so the
storage can later move to a shared store without touching the policy.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class RateWindow:
    """One caller's current quota window.

    Attributes:
        key: Identity the requests are counted under (usually a client IP).
        count: Requests counted in this window; starts at 1.
        reset_at: Epoch milliseconds at which the window expires.
    """

    key: str
    count: int
    reset_at: int

    def is_expired(self, now: int) -> bool:
        return now >= self.reset_at


class AbstractRateLedger(ABC):
    """Interface for per-key window storage.

    Implementations are plain storage: they do not serialize the
    read-compare-increment sequence. The owning policy does that.
    """

    @abstractmethod
    def get(self, key: str, now: int) -> RateWindow | None:
        """Return the live window for ``key``, or None if absent or expired."""
        raise NotImplementedError

    @abstractmethod
    def set(self, key: str, window: RateWindow) -> None:
        """Insert or replace the window for ``key``."""
        raise NotImplementedError

    @abstractmethod
    def sweep(self, now: int) -> int:
        """Drop every expired window.

        Returns:
            Number of windows evicted.
        """
        raise NotImplementedError

    @abstractmethod
    def clear(self) -> None:
        """Forget all windows."""
        raise NotImplementedError

    @abstractmethod
    def __len__(self) -> int:
        raise NotImplementedError
