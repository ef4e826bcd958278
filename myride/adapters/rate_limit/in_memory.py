"""In-memory rate limit ledger.

Notes:
- Per-process only: running multiple workers multiplies the effective quota.
- Not synchronized on its own; the owning AdmissionPolicy holds a lock
  around every sweep/get/set sequence.
"""

from __future__ import annotations

import logging

from myride.adapters.rate_limit.base import AbstractRateLedger, RateWindow

logger = logging.getLogger(__name__)


class InMemoryRateLedger(AbstractRateLedger):
    """Dictionary-backed map from key to its current RateWindow.

    Memory is bounded by lazy sweeping: expired windows are dropped whenever
    the policy calls ``sweep`` on its admission path, so no background
    cleanup task is needed.
    """

    def __init__(self) -> None:
        self._windows: dict[str, RateWindow] = {}

    def get(self, key: str, now: int) -> RateWindow | None:
        window = self._windows.get(key)
        if window is None or window.is_expired(now):
            # Expired windows are left for the caller to replace
            return None
        return window

    def set(self, key: str, window: RateWindow) -> None:
        self._windows[key] = window

    def sweep(self, now: int) -> int:
        expired_keys = [k for k, w in self._windows.items() if w.is_expired(now)]
        for key in expired_keys:
            del self._windows[key]

        if expired_keys:
            logger.debug(
                "rate_ledger.swept",
                extra={"evicted": len(expired_keys), "size": len(self._windows)},
            )
        return len(expired_keys)

    def clear(self) -> None:
        self._windows.clear()

    def __len__(self) -> int:
        return len(self._windows)

    def __contains__(self, key: object) -> bool:
        return key in self._windows

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return f"InMemoryRateLedger(size={len(self._windows)})"
