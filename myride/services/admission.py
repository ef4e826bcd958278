"""Admission policy: decide whether a request may proceed under its quota.

Each protected surface gets its own ``AdmissionPolicy`` (and therefore its
own ledger) so that, e.g., payment quotas never eat into general quotas.

The policy is a fixed-window counter. A window opens on a key's first
request and lasts ``window_ms``; up to ``max_requests`` requests are
admitted in it. Because windows are fixed rather than sliding, a burst at a
window boundary can admit up to ``2 * max_requests`` requests in a short
span. That is a known characteristic of this counter.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from starlette.requests import Request

from myride.adapters.rate_limit.base import AbstractRateLedger, RateWindow
from myride.adapters.rate_limit.in_memory import InMemoryRateLedger

UNKNOWN_CLIENT_KEY = "unknown"

FORWARDED_FOR_HEADER = "x-forwarded-for"


def client_ip_key(request: Request) -> str:
    """Derive the limiter key from the caller's network address.

    Precedence: first entry of ``X-Forwarded-For``, then the socket peer
    address, then the shared ``"unknown"`` sentinel. All callers without a
    discoverable address therefore share a single bucket.

    Examples:
        ``X-Forwarded-For: 1.2.3.4, 10.0.0.1`` -> ``"1.2.3.4"``
    """

    forwarded = request.headers.get(FORWARDED_FOR_HEADER)
    if forwarded:
        # First entry as sent, untrimmed
        return forwarded.split(",")[0]

    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT_KEY


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class QuotaConfig:
    """Immutable quota for one policy instance.

    Attributes:
        name: Label used in logs and error details (e.g. "payment").
        window_ms: Window length in milliseconds.
        max_requests: Maximum admitted requests per key per window.
        key_extractor: Maps a request to its limiter key.
    """

    name: str
    window_ms: int
    max_requests: int
    key_extractor: Callable[[Any], str] = field(default=client_ip_key, compare=False)

    def __post_init__(self) -> None:
        if self.window_ms < 1:
            raise ValueError("window_ms must be >= 1")
        if self.max_requests < 1:
            raise ValueError("max_requests must be >= 1")


PAYMENT_QUOTA = QuotaConfig(name="payment", window_ms=15 * 60 * 1000, max_requests=10)
GENERAL_QUOTA = QuotaConfig(name="general", window_ms=15 * 60 * 1000, max_requests=100)
WEBHOOK_QUOTA = QuotaConfig(name="webhook", window_ms=60 * 1000, max_requests=100)


@dataclass(frozen=True)
class AdmissionResult:
    """Outcome of one admission check.

    Attributes:
        allowed: Whether the request may proceed.
        remaining: Requests still admissible in the window (0 when denied).
        reset_time: Epoch milliseconds when the window resets.
        limit: Configured ``max_requests``.
        key: Limiter key the request was counted under.
        checked_at: Policy clock reading (epoch ms) when the check ran.
    """

    allowed: bool
    remaining: int
    reset_time: int
    limit: int
    key: str
    checked_at: int


class AdmissionPolicy:
    """Fixed-window admission control for a single quota.

    Thread-safe: the sweep and the read-compare-increment on the ledger run
    under one lock, so concurrent requests for the same key can never be
    admitted beyond ``max_requests``.
    """

    def __init__(
        self,
        config: QuotaConfig,
        *,
        ledger: AbstractRateLedger | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        """Initialize the policy.

        Args:
            config: Quota this policy enforces.
            ledger: Window storage; a fresh in-memory ledger when omitted.
            clock: Time source returning epoch milliseconds.
        """
        self._config = config
        self._ledger = ledger if ledger is not None else InMemoryRateLedger()
        self._clock = clock
        self._lock = threading.Lock()

    @property
    def config(self) -> QuotaConfig:
        return self._config

    @property
    def ledger(self) -> AbstractRateLedger:
        return self._ledger

    def is_allowed(self, request: Request) -> AdmissionResult:
        """Check and record one request against the quota.

        Args:
            request: Incoming request; only its headers and client are read.

        Returns:
            AdmissionResult. Denials are ordinary return values.
        """
        return self.check(self._config.key_extractor(request))

    def check(self, key: str) -> AdmissionResult:
        """Check and record one request for an already-derived key."""
        max_requests = self._config.max_requests

        with self._lock:
            now = self._clock()
            self._ledger.sweep(now)

            window = self._ledger.get(key, now)
            if window is None:
                window = RateWindow(key=key, count=1, reset_at=now + self._config.window_ms)
                self._ledger.set(key, window)
                return self._result(True, max_requests - 1, window, now)

            if window.count < max_requests:
                window.count += 1
                self._ledger.set(key, window)
                return self._result(True, max_requests - window.count, window, now)

            # Denials leave the count and reset time untouched
            return self._result(False, 0, window, now)

    def reset(self) -> None:
        """Drop all recorded windows."""
        with self._lock:
            self._ledger.clear()

    def _result(self, allowed: bool, remaining: int, window: RateWindow, now: int) -> AdmissionResult:
        return AdmissionResult(
            allowed=allowed,
            remaining=remaining,
            reset_time=window.reset_at,
            limit=self._config.max_requests,
            key=window.key,
            checked_at=now,
        )
