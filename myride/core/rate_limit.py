"""Rate limiting dependency for FastAPI routes.

This module wires the admission policies into the HTTP layer.

Design goals:
- Minimal coupling: routes depend on ``rate_limit("<quota>")`` only.
- No hidden globals: policies live in a registry attached to
  ``app.state.rate_limiters`` so tests can install fresh instances.
- Early exit: a denial raises before the route body runs, so throttled
  requests never reach the database or the payment provider.

Quotas:
- payment: 10 requests / 15 min (checkout, refunds)
- general: 100 requests / 15 min (events, payment listings, geocode)
- webhook: 100 requests / 1 min (payment provider callbacks)

Limitation: ledgers are per process. Several workers or instances each
enforce their own counters, so the effective quota scales with the number
of processes.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Awaitable, Callable, Iterable

from fastapi import Request

from myride.core.config import settings
from myride.core.errors import RateLimitExceededError
from myride.schemas.rate_limit import RateLimitErrorBody
from myride.services.admission import (
    GENERAL_QUOTA,
    PAYMENT_QUOTA,
    WEBHOOK_QUOTA,
    AdmissionPolicy,
    QuotaConfig,
)

logger = logging.getLogger(__name__)

DEFAULT_QUOTAS: tuple[QuotaConfig, ...] = (PAYMENT_QUOTA, GENERAL_QUOTA, WEBHOOK_QUOTA)

# OpenAPI documentation for routes guarded by rate_limit()
RATE_LIMITED_RESPONSES = {
    429: {
        "model": RateLimitErrorBody,
        "description": "Quota exceeded; retry after the given number of seconds.",
    }
}


class RateLimiterRegistry:
    """Named admission policies, one per protected surface."""

    def __init__(self, policies: Iterable[AdmissionPolicy] = ()) -> None:
        self._policies: dict[str, AdmissionPolicy] = {}
        for policy in policies:
            self.register(policy)

    def register(self, policy: AdmissionPolicy) -> None:
        name = policy.config.name
        if name in self._policies:
            raise ValueError(f"Duplicate quota name: {name!r}")
        self._policies[name] = policy

    def get(self, name: str) -> AdmissionPolicy:
        try:
            return self._policies[name]
        except KeyError:
            raise KeyError(f"No rate limiter registered for quota {name!r}") from None

    def reset(self) -> None:
        """Clear every policy's ledger."""
        for policy in self._policies.values():
            policy.reset()

    def __contains__(self, name: object) -> bool:
        return name in self._policies

    def __iter__(self):
        return iter(self._policies.values())


def build_rate_limiters(quotas: Iterable[QuotaConfig] = DEFAULT_QUOTAS) -> RateLimiterRegistry:
    """Create a registry with one fresh policy (and ledger) per quota."""

    return RateLimiterRegistry(AdmissionPolicy(quota) for quota in quotas)


def _hash_limiter_key(key: str) -> str:
    """Hash the rate limit key for logging without exposing client addresses."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def rate_limit(quota: str) -> Callable[[Request], Awaitable[None]]:
    """Build a FastAPI dependency enforcing the named quota.

    Usage:
        @router.post(
            "/create-premium-payment",
            dependencies=[Depends(rate_limit("payment"))],
            responses=RATE_LIMITED_RESPONSES,
        )

    Args:
        quota: Name of a policy registered on ``app.state.rate_limiters``.

    Returns:
        Async dependency that consumes one request from the caller's budget
        and raises RateLimitExceededError when the budget is exhausted.
    """

    async def enforce_rate_limit(request: Request) -> None:
        if not settings.rate_limit.enabled:
            return

        registry: RateLimiterRegistry = request.app.state.rate_limiters
        policy = registry.get(quota)

        result = policy.is_allowed(request)
        key_hash = _hash_limiter_key(result.key)

        if result.allowed:
            logger.info(
                "rate_limit.allowed",
                extra={
                    "quota": quota,
                    "key_hash": key_hash,
                    "limit": result.limit,
                    "remaining": result.remaining,
                    "window_ms": policy.config.window_ms,
                },
            )
            return

        logger.warning(
            "rate_limit.exceeded",
            extra={
                "quota": quota,
                "key_hash": key_hash,
                "limit": result.limit,
                "remaining": result.remaining,
                "window_ms": policy.config.window_ms,
                "reset_time": result.reset_time,
                "path": request.url.path,
            },
        )
        raise RateLimitExceededError(result, quota=quota)

    enforce_rate_limit.__name__ = f"enforce_{quota}_rate_limit"
    return enforce_rate_limit
