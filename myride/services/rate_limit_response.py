"""Build the standardized 429 response for a denied request."""

from __future__ import annotations

import math

from fastapi import status
from fastapi.responses import JSONResponse

from myride.schemas.rate_limit import RateLimitErrorBody
from myride.services.admission import now_ms


def retry_after_seconds(reset_time: int, now: int) -> int:
    """Seconds until ``reset_time``, rounded up and clamped at zero.

    Args:
        reset_time: Window reset, epoch milliseconds.
        now: Current time, epoch milliseconds.
    """

    return max(0, math.ceil((reset_time - now) / 1000))


def format_denial(remaining: int, reset_time: int, *, now: int | None = None) -> JSONResponse:
    """Translate a denial into a 429 response with retry metadata.

    All headers are derived from the arguments; nothing here reads limiter
    state.

    Args:
        remaining: Remaining quota reported by the policy (0 on denial).
        reset_time: Epoch milliseconds when the window resets.
        now: Current epoch milliseconds; wall clock when omitted.

    Returns:
        JSONResponse with status 429, ``{"error", "retryAfter"}`` body and
        ``X-RateLimit-Remaining``, ``X-RateLimit-Reset``, ``Retry-After``
        headers.
    """

    current = now_ms() if now is None else now
    retry_after = retry_after_seconds(reset_time, current)
    body = RateLimitErrorBody(retryAfter=retry_after)

    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content=body.model_dump(),
        headers={
            "X-RateLimit-Remaining": str(remaining),
            "X-RateLimit-Reset": str(reset_time),
            "Retry-After": str(retry_after),
        },
    )
