"""Application-level exception types.

This module defines domain errors raised by the HTTP layer, enabling
consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, TypedDict

if TYPE_CHECKING:
    from myride.services.admission import AdmissionResult


class ErrorDetails(TypedDict, total=False):
    """Structured error context returned to clients."""

    hint: str
    quota: str


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class RateLimitExceededError(AppError):
    """Raised by the HTTP layer to short-circuit a throttled request.

    The admission policy itself reports denials as return values; this
    exception only exists so a FastAPI dependency can stop the route body
    from running. The registered handler renders it as a 429 response.
    """

    def __init__(self, result: "AdmissionResult", *, quota: str) -> None:
        super().__init__(
            code="rate_limit_exceeded",
            message="Too many requests",
            details={"quota": quota},
        )
        self.result = result
        self.quota = quota
