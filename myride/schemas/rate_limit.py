"""Pydantic schemas for throttled responses."""

from __future__ import annotations

from pydantic import BaseModel, Field


class RateLimitErrorBody(BaseModel):
    """Body of a 429 Too Many Requests response."""

    error: str = Field(
        "Too many requests",
        description="Human-readable reason for the rejection.",
    )
    retryAfter: int = Field(
        ...,
        ge=0,
        description="Seconds until the caller's window resets (rounded up).",
    )
