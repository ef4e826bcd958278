"""HTTP middleware for request correlation and response hardening.

``request_id_middleware`` gives every request/response pair a correlation id:
- Accepts the incoming X-Request-ID header or generates a UUID
- Stores it in contextvars so logs emitted during the request carry it
- Echoes it on the response along with the total request duration

``security_headers_middleware`` attaches the browser hardening headers the
payment pages rely on (CSP allowing Stripe, no framing, no sniffing).

Usage:
    app.middleware("http")(request_id_middleware)
    app.middleware("http")(security_headers_middleware)
"""

from __future__ import annotations

import time
import uuid

from fastapi import Request, Response
from starlette.datastructures import MutableHeaders

from myride.core.config import settings
from myride.core.logging import clear_request_id, set_request_id

CONTENT_SECURITY_POLICY = (
    "default-src 'self'; "
    "script-src 'self' 'unsafe-inline' https://js.stripe.com; "
    "style-src 'self' 'unsafe-inline'; "
    "img-src 'self' data: https:; "
    "connect-src 'self' https://api.stripe.com; "
    "frame-src https://js.stripe.com https://hooks.stripe.com;"
)

SECURITY_HEADERS: dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
    "Content-Security-Policy": CONTENT_SECURITY_POLICY,
}


def apply_security_headers(headers: MutableHeaders) -> None:
    """Set hardening headers without overriding values a route already chose."""

    for name, value in SECURITY_HEADERS.items():
        headers.setdefault(name, value)


async def request_id_middleware(request: Request, call_next) -> Response:
    """HTTP middleware for request ID generation and propagation.

    If the client provides the correlation header (``LOG_REQUEST_ID_HEADER``,
    default X-Request-ID) that value is used, otherwise a UUID is generated.

    Side Effects:
        - Sets request_id in contextvars (accessible via get_request_id())
          and on ``request.state.request_id``
        - Clears request_id from contextvars after request completes
        - Adds the correlation header and X-Request-Duration-ms to the response
    """

    header_name = settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    # The 500 handler runs after the finally below, outside this middleware
    request.state.request_id = request_id
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
    finally:
        clear_request_id()

    duration_ms = (time.perf_counter() - start) * 1000
    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response


async def security_headers_middleware(request: Request, call_next) -> Response:
    """Attach SECURITY_HEADERS to every response when enabled in settings."""

    response: Response = await call_next(request)
    if settings.app.security_headers_enabled:
        apply_security_headers(response.headers)
    return response
