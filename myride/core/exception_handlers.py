"""Global exception handlers for consistent error responses.

Design:
- RateLimitExceededError → 429 built by the rate limit response formatter
- Other AppError → 400 with a structured ``error`` object
- Unexpected Exception → generic 500 (safety net)
- Error objects include request_id for tracing
- The 500 response carries the correlation and hardening headers itself
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from myride.core.config import settings
from myride.core.errors import AppError, RateLimitExceededError
from myride.core.logging import get_request_id
from myride.core.middleware import apply_security_headers
from myride.services.rate_limit_response import format_denial

logger = logging.getLogger(__name__)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceededError) -> JSONResponse:
    """Render a throttled request as the standardized 429 response.

    The body is ``{"error": "Too many requests", "retryAfter": <seconds>}``
    with X-RateLimit-Remaining, X-RateLimit-Reset and Retry-After headers.
    The retry delay is measured from the moment the policy denied the request.
    """
    result = exc.result
    return format_denial(result.remaining, result.reset_time, now=result.checked_at)


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle domain application errors with consistent JSON format.

    Responses carry:
    - error.code: Machine-readable error code
    - error.message: Human-readable message
    - error.request_id: For distributed tracing
    - error.details: Optional structured context
    """
    status_code = 400

    logger.warning(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "has_details": bool(exc.details),
            "request_id": get_request_id(),
        },
    )

    error_content = {
        "code": exc.code,
        "message": exc.message,
        "request_id": get_request_id(),
    }
    if exc.details:
        error_content["details"] = exc.details

    return JSONResponse(
        status_code=status_code,
        content={"error": error_content},
    )


def _current_request_id(request: Request) -> str | None:
    # request_id_middleware clears the contextvar before ServerErrorMiddleware
    # calls the 500 handler, so fall back to the id stashed on request.state
    return get_request_id() or getattr(request.state, "request_id", None)


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors (safety net).

    Logs the failure for debugging while returning a generic message, so no
    stack traces or internal details reach the client.

    Starlette runs this handler in ServerErrorMiddleware, outside every
    ``app.middleware("http")`` layer, so the correlation header and the
    hardening headers are attached here.
    """
    request_id = _current_request_id(request)

    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
            "request_id": request_id,
        },
    )

    response = JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
                "request_id": request_id,
            }
        },
    )
    if request_id:
        response.headers[settings.log.request_id_header] = request_id
    if settings.app.security_headers_enabled:
        apply_security_headers(response.headers)
    return response


def setup_exception_handlers(app) -> None:
    """Register all exception handlers with FastAPI app.

    Starlette resolves handlers by walking the exception's MRO, so the
    RateLimitExceededError handler wins over the AppError one.
    """
    app.exception_handler(RateLimitExceededError)(rate_limit_exceeded_handler)
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
