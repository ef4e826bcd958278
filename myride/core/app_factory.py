"""Application factory for the FastAPI app.

Centralizes app construction (logging, rate limiters, middleware, handlers,
routers) so tests can build isolated instances.
"""

from __future__ import annotations

from fastapi import FastAPI

from myride.api.routes import health_router
from myride.core.config import settings
from myride.core.exception_handlers import setup_exception_handlers
from myride.core.logging import configure_logging
from myride.core.middleware import request_id_middleware, security_headers_middleware
from myride.core.rate_limit import RateLimiterRegistry, build_rate_limiters


def create_app(*, rate_limiters: RateLimiterRegistry | None = None) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        rate_limiters: Admission policies to install; a fresh registry with
            the payment, general and webhook quotas when omitted.

    Returns:
        Configured FastAPI app with middleware, handlers and routers.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title=settings.app.name,
        description=(
            "MyRide backend API. Sensitive routes are protected by per-client "
            "fixed-window quotas and answer 429 with a retryAfter hint when "
            "a quota is exhausted."
        ),
        version="0.1.0",
        debug=settings.app.debug,
    )

    app.state.rate_limiters = rate_limiters if rate_limiters is not None else build_rate_limiters()

    # Registered last runs outermost: request id wraps security headers
    app.middleware("http")(security_headers_middleware)
    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(health_router)

    return app
