"""Application factory for the FastAPI app.

Centralizes app construction (logging, middleware, handlers, routers and the
named rate limiters) so tests can build isolated instances.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.api.routes import health_router
from app.core.config import settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import request_id_middleware
from app.core.rate_limit import RateLimiters, build_rate_limiters

logger = logging.getLogger(__name__)


def create_app(rate_limiters: RateLimiters | None = None) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        rate_limiters: Pre-built limiters (tests); built from settings when
            omitted. They are exposed as ``app.state.rate_limiters`` and
            closed when the application shuts down.

    Returns:
        Configured FastAPI app with middleware, handlers and routers.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    limiters = rate_limiters or build_rate_limiters(settings.rate_limit)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("app.startup", extra={"app_env": settings.app_env})
        try:
            yield
        finally:
            limiters.close()
            logger.info("app.shutdown")

    app = FastAPI(
        title=settings.app.name,
        description=(
            "EduScope university academic portal API. Endpoints are grouped in "
            "rate limited families (general, auth, upload, admin, search, "
            "download); throttled requests receive HTTP 429 with Retry-After "
            "and X-RateLimit-* headers."
        ),
        version=settings.app.version,
        debug=settings.app.debug,
        lifespan=lifespan,
    )
    app.state.rate_limiters = limiters

    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(health_router, prefix="/api")

    return app
