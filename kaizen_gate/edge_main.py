"""
Edge: the browser-facing session layer in front of the auth service.

Run with ``uvicorn kaizen_gate.edge_main:app``.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CollectorRegistry
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi.errors import RateLimitExceeded

from kaizen_gate import __version__
from kaizen_gate.api.edge import router as edge_router
from kaizen_gate.core.config import Settings, settings as default_settings
from kaizen_gate.core.errors import register_exception_handlers
from kaizen_gate.core.logging_config import RequestLoggingMiddleware, setup_logging
from kaizen_gate.core.middleware import RequestSizeLimitMiddleware, SecurityHeadersMiddleware
from kaizen_gate.core.rate_limiter import configure_limiter, rate_limit_exceeded_handler
from kaizen_gate.services.auth_client import AuthServiceClient

logger = logging.getLogger("kaizen.edge")

SERVICE_NAME = "kaizen-edge"


def create_edge_app(
    config: Optional[Settings] = None,
    auth_client: Optional[AuthServiceClient] = None,
) -> FastAPI:
    """Composition root of the edge. The auth client is closed on shutdown."""
    config = config or default_settings
    auth_client = auth_client or AuthServiceClient(
        base_url=config.AUTH_SERVICE_URL,
        hmac_secret=config.EDGE_HMAC_SECRET,
        timeout=config.AUTH_SERVICE_TIMEOUT_SECONDS,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"{SERVICE_NAME} {__version__} starting, auth service at {auth_client.base_url}")
        try:
            yield
        finally:
            await auth_client.close()
            logger.info(f"{SERVICE_NAME} stopped")

    app = FastAPI(
        title="Kaizen Gate Edge",
        version=__version__,
        docs_url="/docs" if config.DEBUG else None,
        redoc_url="/redoc" if config.DEBUG else None,
        openapi_url="/openapi.json" if config.DEBUG else None,
        lifespan=lifespan,
    )
    app.state.settings = config
    app.state.auth_client = auth_client

    app.state.limiter = configure_limiter(config)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    register_exception_handlers(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-Request-ID"],
    )
    app.add_middleware(SecurityHeadersMiddleware, hsts=config.IS_PRODUCTION)
    app.add_middleware(RequestSizeLimitMiddleware, max_size=config.MAX_REQUEST_BYTES)
    app.add_middleware(RequestLoggingMiddleware, logger_name="kaizen.edge.http")

    app.include_router(edge_router, prefix="/auth", tags=["auth"])

    instrumentator = Instrumentator(
        should_group_status_codes=False,
        should_ignore_untemplated=True,
        should_respect_env_var=True,
        excluded_handlers=["/health", "/metrics"],
        registry=CollectorRegistry(),
    )
    instrumentator.instrument(app).expose(app, include_in_schema=False)

    @app.get("/health")
    async def health_check():
        return {"status": "ok", "service": SERVICE_NAME, "version": __version__}

    return app


setup_logging(service_name=SERVICE_NAME)
app = create_edge_app()
