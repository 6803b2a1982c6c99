"""
Auth service: license login, report access and the edge's internal token endpoints.

Run with ``uvicorn kaizen_gate.main:app``.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CollectorRegistry
from prometheus_fastapi_instrumentator import Instrumentator
from pydantic import BaseModel

from kaizen_gate import __version__
from kaizen_gate.api.v1 import api_router
from kaizen_gate.core.config import Settings, settings as default_settings
from kaizen_gate.core.errors import register_exception_handlers
from kaizen_gate.core.logging_config import RequestLoggingMiddleware, setup_logging
from kaizen_gate.core.middleware import RequestSizeLimitMiddleware, SecurityHeadersMiddleware
from kaizen_gate.db.session import Database
from kaizen_gate.services.license_resolver import LicenseResolver
from kaizen_gate.services.login_service import LoginService
from kaizen_gate.services.login_throttle import LoginThrottleStore

logger = logging.getLogger("kaizen")

SERVICE_NAME = "kaizen-auth"


class HealthResponse(BaseModel):
    """Health check response format."""
    status: str
    service: str
    version: str
    environment: str
    checks: dict[str, bool]


def build_login_service(config: Settings) -> LoginService:
    return LoginService(
        resolver=LicenseResolver(config.AUTH_PEPPER),
        throttle=LoginThrottleStore(
            max_attempts=config.LOGIN_MAX_ATTEMPTS,
            window_seconds=config.login_window_seconds,
        ),
    )


def create_app(config: Optional[Settings] = None, database: Optional[Database] = None) -> FastAPI:
    """
    Composition root of the auth service.

    A Database handed in by the caller is used as-is and left open on shutdown;
    otherwise one is built from settings at startup and disposed at shutdown.
    """
    config = config or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = getattr(app.state, "database", None) is None
        if owned:
            app.state.database = Database.from_settings(config)
        logger.info(f"{SERVICE_NAME} {__version__} starting ({config.ENVIRONMENT})")
        try:
            yield
        finally:
            if owned:
                await app.state.database.dispose()
                app.state.database = None
            logger.info(f"{SERVICE_NAME} stopped")

    app = FastAPI(
        title="Kaizen Gate Auth Service",
        version=__version__,
        docs_url="/docs" if config.DEBUG else None,  # Disable docs in production
        redoc_url="/redoc" if config.DEBUG else None,
        openapi_url="/openapi.json" if config.DEBUG else None,
        lifespan=lifespan,
    )
    app.state.settings = config
    app.state.database = database
    app.state.login_service = build_login_service(config)

    register_exception_handlers(app)

    # When credentials are needed, we must specify exact origins (not "*")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    )
    app.add_middleware(SecurityHeadersMiddleware, hsts=config.IS_PRODUCTION)
    app.add_middleware(RequestSizeLimitMiddleware, max_size=config.MAX_REQUEST_BYTES)
    app.add_middleware(RequestLoggingMiddleware, logger_name="kaizen.http")

    app.include_router(api_router)

    # Exposes /metrics when ENABLE_METRICS=true
    instrumentator = Instrumentator(
        should_group_status_codes=False,
        should_ignore_untemplated=True,
        should_respect_env_var=True,
        excluded_handlers=["/health", "/metrics"],
        registry=CollectorRegistry(),
    )
    instrumentator.instrument(app).expose(app, include_in_schema=False)

    @app.get("/health", response_model=HealthResponse)
    async def health_check(request: Request):
        """
        Verifies the credential store. Returns 503 when it cannot be reached.
        """
        db_healthy = await request.app.state.database.ping()
        response = HealthResponse(
            status="healthy" if db_healthy else "unhealthy",
            service=SERVICE_NAME,
            version=__version__,
            environment=config.ENVIRONMENT,
            checks={"database": db_healthy},
        )
        if not db_healthy:
            logger.warning("Health check failed: database unreachable")
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content=response.model_dump(),
            )
        return response

    return app


setup_logging(service_name=SERVICE_NAME)
app = create_app()
