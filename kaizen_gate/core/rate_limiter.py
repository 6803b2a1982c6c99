"""
Request rate limiting for the edge's /auth routes.
Uses SlowAPI with per-instance in-memory storage, keyed by client IP.
"""

import logging

from fastapi import Request
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from kaizen_gate.core.config import Settings, settings
from kaizen_gate.core.security import hash_client_ip

logger = logging.getLogger("kaizen.rate_limiter")

RATE_LIMITED = "rate-limited"


def get_real_client_ip(request: Request) -> str:
    """
    Get the real client IP, accounting for reverse proxies.
    Checks X-Forwarded-For header first, then falls back to direct IP.
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # First entry is the original client
        return forwarded_for.split(",")[0].strip()

    # nginx
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    return get_remote_address(request) or "unknown"


limiter = Limiter(
    key_func=get_real_client_ip,
    enabled=settings.RATE_LIMIT_ENABLED,
    strategy="fixed-window",
    headers_enabled=True,
)

_edge_auth_limit = settings.EDGE_AUTH_RATE_LIMIT


def edge_auth_limit() -> str:
    """Per-IP limit of the edge /auth routes, read on every request."""
    return _edge_auth_limit


def configure_limiter(config: Settings) -> Limiter:
    """Apply an app's settings to the shared limiter. Called by the edge composition root."""
    global _edge_auth_limit
    limiter.enabled = config.RATE_LIMIT_ENABLED
    _edge_auth_limit = config.EDGE_AUTH_RATE_LIMIT
    logger.info(
        f"Edge request limit {_edge_auth_limit} per client IP"
        if limiter.enabled else "Edge request limiting disabled"
    )
    return limiter


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """
    Custom handler for rate limit exceeded errors.
    Answers with the common error envelope and a Retry-After header.
    """
    logger.warning(
        f"Rate limit exceeded for client {hash_client_ip(get_real_client_ip(request))[:12]} "
        f"on {request.method} {request.url.path}"
    )

    try:
        retry_after = int(exc.limit.limit.get_expiry())
    except AttributeError:
        retry_after = 60

    return JSONResponse(
        status_code=429,
        content={"status": RATE_LIMITED, "error": RATE_LIMITED, "retryAfter": retry_after},
        headers={"Retry-After": str(retry_after)},
    )
