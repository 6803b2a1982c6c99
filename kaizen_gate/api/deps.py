import logging
from typing import AsyncGenerator, Optional

from fastapi import Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from kaizen_gate.core.config import Settings
from kaizen_gate.core.errors import GateError
from kaizen_gate.core.rate_limiter import get_real_client_ip
from kaizen_gate.core.security import SessionClaims, TOKEN_TYPE_ACCESS, decode_token, verify_body_signature
from kaizen_gate.db.session import Database
from kaizen_gate.services.license_resolver import LicenseResolver
from kaizen_gate.services.login_service import LoginService

logger = logging.getLogger("kaizen.deps")

SIGNATURE_HEADER = "X-HMAC-Sign"


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_database(request: Request) -> Database:
    return request.app.state.database


async def get_db(database: Database = Depends(get_database)) -> AsyncGenerator[AsyncSession, None]:
    """One session per request, released on success, business failure and exception alike."""
    async with database.session() as session:
        yield session


def get_login_service(request: Request) -> LoginService:
    return request.app.state.login_service


def get_resolver(request: Request) -> LicenseResolver:
    return request.app.state.login_service.resolver


def get_client_ip(request: Request) -> str:
    return get_real_client_ip(request)[:45]


def get_user_agent(request: Request) -> str:
    return request.headers.get("User-Agent", "")[:255]


def get_optional_claims(
    request: Request,
    config: Settings = Depends(get_settings),
) -> Optional[SessionClaims]:
    """
    Session claims from a Bearer header or the access cookie, when present and valid.
    Absent or invalid tokens are not an error here.
    """
    token = None
    auth_header = request.headers.get("Authorization", "")
    if auth_header.lower().startswith("bearer "):
        token = auth_header.split(" ", 1)[1].strip() or None
    if not token:
        token = request.cookies.get(config.COOKIE_NAME_ACCESS)
    return decode_token(token, TOKEN_TYPE_ACCESS, config)


async def verify_edge_signature(
    request: Request,
    config: Settings = Depends(get_settings),
) -> None:
    """
    Internal endpoints accept only bodies signed by the edge. A mismatch is a hard 401.
    """
    body = await request.body()
    if not verify_body_signature(body, request.headers.get(SIGNATURE_HEADER), config.EDGE_HMAC_SECRET):
        logger.warning(f"Rejected unsigned or mis-signed call to {request.url.path}")
        raise GateError(status.HTTP_401_UNAUTHORIZED, "invalid-signature")
