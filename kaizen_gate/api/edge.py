"""
Browser-facing session endpoints of the edge.

The edge never touches the credential store: logins and refreshes are forwarded
to the auth service over signed internal calls, and the resulting tokens are
held only in httpOnly cookies.
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import JSONResponse

from kaizen_gate.api.deps import get_client_ip, get_settings, get_user_agent
from kaizen_gate.core.config import Settings
from kaizen_gate.core.errors import GateError, error_content
from kaizen_gate.core.rate_limiter import edge_auth_limit, limiter
from kaizen_gate.core.security import TOKEN_TYPE_ACCESS, decode_token
from kaizen_gate.schemas.license import LicenseLoginRequest
from kaizen_gate.schemas.token import SessionResponse, SessionUser
from kaizen_gate.services.auth_client import AuthResponse, AuthServiceClient

logger = logging.getLogger("kaizen.edge")

router = APIRouter()

NO_SESSION = "no-session"
REFRESH_FAILED = "refresh-failed"


def get_auth_client(request: Request) -> AuthServiceClient:
    return request.app.state.auth_client


def _cookie_domain(config: Settings, name: str) -> Optional[str]:
    # __Host- cookies must not carry a Domain attribute
    if name.startswith("__Host-"):
        return None
    return config.JWT_COOKIE_DOMAIN or None


def set_session_cookies(response: Response, config: Settings, payload: dict) -> None:
    """Store the token pair from an auth-service reply in httpOnly cookies."""
    tokens = payload.get("tokens") or {}
    lifetimes = (
        (config.COOKIE_NAME_ACCESS, tokens.get("accessToken"),
         int(payload.get("accessTtl") or config.ACCESS_TOKEN_TTL_SECONDS)),
        (config.COOKIE_NAME_REFRESH, tokens.get("refreshToken"),
         int(payload.get("refreshTtl") or config.REFRESH_TOKEN_TTL_SECONDS)),
    )
    for name, value, ttl in lifetimes:
        if not value:
            raise GateError(status.HTTP_502_BAD_GATEWAY, "bad-auth-response")
        response.set_cookie(
            key=name,
            value=value,
            max_age=ttl,
            path="/",
            domain=_cookie_domain(config, name),
            secure=config.JWT_COOKIE_SECURE,
            httponly=True,
            samesite=config.JWT_COOKIE_SAMESITE.lower(),
        )


def clear_session_cookies(response: Response, config: Settings) -> None:
    for name in (config.COOKIE_NAME_ACCESS, config.COOKIE_NAME_REFRESH):
        response.delete_cookie(
            key=name,
            path="/",
            domain=_cookie_domain(config, name),
            secure=config.JWT_COOKIE_SECURE,
            httponly=True,
            samesite=config.JWT_COOKIE_SAMESITE.lower(),
        )


def _relay(result: AuthResponse) -> JSONResponse:
    """Pass a non-ok auth-service reply through with its status code and envelope."""
    payload = dict(result.payload)
    status_value = payload.get("status") or payload.get("error") or "login-failed"
    payload.update(status=status_value, error=status_value)
    status_code = result.status_code if result.status_code >= 400 else status.HTTP_502_BAD_GATEWAY
    headers = {"Retry-After": result.retry_after} if result.retry_after else None
    return JSONResponse(status_code=status_code, content=payload, headers=headers)


@limiter.limit(edge_auth_limit)
async def edge_license_login(
    request: Request,
    response: Response,
    payload: LicenseLoginRequest,
    config: Settings = Depends(get_settings),
    auth_client: AuthServiceClient = Depends(get_auth_client),
):
    """
    Forward a license login to the auth service.

    On success both session cookies are set and the body is ``{status: "ok", prefix}``.
    Any other reply is relayed with the auth service's status code.
    """
    license = payload.license if isinstance(payload.license, str) else ""
    result = await auth_client.license_login(
        license,
        client_ip=get_client_ip(request),
        user_agent=get_user_agent(request),
        edge_request_id=getattr(request.state, "request_id", None) or uuid.uuid4().hex,
    )
    if not result.ok:
        return _relay(result)

    reply = JSONResponse(status_code=status.HTTP_200_OK, content={"status": "ok", "prefix": result.payload.get("prefix")})
    set_session_cookies(reply, config, result.payload)
    return reply


for _path in ("/license/login", "/login"):
    router.add_api_route(
        _path,
        edge_license_login,
        methods=["POST"],
        name=f"edge_license_login{_path.replace('/', '_')}",
    )


@router.get("/me", response_model=SessionResponse)
@limiter.limit(edge_auth_limit)
async def me(
    request: Request,
    response: Response,
    config: Settings = Depends(get_settings),
    auth_client: AuthServiceClient = Depends(get_auth_client),
):
    """
    Current session.

    The access cookie is verified locally. When it is missing or no longer valid
    and a refresh cookie is present, the pair is refreshed through the auth
    service and both cookies are re-set.
    """
    claims = decode_token(request.cookies.get(config.COOKIE_NAME_ACCESS), TOKEN_TYPE_ACCESS, config)
    if claims is not None:
        return SessionResponse(user=SessionUser(id=claims.sub, tenant_id=claims.tenant_id, scope=claims.scope))

    refresh_token = request.cookies.get(config.COOKIE_NAME_REFRESH)
    if not refresh_token:
        return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content=error_content(NO_SESSION))

    try:
        result = await auth_client.refresh(refresh_token)
    except GateError as exc:
        logger.warning(f"Session refresh could not reach the auth service: {exc.status}")
        result = None

    claims = None
    if result is not None and result.ok:
        access_token = (result.payload.get("tokens") or {}).get("accessToken")
        claims = decode_token(access_token, TOKEN_TYPE_ACCESS, config)
    if claims is None:
        return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content=error_content(REFRESH_FAILED))

    reply = JSONResponse(
        status_code=status.HTTP_200_OK,
        content=SessionResponse(
            user=SessionUser(id=claims.sub, tenant_id=claims.tenant_id, scope=claims.scope)
        ).model_dump(by_alias=True),
    )
    set_session_cookies(reply, config, result.payload)
    return reply


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit(edge_auth_limit)
async def logout(
    request: Request,
    response: Response,
    config: Settings = Depends(get_settings),
):
    """Clear both session cookies. Always 204, with or without a session."""
    reply = Response(status_code=status.HTTP_204_NO_CONTENT)
    clear_session_cookies(reply, config)
    return reply
