"""
Service-to-service endpoints called by the edge only.

Every request must carry an HMAC-SHA256 signature of its exact body bytes.
The body is parsed after the signature check, so unsigned requests never
reach validation or the store.
"""

import logging
from typing import Type, TypeVar

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from kaizen_gate.api.deps import (
    get_database,
    get_db,
    get_login_service,
    get_resolver,
    get_settings,
    verify_edge_signature,
)
from kaizen_gate.api.helpers import raise_for_outcome
from kaizen_gate.core.config import Settings
from kaizen_gate.core.errors import GateError
from kaizen_gate.core.security import (
    SessionClaims,
    TOKEN_TYPE_REFRESH,
    TokenPair,
    create_token_pair,
    decode_token,
)
from kaizen_gate.db.session import Database
from kaizen_gate.schemas.token import (
    Claims,
    InternalLoginRequest,
    InternalRefreshRequest,
    InternalTokenResponse,
    Tokens,
)
from kaizen_gate.services.license_resolver import LicenseResolution, LicenseResolver
from kaizen_gate.services.login_service import LoginService

logger = logging.getLogger("kaizen.api.internal")

router = APIRouter(dependencies=[Depends(verify_edge_signature)])

REFRESH_FAILED = "refresh-failed"

M = TypeVar("M", bound=BaseModel)


async def _parse_body(request: Request, model: Type[M]) -> M:
    try:
        return model.model_validate_json(await request.body())
    except ValidationError:
        raise GateError(status.HTTP_400_BAD_REQUEST, "bad-request")


def _token_response(prefix: str, claims: SessionClaims, pair: TokenPair) -> InternalTokenResponse:
    return InternalTokenResponse(
        prefix=prefix,
        claims=Claims(sub=claims.sub, tenant_id=claims.tenant_id, scope=list(claims.scope)),
        tokens=Tokens(access_token=pair.access_token, refresh_token=pair.refresh_token),
        access_ttl=pair.access_ttl,
        refresh_ttl=pair.refresh_ttl,
    )


@router.post("/license/login", response_model=InternalTokenResponse)
async def internal_license_login(
    request: Request,
    db: AsyncSession = Depends(get_db),
    database: Database = Depends(get_database),
    login_service: LoginService = Depends(get_login_service),
    config: Settings = Depends(get_settings),
):
    """
    License login on behalf of the edge.

    The browser's IP, user agent and edge request id arrive in ``meta`` and are
    what the lockout key and audit row record. On success a fresh access and
    refresh token pair is minted for the license.
    """
    payload = await _parse_body(request, InternalLoginRequest)
    outcome = await database.run(
        login_service.authenticate(
            db,
            payload.license,
            client_ip=payload.meta.client_ip,
            user_agent=payload.meta.user_agent,
            edge_request_id=payload.meta.edge_request_id,
        )
    )
    raise_for_outcome(outcome)

    claims = SessionClaims(sub=str(outcome.license.id), tenant_id=outcome.prefix)
    return _token_response(outcome.prefix, claims, create_token_pair(claims, config))


@router.post("/refresh", response_model=InternalTokenResponse)
async def internal_refresh(
    request: Request,
    db: AsyncSession = Depends(get_db),
    database: Database = Depends(get_database),
    resolver: LicenseResolver = Depends(get_resolver),
    config: Settings = Depends(get_settings),
):
    """
    Exchange a refresh token for a new pair.

    The license behind the token is re-checked, so a revoked or expired license
    stops refreshing even though its refresh token is still valid.
    """
    payload = await _parse_body(request, InternalRefreshRequest)
    claims = decode_token(payload.refresh_token, TOKEN_TYPE_REFRESH, config)
    if claims is None or claims.license_id is None:
        raise GateError(status.HTTP_401_UNAUTHORIZED, REFRESH_FAILED)

    async def _check() -> LicenseResolution:
        resolution = await resolver.check_license(db, claims.license_id, claims.tenant_id)
        await db.commit()
        return resolution

    resolution = await database.run(_check())
    if not resolution.ok:
        logger.info(f"Refresh refused for license {claims.sub} ({claims.tenant_id}): {resolution.status}")
        raise GateError(status.HTTP_401_UNAUTHORIZED, REFRESH_FAILED, reason=resolution.status)

    fresh = SessionClaims(sub=claims.sub, tenant_id=claims.tenant_id, scope=claims.scope)
    return _token_response(claims.tenant_id, fresh, create_token_pair(fresh, config))
