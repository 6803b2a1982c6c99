import logging
from calendar import timegm
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from kaizen_gate.api.deps import (
    get_client_ip,
    get_database,
    get_db,
    get_login_service,
    get_user_agent,
)
from kaizen_gate.api.helpers import raise_for_outcome
from kaizen_gate.db.session import Database
from kaizen_gate.schemas.license import (
    LicenseLoginRequest,
    LicenseLoginResponse,
    LicenseValidateResponse,
)
from kaizen_gate.services.login_service import LoginOutcome, LoginService

logger = logging.getLogger("kaizen.api.license")

router = APIRouter()


async def run_login(
    request: Request,
    payload: LicenseLoginRequest,
    db: AsyncSession,
    database: Database,
    login_service: LoginService,
    edge_request_id: Optional[str] = None,
) -> LoginOutcome:
    """Authenticate a browser-facing login and raise on any non-ok outcome."""
    outcome = await database.run(
        login_service.authenticate(
            db,
            payload.license,
            client_ip=get_client_ip(request),
            user_agent=get_user_agent(request),
            edge_request_id=edge_request_id or request.headers.get("X-Request-ID"),
        )
    )
    raise_for_outcome(outcome)
    return outcome


async def license_login(
    request: Request,
    payload: LicenseLoginRequest,
    db: AsyncSession = Depends(get_db),
    database: Database = Depends(get_database),
    login_service: LoginService = Depends(get_login_service),
) -> LicenseLoginResponse:
    """
    Log in with a license string.

    Returns 200 with the client prefix; 400 for a missing or malformed license,
    401 for mismatch/expired/revoked, 429 while the (prefix, ip) pair is locked.
    """
    outcome = await run_login(request, payload, db, database, login_service)
    return LicenseLoginResponse(prefix=outcome.prefix)


# Registered under both paths; same handler, same audit trail.
for _path in ("/login", "/license/login"):
    router.add_api_route(
        _path,
        license_login,
        methods=["POST"],
        response_model=LicenseLoginResponse,
        name=f"license_login{_path.replace('/', '_')}",
    )


@router.post("/license/validate", response_model=LicenseValidateResponse)
async def validate_license(
    request: Request,
    payload: LicenseLoginRequest,
    db: AsyncSession = Depends(get_db),
    database: Database = Depends(get_database),
    login_service: LoginService = Depends(get_login_service),
):
    """
    Same checks as login, plus the license expiry as a millisecond epoch (null if it never expires).
    """
    outcome = await run_login(request, payload, db, database, login_service)
    expires_at = outcome.license.expires_at if outcome.license is not None else None
    exp = None
    if expires_at is not None:
        exp = timegm(expires_at.utctimetuple()) * 1000
    return LicenseValidateResponse(prefix=outcome.prefix, exp=exp)
