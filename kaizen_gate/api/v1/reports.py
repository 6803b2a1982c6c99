import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from kaizen_gate.api.deps import (
    get_database,
    get_db,
    get_login_service,
    get_optional_claims,
    get_resolver,
)
from kaizen_gate.api.helpers import license_for_prefix, require_prefix, resolve_prefix_license
from kaizen_gate.api.v1.license import run_login
from kaizen_gate.core.security import SessionClaims
from kaizen_gate.db.session import Database
from kaizen_gate.models.license import License
from kaizen_gate.models.report import Report
from kaizen_gate.schemas.license import LicenseLoginRequest
from kaizen_gate.schemas.report import (
    ClientOut,
    ClientReportsResponse,
    LicenseStatusOut,
    ReportOut,
    ReportUrlResponse,
)
from kaizen_gate.services.license_resolver import LicenseResolver, STATUS_OK
from kaizen_gate.services.login_service import LoginService
from kaizen_gate.services.report_access import (
    client_view,
    get_client,
    list_reports,
    resolve_code,
    resolve_home,
)

logger = logging.getLogger("kaizen.api.reports")

router = APIRouter()


def _report_out(report: Report) -> ReportOut:
    return ReportOut(code=report.code, name=report.name, is_default=bool(report.is_default), url=report.embed_url)


async def _client_reports(
    db: AsyncSession,
    prefix: str,
    license: License,
    license_status: str,
) -> ClientReportsResponse:
    client = await get_client(db, prefix)
    expiry = license.expiry_view()
    response = ClientReportsResponse(
        client=ClientOut(**client_view(client, prefix)),
        license=LicenseStatusOut(
            status=license_status,
            expiry_date=expiry["expiryDate"],
            expires_at=expiry["expiresAt"],
        ),
    )
    if license_status == STATUS_OK:
        listing = await list_reports(db, license)
        response.reports = [_report_out(r) for r in listing.reports]
        response.default_report_code = listing.default_report_code
    return response


@router.post("/options", response_model=ClientReportsResponse)
async def report_options(
    request: Request,
    payload: LicenseLoginRequest,
    db: AsyncSession = Depends(get_db),
    database: Database = Depends(get_database),
    login_service: LoginService = Depends(get_login_service),
):
    """
    Log in with a license and list the reports it may open.
    The login is audited and throttled exactly like POST /login.
    """
    outcome = await run_login(request, payload, db, database, login_service)
    return await database.run(_client_reports(db, outcome.prefix, outcome.license, STATUS_OK))


@router.get("/home", response_model=ReportUrlResponse)
async def home_report(
    prefix: Optional[str] = Query(default=None),
    db: AsyncSession = Depends(get_db),
    database: Database = Depends(get_database),
    resolver: LicenseResolver = Depends(get_resolver),
    claims: Optional[SessionClaims] = Depends(get_optional_claims),
):
    """Embed URL of the default report for a client prefix."""
    prefix = require_prefix(prefix)

    async def _resolve() -> Report:
        license = await license_for_prefix(db, resolver, prefix, claims)
        return await resolve_home(db, license)

    report = await database.run(_resolve())
    return ReportUrlResponse(url=report.embed_url, report_code=report.code)


@router.get("/client-info", response_model=ClientReportsResponse)
async def client_info(
    prefix: Optional[str] = Query(default=None),
    db: AsyncSession = Depends(get_db),
    database: Database = Depends(get_database),
    resolver: LicenseResolver = Depends(get_resolver),
    claims: Optional[SessionClaims] = Depends(get_optional_claims),
):
    """
    Client name, license status and visible reports for a prefix.

    A license that is no longer usable is reported in ``license.status`` with an
    empty report list rather than as an error.
    """
    prefix = require_prefix(prefix)

    async def _describe() -> ClientReportsResponse:
        resolution = await resolve_prefix_license(db, resolver, prefix, claims)
        return await _client_reports(db, prefix, resolution.license, resolution.status)

    return await database.run(_describe())


@router.get("/{code}", response_model=ReportUrlResponse)
async def report_by_code(
    code: str,
    prefix: Optional[str] = Query(default=None),
    db: AsyncSession = Depends(get_db),
    database: Database = Depends(get_database),
    resolver: LicenseResolver = Depends(get_resolver),
    claims: Optional[SessionClaims] = Depends(get_optional_claims),
):
    """Embed URL of one report, if the license can see it. HOME resolves the default report."""
    prefix = require_prefix(prefix)

    async def _resolve() -> Report:
        license = await license_for_prefix(db, resolver, prefix, claims)
        return await resolve_code(db, license, code.strip())

    report = await database.run(_resolve())
    return ReportUrlResponse(url=report.embed_url, report_code=report.code)
