"""
Report visibility for a validated license.

Allow-all licenses see every active report of their client prefix; all others
see only active reports explicitly granted to the license id. Ordering is
default-flagged first, then by name (then code), so the listing and the
default fallback are deterministic.
"""

from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fastapi import status

from kaizen_gate.core.errors import GateError
from kaizen_gate.models.client import Client
from kaizen_gate.models.license import License
from kaizen_gate.models.report import Report, ReportGrant

HOME = "HOME"

STATUS_NO_DEFAULT = "no_default"
STATUS_REPORT_NOT_FOUND = "report_not_found"
STATUS_CLIENT_NOT_FOUND = "not_found"


@dataclass
class ReportListing:
    reports: list[Report] = field(default_factory=list)
    default_report_code: Optional[str] = None


def _visible_reports_query(license: License):
    ordering = (Report.is_default.desc(), Report.name.asc(), Report.code.asc())
    if license.allow_all_reports:
        return (
            select(Report)
            .where(Report.client_prefix == license.prefix, Report.is_active.is_(True))
            .order_by(*ordering)
        )
    return (
        select(Report)
        .join(ReportGrant, ReportGrant.report_id == Report.id)
        .where(
            ReportGrant.license_id == license.id,
            Report.client_prefix == license.prefix,
            Report.is_active.is_(True),
        )
        .order_by(*ordering)
    )


async def list_reports(db: AsyncSession, license: License) -> ReportListing:
    """
    Reports visible to a license, plus the code the UI should open first:
    the default-flagged report, else the first one in order.
    """
    result = await db.execute(_visible_reports_query(license))
    reports = list(result.scalars().all())

    default = next((r for r in reports if r.is_default), None)
    if default is None and reports:
        default = reports[0]
    return ReportListing(reports=reports, default_report_code=default.code if default else None)


async def resolve_home(db: AsyncSession, license: License) -> Report:
    """Default-flagged visible report; no fallback here."""
    listing = await list_reports(db, license)
    for report in listing.reports:
        if report.is_default:
            return report
    raise GateError(status.HTTP_404_NOT_FOUND, STATUS_NO_DEFAULT)


async def resolve_code(db: AsyncSession, license: License, code: str) -> Report:
    """
    Visible report by code. Reports outside the license's grant are reported
    exactly like codes that do not exist.
    """
    if not code:
        raise GateError(status.HTTP_400_BAD_REQUEST, STATUS_REPORT_NOT_FOUND)
    if code.upper() == HOME:
        return await resolve_home(db, license)

    listing = await list_reports(db, license)
    for report in listing.reports:
        if report.code == code:
            return report
    raise GateError(status.HTTP_400_BAD_REQUEST, STATUS_REPORT_NOT_FOUND)


async def find_client_license(db: AsyncSession, prefix: str) -> Optional[License]:
    """Most recently issued license for a client prefix, whatever its status."""
    result = await db.execute(
        select(License)
        .where(License.prefix == prefix)
        .order_by(License.created_at.desc(), License.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_client(db: AsyncSession, prefix: str) -> Optional[Client]:
    return await db.get(Client, prefix)


def client_view(client: Optional[Client], prefix: str) -> dict:
    if client is None:
        return {"prefix": prefix, "name": prefix}
    return client.as_dict()


def report_view(report: Report) -> dict:
    return {
        "code": report.code,
        "name": report.name,
        "isDefault": bool(report.is_default),
        "url": report.embed_url,
    }
