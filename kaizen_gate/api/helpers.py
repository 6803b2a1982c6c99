"""
Common API Helper Functions

Status-code mapping for login outcomes and the license lookup shared by the
prefix-scoped report endpoints.
"""

from datetime import datetime
from typing import Optional

from fastapi import status
from sqlalchemy.ext.asyncio import AsyncSession

from kaizen_gate.core.errors import GateError
from kaizen_gate.core.license import normalize_prefix
from kaizen_gate.core.security import SessionClaims
from kaizen_gate.models.license import License
from kaizen_gate.services.license_resolver import (
    LicenseResolution,
    LicenseResolver,
    STATUS_INVALID,
    STATUS_MISSING,
)
from kaizen_gate.services.login_service import LoginOutcome, STATUS_RATE_LIMITED
from kaizen_gate.services.report_access import STATUS_CLIENT_NOT_FOUND, find_client_license

MISSING_PREFIX = "missing-prefix"

_INPUT_ERRORS = {STATUS_MISSING, STATUS_INVALID}


def isoformat_z(value) -> Optional[str]:
    return value.isoformat() + "Z" if value is not None else None


def raise_for_outcome(outcome: LoginOutcome) -> None:
    """
    Map a non-ok login outcome onto the HTTP contract.

    Raises:
        GateError: 400 for input errors, 429 with ``until`` and Retry-After for
            a locked key, 401 for every other authorization outcome
    """
    if outcome.ok:
        return
    if outcome.status in _INPUT_ERRORS:
        raise GateError(status.HTTP_400_BAD_REQUEST, outcome.status)
    if outcome.status == STATUS_RATE_LIMITED:
        headers = None
        if outcome.retry_until is not None:
            seconds = max(1, int((outcome.retry_until - datetime.utcnow()).total_seconds()))
            headers = {"Retry-After": str(seconds)}
        raise GateError(
            status.HTTP_429_TOO_MANY_REQUESTS,
            STATUS_RATE_LIMITED,
            headers=headers,
            until=isoformat_z(outcome.retry_until),
        )
    raise GateError(status.HTTP_401_UNAUTHORIZED, outcome.status)


def require_prefix(prefix: Optional[str]) -> str:
    """Validate the ``prefix`` query parameter; no store access on failure."""
    if not prefix or not prefix.strip():
        raise GateError(status.HTTP_400_BAD_REQUEST, MISSING_PREFIX)
    normalized = normalize_prefix(prefix)
    if normalized is None:
        raise GateError(status.HTTP_400_BAD_REQUEST, "invalid-prefix")
    return normalized


async def resolve_prefix_license(
    db: AsyncSession,
    resolver: LicenseResolver,
    prefix: str,
    claims: Optional[SessionClaims] = None,
) -> LicenseResolution:
    """
    Classify the license behind a prefix-only report call.

    A valid session for the same prefix selects its own license; otherwise the
    most recently issued license of the prefix is used. A lazy expiry flip is
    committed here.

    Raises:
        GateError: 404 ``not_found`` when the prefix has no license
    """
    if claims is not None and claims.tenant_id == prefix and claims.license_id is not None:
        resolution = await resolver.check_license(db, claims.license_id, prefix)
    else:
        record = await find_client_license(db, prefix)
        if record is None:
            raise GateError(status.HTTP_404_NOT_FOUND, STATUS_CLIENT_NOT_FOUND)
        resolution = await resolver.check_license(db, record.id, prefix)

    if resolution.license is None:
        raise GateError(status.HTTP_404_NOT_FOUND, STATUS_CLIENT_NOT_FOUND)
    await db.commit()
    return resolution


async def license_for_prefix(
    db: AsyncSession,
    resolver: LicenseResolver,
    prefix: str,
    claims: Optional[SessionClaims] = None,
) -> License:
    """Like resolve_prefix_license, but a license that is not usable is a 401."""
    resolution = await resolve_prefix_license(db, resolver, prefix, claims)
    if not resolution.ok:
        raise GateError(status.HTTP_401_UNAUTHORIZED, resolution.status)
    return resolution.license
