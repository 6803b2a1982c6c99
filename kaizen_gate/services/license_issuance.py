"""
Out-of-band license issuance. Used by scripts/issue_license.py and test fixtures.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from kaizen_gate.core.license import (
    canonicalize_license,
    extract_prefix,
    generate_license_string,
    hash_license,
    normalize_prefix,
)
from kaizen_gate.models.client import Client
from kaizen_gate.models.license import License, STATUS_ACTIVE

logger = logging.getLogger("kaizen.issuance")


@dataclass
class IssuedLicense:
    license_string: str
    license_id: int
    prefix: str
    expires_at: Optional[datetime]


async def issue_license(
    db: AsyncSession,
    prefix: str,
    pepper: str,
    expires_at: Optional[datetime],
    allow_all_reports: bool = False,
    client_name: Optional[str] = None,
    license_string: Optional[str] = None,
) -> IssuedLicense:
    """
    Create a license row and return the raw license string.

    The raw string is shown exactly once; only its peppered hash is stored.
    The client row is created on first issuance for a prefix.
    """
    normalized = normalize_prefix(prefix)
    if normalized is None:
        raise ValueError("prefix must be 2-6 letters")

    raw = canonicalize_license(license_string) if license_string else generate_license_string(normalized)
    if raw is None or extract_prefix(raw) != normalized:
        raise ValueError("license string is malformed or does not carry the client prefix")

    client = await db.get(Client, normalized)
    if client is None:
        db.add(Client(prefix=normalized, name=client_name or normalized))

    record = License(
        prefix=normalized,
        license_hash=hash_license(raw, pepper),
        status=STATUS_ACTIVE,
        expires_at=expires_at,
        allow_all_reports=allow_all_reports,
        created_at=datetime.utcnow(),
    )
    db.add(record)
    await db.commit()
    await db.refresh(record)

    logger.info(f"Issued license {record.id} for client {normalized}")
    return IssuedLicense(
        license_string=raw,
        license_id=record.id,
        prefix=normalized,
        expires_at=expires_at,
    )
