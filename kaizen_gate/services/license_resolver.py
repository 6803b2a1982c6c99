"""
License resolution: canonicalize, hash, look up and classify a presented license.

Expected outcomes are returned as LicenseResolution values; only store failures raise.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from kaizen_gate.core.license import canonicalize_license, extract_prefix, hash_license
from kaizen_gate.models.license import License, STATUS_ACTIVE, STATUS_EXPIRED

logger = logging.getLogger("kaizen.license_resolver")

STATUS_OK = "ok"
STATUS_MISSING = "missing-license"
STATUS_INVALID = "invalid-license"
STATUS_NOT_FOUND = "mismatch_or_not_found"


@dataclass
class LicenseResolution:
    status: str
    license: Optional[License] = None
    prefix: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK


class LicenseResolver:
    """Classifies raw license strings against the credential store."""

    def __init__(self, pepper: str):
        self._pepper = pepper

    def digest(self, canonical: str) -> str:
        return hash_license(canonical, self._pepper)

    async def resolve(
        self,
        db: AsyncSession,
        raw_license: Optional[str],
        now: Optional[datetime] = None,
    ) -> LicenseResolution:
        """
        Classify a raw license string.

        Order of checks:
          1. malformed -> invalid-license (no store access)
          2. no row for the hash, or stored prefix != parsed prefix -> mismatch_or_not_found
          3. stored status other than active -> that status verbatim
          4. active but past expiry -> flip to expired, return expired
          5. otherwise ok
        """
        if not isinstance(raw_license, str) or not raw_license.strip():
            return LicenseResolution(status=STATUS_MISSING)

        canonical = canonicalize_license(raw_license)
        if canonical is None:
            return LicenseResolution(status=STATUS_INVALID)
        prefix = extract_prefix(canonical)

        result = await db.execute(
            select(License)
            .where(License.license_hash == self.digest(canonical))
            .order_by(License.created_at.desc(), License.id.desc())
            .limit(1)
        )
        record = result.scalar_one_or_none()

        if record is None or record.prefix != prefix:
            return LicenseResolution(status=STATUS_NOT_FOUND, prefix=prefix)

        status = await self.classify(db, record, now)
        return LicenseResolution(status=status, license=record, prefix=prefix)

    async def check_license(
        self,
        db: AsyncSession,
        license_id: int,
        prefix: str,
        now: Optional[datetime] = None,
    ) -> LicenseResolution:
        """Classify a license already identified by id (refresh, prefix-scoped lookups)."""
        record = await db.get(License, license_id)
        if record is None or record.prefix != prefix:
            return LicenseResolution(status=STATUS_NOT_FOUND, prefix=prefix)
        status = await self.classify(db, record, now)
        return LicenseResolution(status=status, license=record, prefix=prefix)

    async def classify(self, db: AsyncSession, record: License, now: Optional[datetime] = None) -> str:
        if record.status != STATUS_ACTIVE:
            return record.status
        if record.is_past_expiry(now):
            await self.mark_expired(db, record)
            return STATUS_EXPIRED
        return STATUS_OK

    async def mark_expired(self, db: AsyncSession, record: License) -> None:
        """
        Lazy expiry flip. Guarded on status='active', so repeating it, or racing
        another request doing the same, leaves the row unchanged.
        The caller's transaction commits it.
        """
        result = await db.execute(
            update(License)
            .where(License.id == record.id, License.status == STATUS_ACTIVE)
            .values(status=STATUS_EXPIRED)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            logger.info(f"License {record.id} ({record.prefix}) marked expired")
        # Reflect the flip on the loaded row without scheduling a second UPDATE
        set_committed_value(record, "status", STATUS_EXPIRED)
