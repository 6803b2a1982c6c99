"""
License login orchestration: lockout check, license classification and the
audit trail, committed together as one transaction.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from kaizen_gate.core.license import canonicalize_license, extract_prefix
from kaizen_gate.core.security import hash_client_ip
from kaizen_gate.models.license import License
from kaizen_gate.models.login_audit import LoginAudit, OUTCOME_FAILED, OUTCOME_SUCCESS
from kaizen_gate.services.license_resolver import (
    LicenseResolver,
    STATUS_INVALID,
    STATUS_MISSING,
    STATUS_OK,
)
from kaizen_gate.services.login_throttle import LoginThrottleStore, STATUS_RATE_LIMITED

logger = logging.getLogger("kaizen.login")

USER_AGENT_MAX_LENGTH = 255


@dataclass
class LoginOutcome:
    status: str
    prefix: Optional[str] = None
    license: Optional[License] = None
    retry_until: Optional[datetime] = None

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK


class LoginService:
    """
    Authenticates license logins.

    Composed with a LicenseResolver and a LoginThrottleStore by the service's
    composition root; holds no per-request state.
    """

    def __init__(self, resolver: LicenseResolver, throttle: LoginThrottleStore):
        self.resolver = resolver
        self.throttle = throttle

    async def authenticate(
        self,
        db: AsyncSession,
        raw_license: Optional[str],
        client_ip: Optional[str],
        user_agent: Optional[str],
        edge_request_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> LoginOutcome:
        """
        Run one login attempt.

        Input errors (missing or malformed license) return before any store access.
        Otherwise the lockout check, the lazy expiry flip, the last-used touch
        and exactly one audit row are committed in a single transaction. A locked
        (prefix, ip) pair gets rate-limited whatever the license would have resolved to.
        """
        if not isinstance(raw_license, str) or not raw_license.strip():
            return LoginOutcome(status=STATUS_MISSING)
        canonical = canonicalize_license(raw_license)
        if canonical is None:
            return LoginOutcome(status=STATUS_INVALID)

        now = now or datetime.utcnow()
        prefix = extract_prefix(canonical)
        ip_hash = hash_client_ip(client_ip)

        try:
            admitted, locked_until = await self.throttle.admit(db, prefix, ip_hash, now)
            if not admitted:
                self.record_audit(
                    db, prefix=prefix, license_id=None, status=STATUS_RATE_LIMITED,
                    ip_hash=ip_hash, user_agent=user_agent, edge_request_id=edge_request_id, now=now,
                )
                await db.commit()
                return LoginOutcome(status=STATUS_RATE_LIMITED, prefix=prefix, retry_until=locked_until)

            resolution = await self.resolver.resolve(db, canonical, now)
            record = resolution.license

            if resolution.ok:
                await db.execute(
                    update(License)
                    .where(License.id == record.id)
                    .values(last_used_at=now)
                    .execution_options(synchronize_session=False)
                )

            self.record_audit(
                db, prefix=prefix, license_id=record.id if record is not None else None,
                status=resolution.status, ip_hash=ip_hash, user_agent=user_agent,
                edge_request_id=edge_request_id, now=now,
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        if resolution.ok:
            logger.info(f"License login ok for prefix {prefix} (license {record.id})")
        else:
            logger.info(f"License login rejected for prefix {prefix}: {resolution.status}")
        return LoginOutcome(status=resolution.status, prefix=prefix, license=record)

    @staticmethod
    def record_audit(
        db: AsyncSession,
        prefix: Optional[str],
        license_id: Optional[int],
        status: str,
        ip_hash: str,
        user_agent: Optional[str],
        edge_request_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> LoginAudit:
        """Stage the audit row in the caller's transaction. The only writer of login_audit."""
        entry = LoginAudit(
            prefix=prefix,
            license_id=license_id,
            outcome=OUTCOME_SUCCESS if status == STATUS_OK else OUTCOME_FAILED,
            reason=status,
            ip_hash=ip_hash,
            user_agent=(user_agent or "")[:USER_AGENT_MAX_LENGTH] or None,
            edge_request_id=(edge_request_id or "")[:64] or None,
            created_at=now or datetime.utcnow(),
        )
        db.add(entry)
        return entry
