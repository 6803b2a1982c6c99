"""
Brute-force lockout accounting keyed by (client prefix, client IP hash).

The failures counted are the login_audit rows of the key inside a trailing
window, so a successful login never erases them. Attempts on one key are
serialized by upserting its login_throttle row first: the row lock is held
until the attempt's own audit row is committed.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.dialects import mysql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from kaizen_gate.models.login_audit import LoginAudit, LoginThrottle, OUTCOME_FAILED

logger = logging.getLogger("kaizen.login_throttle")

# Lockout refusals are audited as failures but never extend the lock.
STATUS_RATE_LIMITED = "rate-limited"


def touch_statement(dialect_name: str, prefix: str, ip_hash: str, now: datetime):
    """INSERT ... ON DUPLICATE KEY / ON CONFLICT for the key's lock row."""
    values = dict(prefix=prefix, ip_hash=ip_hash, last_attempt_at=now)
    if dialect_name == "sqlite":
        stmt = sqlite.insert(LoginThrottle).values(**values)
        return stmt.on_conflict_do_update(
            index_elements=[LoginThrottle.prefix, LoginThrottle.ip_hash],
            set_={"last_attempt_at": stmt.excluded.last_attempt_at},
        )
    stmt = mysql.insert(LoginThrottle).values(**values)
    return stmt.on_duplicate_key_update(last_attempt_at=stmt.inserted.last_attempt_at)


class LoginThrottleStore:
    """Trailing-window lockout over the login audit trail."""

    def __init__(self, max_attempts: int, window_seconds: int):
        self.max_attempts = max_attempts
        self.window = timedelta(seconds=window_seconds)

    async def admit(
        self,
        db: AsyncSession,
        prefix: str,
        ip_hash: str,
        now: Optional[datetime] = None,
    ) -> tuple[bool, Optional[datetime]]:
        """
        Decide whether one more attempt for (prefix, ip_hash) may proceed.

        Must be the first statement of the attempt's transaction: the count
        then reads a snapshot taken after any concurrent attempt on the same
        key has committed its audit row.

        Returns:
            (True, None) when the attempt may proceed,
            (False, locked_until) when max_attempts failures fall in the window
        """
        now = now or datetime.utcnow()
        await db.execute(touch_statement(db.get_bind().dialect.name, prefix, ip_hash, now))

        result = await db.execute(
            select(LoginAudit.created_at)
            .where(
                LoginAudit.prefix == prefix,
                LoginAudit.ip_hash == ip_hash,
                LoginAudit.outcome == OUTCOME_FAILED,
                LoginAudit.reason != STATUS_RATE_LIMITED,
                LoginAudit.created_at > now - self.window,
            )
            .order_by(LoginAudit.created_at.desc())
            .limit(self.max_attempts)
        )
        recent = result.scalars().all()
        if len(recent) < self.max_attempts:
            return True, None

        # The lock lifts once the max_attempts-th most recent failure leaves the window
        locked_until = recent[-1] + self.window
        logger.warning(f"Login attempts exhausted for prefix {prefix} until {locked_until.isoformat()}Z")
        return False, locked_until
