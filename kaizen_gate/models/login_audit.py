"""
Login audit trail and the per-key lock rows that serialize lockout checks.
"""

from datetime import datetime

from sqlalchemy import Column, DateTime, Index, Integer, String

from kaizen_gate.db.base_class import Base

OUTCOME_SUCCESS = "success"
OUTCOME_FAILED = "failed"


class LoginAudit(Base):
    """One append-only row per authentication attempt."""
    __tablename__ = "login_audit"

    id = Column(Integer, primary_key=True, autoincrement=True)
    prefix = Column(String(6), nullable=True)
    license_id = Column(Integer, nullable=True)
    outcome = Column(String(16), nullable=False)
    reason = Column(String(64), nullable=False)
    ip_hash = Column(String(64), nullable=False)
    user_agent = Column(String(255), nullable=True)
    edge_request_id = Column(String(64), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_login_audit_prefix_ip_created", "prefix", "ip_hash", "created_at"),
        Index("ix_login_audit_license", "license_id"),
    )

    def __repr__(self):
        return f"<LoginAudit {self.id}: {self.prefix} {self.outcome}/{self.reason}>"


class LoginThrottle(Base):
    """
    One row per (prefix, client IP hash) that has attempted a login. Upserted at
    the start of every attempt so concurrent attempts on a key queue on its row lock.
    """
    __tablename__ = "login_throttle"

    prefix = Column(String(6), primary_key=True)
    ip_hash = Column(String(64), primary_key=True)
    last_attempt_at = Column(DateTime, nullable=False)
