"""
License model: one issued credential per row.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String

from kaizen_gate.db.base_class import Base

STATUS_ACTIVE = "active"
STATUS_EXPIRED = "expired"
STATUS_REVOKED = "revoked"


class License(Base):
    """
    Stores issued licenses.

    - Only the peppered SHA256 of the canonical license string is stored
    - The prefix is stored separately and must match the prefix parsed from the
      presented string
    - status moves active -> expired lazily on first read past expires_at, and can
      be set to revoked by administrative tooling
    - Rows are never hard-deleted; the audit trail references them
    """
    __tablename__ = "licenses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    prefix = Column(String(6), nullable=False, index=True)
    license_hash = Column(String(64), unique=True, nullable=False)
    status = Column(String(16), nullable=False, default=STATUS_ACTIVE)
    expires_at = Column(DateTime, nullable=True)
    allow_all_reports = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    last_used_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_licenses_hash_created", "license_hash", "created_at"),
        Index("ix_licenses_prefix_created", "prefix", "created_at"),
    )

    def is_past_expiry(self, now: Optional[datetime] = None) -> bool:
        """Exact-instant expiry: a license is expired from expires_at onwards."""
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or datetime.utcnow())

    def expiry_view(self) -> dict:
        return {
            "expiryDate": self.expires_at.date().isoformat() if self.expires_at else None,
            "expiresAt": self.expires_at.isoformat() + "Z" if self.expires_at else None,
        }

    def __repr__(self):
        return f"<License {self.id}: {self.prefix} {self.status}>"
