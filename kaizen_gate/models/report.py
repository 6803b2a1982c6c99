from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint

from kaizen_gate.db.base_class import Base


class Report(Base):
    """
    An embeddable dashboard registered for a client prefix.
    Managed by administrative tooling; read-only for the access resolver.
    """
    __tablename__ = "reports"

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_prefix = Column(String(6), nullable=False)
    code = Column(String(64), nullable=False)
    name = Column(String(255), nullable=False)
    embed_url = Column(Text, nullable=False)
    is_default = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("client_prefix", "code", name="uq_reports_client_code"),
        Index("ix_reports_client_active", "client_prefix", "is_active"),
    )

    def __repr__(self):
        return f"<Report {self.client_prefix}/{self.code}>"


class ReportGrant(Base):
    """Explicit grant of one report to one license (used when allow-all is off)."""
    __tablename__ = "report_grants"

    license_id = Column(Integer, ForeignKey("licenses.id"), primary_key=True)
    report_id = Column(Integer, ForeignKey("reports.id"), primary_key=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
