from datetime import datetime

from sqlalchemy import Column, DateTime, String

from kaizen_gate.db.base_class import Base


class Client(Base):
    """A tenant, identified by the prefix embedded in its license strings."""
    __tablename__ = "clients"

    prefix = Column(String(6), primary_key=True)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def as_dict(self) -> dict:
        return {"prefix": self.prefix, "name": self.name}
