# audit_backend/models.py
import uuid

from sqlalchemy import Column, String, DateTime, Text

from audit_backend.db import Base
from audit_backend.schemas import AuditRequest, utcnow


def _new_id() -> str:
    return uuid.uuid4().hex


class AuditRequestRecord(Base):
    __tablename__ = "audit_requests"

    id = Column(String(32), primary_key=True, default=_new_id)
    name = Column(String(100), nullable=False)
    email = Column(String(320), nullable=False, index=True)
    company = Column(String(150), nullable=False)
    website = Column(Text, nullable=False)
    message = Column(Text, nullable=False)
    status = Column(String(16), nullable=False, default="pending")
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    def to_schema(self) -> AuditRequest:
        return AuditRequest(
            id=self.id,
            name=self.name,
            email=self.email,
            company=self.company,
            website=self.website,
            message=self.message,
            status=self.status,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
