# audit_backend/schemas.py
import datetime
import enum
from typing import List, Optional, Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator


def utcnow() -> datetime.datetime:
    # naive UTC, matching what SQLAlchemy DateTime columns hand back
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


def advance(previous: datetime.datetime) -> datetime.datetime:
    """Return now, nudged past `previous` so updatedAt always moves forward."""
    now = utcnow()
    if now <= previous:
        now = previous + datetime.timedelta(microseconds=1)
    return now


class AuditStatus(str, enum.Enum):
    pending = "pending"
    reviewed = "reviewed"
    contacted = "contacted"
    completed = "completed"


class AuditRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    email: str
    company: str
    website: str
    message: str
    status: AuditStatus = AuditStatus.pending
    created_at: datetime.datetime = Field(alias="createdAt")
    updated_at: datetime.datetime = Field(alias="updatedAt")

    @field_validator("created_at", "updated_at")
    @classmethod
    def _naive_utc(cls, v: datetime.datetime) -> datetime.datetime:
        if v.tzinfo is not None:
            v = v.astimezone(datetime.timezone.utc).replace(tzinfo=None)
        return v

    @field_serializer("created_at", "updated_at")
    def _iso(self, v: datetime.datetime) -> str:
        if v.tzinfo is not None:
            v = v.astimezone(datetime.timezone.utc).replace(tzinfo=None)
        return v.isoformat(timespec="microseconds") + "Z"

    def to_json(self) -> dict:
        """camelCase JSON form used on the wire and in the fallback file."""
        return self.model_dump(mode="json", by_alias=True)

    def summary(self) -> dict:
        return {"id": self.id, "name": self.name, "email": self.email, "company": self.company}


class FieldError(BaseModel):
    field: str
    code: str
    message: str


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class Envelope(BaseModel):
    """Uniform response wrapper; unset optional members are omitted."""
    success: bool
    message: Optional[str] = None
    data: Optional[Any] = None
    errors: Optional[List[FieldError]] = None
    pagination: Optional[Pagination] = None

    def to_json(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)
