# audit_backend/store.py
"""
Record store for audit requests.

Two concrete stores share one interface:
- SqlRecordStore      — the primary, SQLAlchemy-backed database
- JsonFileRecordStore — a local JSON array file used when the primary fails

AuditStore is the facade the handlers talk to. It tries the primary first and
falls back to the file on any primary exception (including the primary not
being configured at all). Results carry the name of the store that served
them; a None record means the id was not found.

The file store rewrites the whole array on every mutation and takes no locks:
concurrent writers race and the last one wins.
"""

import json
import math
import pathlib
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from audit_backend import db as dbmod
from audit_backend import monitoring
from audit_backend.models import AuditRequestRecord
from audit_backend.schemas import AuditRequest, AuditStatus, advance, utcnow

PRIMARY = "primary"
FALLBACK = "fallback"


@dataclass
class Page:
    records: List[AuditRequest]
    page: int
    limit: int
    total: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


@dataclass
class StoreResult:
    record: Any
    source: str

    @property
    def found(self) -> bool:
        return self.record is not None


class RecordStore:
    """Interface shared by the primary and fallback stores."""

    def create(self, data: Dict[str, Any]) -> AuditRequest:
        raise NotImplementedError

    def list(self, page: int, limit: int) -> Page:
        raise NotImplementedError

    def get(self, record_id: str) -> Optional[AuditRequest]:
        raise NotImplementedError

    def update(self, record_id: str, fields: Dict[str, Any]) -> Optional[AuditRequest]:
        raise NotImplementedError

    def delete(self, record_id: str) -> Optional[AuditRequest]:
        raise NotImplementedError


def _column_values(fields: Dict[str, Any]) -> Dict[str, Any]:
    out = {}
    for k, v in fields.items():
        out[k] = v.value if isinstance(v, AuditStatus) else v
    return out


class SqlRecordStore(RecordStore):

    def create(self, data: Dict[str, Any]) -> AuditRequest:
        now = utcnow()
        with dbmod.get_session() as db:
            row = AuditRequestRecord(
                **_column_values(data),
                status=AuditStatus.pending.value,
                created_at=now,
                updated_at=now,
            )
            db.add(row)
            db.commit()
            db.refresh(row)
            return row.to_schema()

    def list(self, page: int, limit: int) -> Page:
        offset = (page - 1) * limit
        with dbmod.get_session() as db:
            total = db.query(AuditRequestRecord).count()
            if offset >= total:
                # past the end; also keeps huge page numbers out of the OFFSET clause
                return Page(records=[], page=page, limit=limit, total=total)
            rows = (
                db.query(AuditRequestRecord)
                .order_by(AuditRequestRecord.created_at.desc())
                .offset(offset)
                .limit(limit)
                .all()
            )
            return Page(records=[r.to_schema() for r in rows], page=page, limit=limit, total=total)

    def get(self, record_id: str) -> Optional[AuditRequest]:
        with dbmod.get_session() as db:
            row = db.get(AuditRequestRecord, record_id)
            return row.to_schema() if row else None

    def update(self, record_id: str, fields: Dict[str, Any]) -> Optional[AuditRequest]:
        with dbmod.get_session() as db:
            row = db.get(AuditRequestRecord, record_id)
            if row is None:
                return None
            for k, v in _column_values(fields).items():
                setattr(row, k, v)
            row.updated_at = advance(row.updated_at)
            db.commit()
            db.refresh(row)
            return row.to_schema()

    def delete(self, record_id: str) -> Optional[AuditRequest]:
        with dbmod.get_session() as db:
            row = db.get(AuditRequestRecord, record_id)
            if row is None:
                return None
            removed = row.to_schema()
            db.delete(row)
            db.commit()
            return removed


class JsonFileRecordStore(RecordStore):
    """Most-recent-first JSON array in a single file."""

    def __init__(self, path):
        self.path = pathlib.Path(path)

    def load(self) -> List[AuditRequest]:
        if not self.path.exists():
            self.save([])
            return []
        with open(self.path, "r", encoding="utf-8") as f:
            raw = json.load(f)
        return [AuditRequest.model_validate(item) for item in raw]

    def save(self, records: List[AuditRequest]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump([r.to_json() for r in records], f, indent=2)

    @staticmethod
    def _next_id(records: List[AuditRequest]) -> str:
        candidate = int(time.time() * 1000)
        if records and records[0].id.isdigit():
            candidate = max(candidate, int(records[0].id) + 1)
        return str(candidate)

    @staticmethod
    def _index_of(records: List[AuditRequest], record_id: str) -> int:
        for i, r in enumerate(records):
            if r.id == str(record_id):
                return i
        return -1

    def create(self, data: Dict[str, Any]) -> AuditRequest:
        records = self.load()
        now = utcnow()
        record = AuditRequest(
            id=self._next_id(records),
            status=AuditStatus.pending,
            created_at=now,
            updated_at=now,
            **data,
        )
        records.insert(0, record)
        self.save(records)
        return record

    def list(self, page: int, limit: int) -> Page:
        records = self.load()
        start = (page - 1) * limit
        return Page(records=records[start:start + limit], page=page, limit=limit, total=len(records))

    def get(self, record_id: str) -> Optional[AuditRequest]:
        records = self.load()
        idx = self._index_of(records, record_id)
        return records[idx] if idx >= 0 else None

    def update(self, record_id: str, fields: Dict[str, Any]) -> Optional[AuditRequest]:
        records = self.load()
        idx = self._index_of(records, record_id)
        if idx < 0:
            return None
        current = records[idx]
        merged = current.model_copy(update={**fields, "updated_at": advance(current.updated_at)})
        records[idx] = merged
        self.save(records)
        return merged

    def delete(self, record_id: str) -> Optional[AuditRequest]:
        records = self.load()
        idx = self._index_of(records, record_id)
        if idx < 0:
            return None
        removed = records.pop(idx)
        self.save(records)
        return removed


class AuditStore:
    """Primary-first facade; any primary exception routes the call to the fallback."""

    def __init__(self, primary: RecordStore, fallback: RecordStore):
        self.primary = primary
        self.fallback = fallback

    def _run(self, operation: str, *args, fallback_on_missing: bool = False) -> StoreResult:
        try:
            result = getattr(self.primary, operation)(*args)
        except Exception as e:
            monitoring.logger.warning(
                "Primary store failed, using local fallback",
                extra={"operation": operation, "error": str(e) or type(e).__name__},
            )
            monitoring.inc_store_fallback(operation)
        else:
            if result is not None or not fallback_on_missing:
                return StoreResult(result, PRIMARY)
        return StoreResult(getattr(self.fallback, operation)(*args), FALLBACK)

    def create(self, data: Dict[str, Any]) -> StoreResult:
        return self._run("create", data)

    def list(self, page: int, limit: int) -> StoreResult:
        return self._run("list", page, limit)

    def get(self, record_id: str) -> StoreResult:
        # lookups also consult the file when the primary simply has no such id
        return self._run("get", record_id, fallback_on_missing=True)

    def update(self, record_id: str, fields: Dict[str, Any]) -> StoreResult:
        return self._run("update", record_id, fields)

    def delete(self, record_id: str) -> StoreResult:
        return self._run("delete", record_id)
