from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from models import EntityRecord

SERVER_ENTITY_NAMES = (
    "Member",
    "Transaction",
    "InputType",
    "MembershipPlan",
    "MembershipCharge",
    "Invoice",
    "RecurringPayment",
    "Guest",
    "GuestTransaction",
    "StatementTemplate",
    "EmailSchedule",
)

PROTECTED_FIELDS = ("id", "created_date", "updated_date")


class UnknownEntityError(LookupError):
    pass


class RecordNotFoundError(LookupError):
    pass


def assert_entity_name(entity: str) -> None:
    if entity not in SERVER_ENTITY_NAMES:
        raise UnknownEntityError(f"Unknown entity: {entity}")


def _sort_key(value: Any) -> tuple[int, Any]:
    if value is None:
        return (0, 0)
    if isinstance(value, bool):
        return (1, int(value))
    if isinstance(value, (int, float)):
        return (1, value)
    return (2, str(value))


def apply_sort_window(
    items: list[dict[str, Any]],
    sort: Optional[str],
    limit: Optional[int],
    page: Optional[int] = None,
) -> list[dict[str, Any]]:
    out = list(items)
    if sort:
        descending = sort.startswith("-")
        field = sort[1:] if descending else sort
        if field:
            out.sort(key=lambda item: _sort_key(item.get(field)), reverse=descending)
    if limit is not None:
        if limit <= 0:
            return []
        start = (max(page or 1, 1) - 1) * limit
        out = out[start : start + limit]
    return out


def match_where(record: dict[str, Any], where: Optional[dict[str, Any]]) -> bool:
    if not where:
        return True
    return all(record.get(key) == value for key, value in where.items())


def _stamp(row: EntityRecord) -> dict[str, Any]:
    data = dict(row.data or {})
    data["id"] = row.record_id
    data["created_date"] = row.created_date.isoformat()
    data["updated_date"] = row.updated_date.isoformat()
    return data


class EntityStore:
    def __init__(self, session: Session) -> None:
        self.session = session

    def _rows(self, entity: str) -> list[EntityRecord]:
        assert_entity_name(entity)
        stmt = (
            select(EntityRecord)
            .where(EntityRecord.entity == entity)
            .order_by(EntityRecord.id)
        )
        return self.session.scalars(stmt).all()

    def _row(self, entity: str, record_id: str) -> Optional[EntityRecord]:
        assert_entity_name(entity)
        return self.session.scalar(
            select(EntityRecord).where(
                EntityRecord.entity == entity,
                EntityRecord.record_id == str(record_id),
            )
        )

    def list(
        self,
        entity: str,
        sort: Optional[str] = None,
        limit: Optional[int] = None,
        page: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        items = [_stamp(row) for row in self._rows(entity)]
        return apply_sort_window(items, sort, limit, page)

    def filter(
        self,
        entity: str,
        where: Optional[dict[str, Any]],
        sort: Optional[str] = None,
        limit: Optional[int] = None,
        page: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        items = [_stamp(row) for row in self._rows(entity)]
        matched = [item for item in items if match_where(item, where)]
        return apply_sort_window(matched, sort, limit, page)

    def get(self, entity: str, record_id: str) -> Optional[dict[str, Any]]:
        row = self._row(entity, record_id)
        return _stamp(row) if row else None

    def _new_row(self, entity: str, data: dict[str, Any]) -> EntityRecord:
        now = datetime.utcnow()
        record_id = str(data.get("id") or uuid.uuid4().hex)
        payload = {k: v for k, v in data.items() if k not in PROTECTED_FIELDS}
        return EntityRecord(
            entity=entity,
            record_id=record_id,
            data=payload,
            created_date=now,
            updated_date=now,
        )

    def create(self, entity: str, data: dict[str, Any]) -> dict[str, Any]:
        assert_entity_name(entity)
        row = self._new_row(entity, data or {})
        self.session.add(row)
        self.session.commit()
        return _stamp(row)

    def bulk_create(
        self, entity: str, items: list[dict[str, Any]]
    ) -> list[dict[str, Any]]:
        assert_entity_name(entity)
        rows = [self._new_row(entity, item or {}) for item in items]
        if not rows:
            return []
        self.session.add_all(rows)
        self.session.commit()
        return [_stamp(row) for row in rows]

    def update(
        self, entity: str, record_id: str, patch: dict[str, Any]
    ) -> dict[str, Any]:
        row = self._row(entity, record_id)
        if not row:
            raise RecordNotFoundError(f"{entity} not found")
        data = dict(row.data or {})
        data.update({k: v for k, v in (patch or {}).items() if k not in PROTECTED_FIELDS})
        row.data = data
        row.updated_date = datetime.utcnow()
        self.session.commit()
        return _stamp(row)

    def remove(self, entity: str, record_id: str) -> bool:
        row = self._row(entity, record_id)
        if not row:
            return False
        self.session.delete(row)
        self.session.commit()
        return True
