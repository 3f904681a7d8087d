"""
Audit repository (persistence).

Insert and read only: the audit log exposes no update or delete.
"""

from __future__ import annotations

from typing import Any, List, Mapping, Optional
from uuid import UUID

from domain.audit import AuditEntry
from domain.time import parse_utc_datetime, to_iso_utc
from repositories.base import SupabaseRepository, TimeRange

_AUDIT_TABLE: str = "audit_log"


def _row_to_entry(row: Mapping[str, Any]) -> AuditEntry:
    return AuditEntry(
        entry_id=UUID(str(row["id"])),
        actor_id=UUID(str(row["actor_id"])),
        action=str(row["action"]),
        entity_type=str(row["entity_type"]),
        entity_id=UUID(str(row["entity_id"])),
        created_at=parse_utc_datetime(row["created_at"]),
        before_state=row.get("before_state"),
        after_state=row.get("after_state"),
    )


class AuditRepository(SupabaseRepository):
    table_name = _AUDIT_TABLE

    def insert(self, entry: AuditEntry) -> AuditEntry:
        payload: dict[str, Any] = {
            "id": str(entry.entry_id),
            "actor_id": str(entry.actor_id),
            "action": entry.action,
            "entity_type": entry.entity_type,
            "entity_id": str(entry.entity_id),
            "before_state": dict(entry.before_state) if entry.before_state is not None else None,
            "after_state": dict(entry.after_state) if entry.after_state is not None else None,
            "created_at": to_iso_utc(entry.created_at, name="created_at"),
        }
        self._execute(self._table().insert(payload), "write audit entry")
        return entry

    def list_page(
        self,
        *,
        entity_type: Optional[str] = None,
        entity_id: Optional[UUID] = None,
        actor_id: Optional[UUID] = None,
        action: Optional[str] = None,
        window: TimeRange = TimeRange(),
        offset: int = 0,
        limit: int = 500,
    ) -> List[AuditEntry]:
        query = self._table().select("*")
        if entity_type is not None:
            query = query.eq("entity_type", entity_type)
        if entity_id is not None:
            query = query.eq("entity_id", str(entity_id))
        if actor_id is not None:
            query = query.eq("actor_id", str(actor_id))
        if action is not None:
            query = query.eq("action", action)
        query = window.apply(query, "created_at").order("created_at").order("seq")
        return [_row_to_entry(row) for row in self._fetch_page(query, offset, limit, "list audit entries")]


__all__ = ["AuditRepository"]
