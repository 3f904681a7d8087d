"""
Inventory adjustment repository (persistence).
"""

from __future__ import annotations

from typing import Any, List, Mapping
from uuid import UUID

from domain.adjustment import AdjustmentDirection, AdjustmentRecord
from domain.time import parse_utc_datetime, to_iso_utc
from repositories.base import SupabaseRepository

_ADJUSTMENTS_TABLE: str = "inventory_adjustments"


def _row_to_adjustment(row: Mapping[str, Any]) -> AdjustmentRecord:
    return AdjustmentRecord(
        adjustment_id=UUID(str(row["id"])),
        product_id=UUID(str(row["product_id"])),
        actor_id=UUID(str(row["actor_id"])),
        direction=AdjustmentDirection(str(row["adjustment_type"])),
        quantity=int(row["quantity"]),
        reason=str(row["reason"]),
        previous_quantity=int(row["previous_quantity"]),
        new_quantity=int(row["new_quantity"]),
        created_at=parse_utc_datetime(row["created_at"]),
    )


class AdjustmentRepository(SupabaseRepository):
    table_name = _ADJUSTMENTS_TABLE

    def insert(self, record: AdjustmentRecord) -> AdjustmentRecord:
        payload: dict[str, Any] = {
            "id": str(record.adjustment_id),
            "product_id": str(record.product_id),
            "actor_id": str(record.actor_id),
            "adjustment_type": record.direction.value,
            "quantity": record.quantity,
            "reason": record.reason,
            "previous_quantity": record.previous_quantity,
            "new_quantity": record.new_quantity,
            "created_at": to_iso_utc(record.created_at, name="created_at"),
        }
        self._execute(self._table().insert(payload), "record inventory adjustment")
        return record

    def list_by_product(self, product_id: UUID) -> List[AdjustmentRecord]:
        query = (
            self._table()
            .select("*")
            .eq("product_id", str(product_id))
            .order("created_at", desc=True)
            .order("seq", desc=True)
        )
        return [_row_to_adjustment(row) for row in self._execute(query, "list inventory adjustments")]


__all__ = ["AdjustmentRepository"]
