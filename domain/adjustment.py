"""
Domain: manual stock adjustments (damage, correction, restock).

Adjustments are recorded separately from sale-driven stock changes so that
inventory variance reports can tell "sold" apart from "adjusted".
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict
from uuid import UUID

from .time import require_utc_timestamp


class AdjustmentDirection(str, Enum):
    ADD = "add"
    REMOVE = "remove"


@dataclass(frozen=True, slots=True)
class AdjustmentRecord:
    adjustment_id: UUID
    product_id: UUID
    actor_id: UUID
    direction: AdjustmentDirection
    quantity: int
    reason: str
    previous_quantity: int
    new_quantity: int
    created_at: datetime

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)
        if not self.reason.strip():
            raise ValueError("reason is required")

    @property
    def entity_id(self) -> UUID:
        return self.adjustment_id

    def audit_before(self) -> Dict[str, Any]:
        return {"product_id": str(self.product_id), "quantity_on_hand": self.previous_quantity}

    def audit_after(self) -> Dict[str, Any]:
        return {
            "product_id": str(self.product_id),
            "quantity_on_hand": self.new_quantity,
            "direction": self.direction.value,
            "quantity": self.quantity,
            "reason": self.reason,
        }
