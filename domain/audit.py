"""
Domain: Audit entries.

An AuditEntry is written once per state-changing operation and is never
updated or deleted afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Optional
from uuid import UUID

from .time import require_utc_timestamp


class AuditAction:
    """Action names written to the audit log."""

    STOCK_DECREMENT = "stock.decrement"
    STOCK_INCREMENT = "stock.increment"
    STOCK_ADJUST = "stock.adjust"
    CREDIT_OPEN = "credit.open"
    CREDIT_PURCHASE = "credit.purchase"
    CREDIT_PAYMENT = "credit.payment"
    CREDIT_ADJUSTMENT = "credit.adjustment"
    CREDIT_SET_LIMIT = "credit.set_limit"
    CREDIT_SET_STATUS = "credit.set_status"
    SALE_COMMIT = "sale.commit"
    SALE_COMPENSATE = "sale.compensate"
    SALE_VOID = "sale.void"
    SALE_RETURN = "sale.return"


class EntityType:
    PRODUCT = "product"
    CREDIT_ACCOUNT = "credit_account"
    SALE = "sale"
    ADJUSTMENT = "inventory_adjustment"


@dataclass(frozen=True, slots=True)
class AuditEntry:
    entry_id: UUID
    actor_id: UUID
    action: str
    entity_type: str
    entity_id: UUID
    created_at: datetime
    before_state: Optional[Mapping[str, Any]] = None
    after_state: Optional[Mapping[str, Any]] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)
        if not self.action:
            raise ValueError("action is required")
