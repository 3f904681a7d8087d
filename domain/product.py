"""
Domain: Products and stock changes.

Invariants implemented here:
- quantity_on_hand is a non-negative integer at every observable point.
- A product is owned by exactly one selling entity (retailer or wholesaler).

Products are only mutated through the stock ledger; this module holds the pure
value types and the arithmetic the ledger validates against.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional
from uuid import UUID

from .time import require_utc_timestamp


def require_positive_quantity(quantity: int) -> None:
    # bool is an int subclass; reject it explicitly
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValueError(f"quantity must be a positive integer, got {quantity!r}")


@dataclass(frozen=True, slots=True)
class Product:
    """
    Sellable product with its on-hand stock.

    unit_price is the current sell price; sales snapshot it into their line
    items so later price changes never alter a committed sale.
    """

    product_id: UUID
    owner_id: UUID
    name: str
    quantity_on_hand: int
    unit_price: Decimal
    category: Optional[str] = None
    sku: Optional[str] = None
    min_stock_level: int = 0
    unit_cost: Decimal = Decimal("0")
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.quantity_on_hand < 0:
            raise ValueError("quantity_on_hand must be >= 0")
        if self.unit_price < 0:
            raise ValueError("unit_price must be >= 0")
        if self.updated_at is not None:
            require_utc_timestamp("updated_at", self.updated_at)

    @property
    def is_low_stock(self) -> bool:
        return self.quantity_on_hand <= self.min_stock_level

    def can_fulfil(self, quantity: int) -> bool:
        return quantity <= self.quantity_on_hand


@dataclass(frozen=True, slots=True)
class StockChange:
    """Outcome of one stock ledger write (one audit entry each)."""

    product_id: UUID
    previous_quantity: int
    new_quantity: int
    reference_id: Optional[UUID] = None
    product: Optional[Product] = None

    @property
    def entity_id(self) -> UUID:
        return self.product_id

    @property
    def delta(self) -> int:
        return self.new_quantity - self.previous_quantity

    def audit_before(self) -> Dict[str, Any]:
        return {"quantity_on_hand": self.previous_quantity}

    def audit_after(self) -> Dict[str, Any]:
        after: Dict[str, Any] = {"quantity_on_hand": self.new_quantity}
        if self.reference_id is not None:
            after["reference_id"] = str(self.reference_id)
        return after


__all__ = ["Product", "StockChange", "require_positive_quantity"]
