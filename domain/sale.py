"""
Domain: Sales, line items and returns.

Invariants:
- A committed Sale's total_amount equals the sum of its line totals
  (unit_price x quantity), using the unit price captured at time of sale.
- A sale has at least one line item; every quantity is a positive integer.
- A credit sale references exactly one credit account; other payment methods
  reference none.
- Once committed, a sale and its line items are never rewritten. Reversing a
  committed sale is a separate SaleReturn record.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional, Tuple
from uuid import UUID

from .time import require_utc_timestamp


class SaleStatus(str, Enum):
    """Persisted status of a sale header."""

    DRAFT = "draft"
    COMMITTED = "committed"
    VOIDED = "voided"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    MOBILE_MONEY = "mobile_money"
    CREDIT = "credit"

    @property
    def is_credit(self) -> bool:
        return self is PaymentMethod.CREDIT


class SaleState(str, Enum):
    """
    In-flight states of the sale transaction processor.

    draft -> items_validated -> stock_reserved -> (credit_posted | credit_skipped)
    -> committed, with compensating -> voided reachable from any non-terminal
    state.
    """

    DRAFT = "draft"
    ITEMS_VALIDATED = "items_validated"
    STOCK_RESERVED = "stock_reserved"
    CREDIT_POSTED = "credit_posted"
    CREDIT_SKIPPED = "credit_skipped"
    COMMITTED = "committed"
    COMPENSATING = "compensating"
    VOIDED = "voided"

    @property
    def is_terminal(self) -> bool:
        return self in (SaleState.COMMITTED, SaleState.VOIDED)


_TRANSITIONS = {
    SaleState.DRAFT: {SaleState.ITEMS_VALIDATED, SaleState.COMPENSATING},
    SaleState.ITEMS_VALIDATED: {SaleState.STOCK_RESERVED, SaleState.COMPENSATING},
    SaleState.STOCK_RESERVED: {
        SaleState.CREDIT_POSTED,
        SaleState.CREDIT_SKIPPED,
        SaleState.COMPENSATING,
    },
    SaleState.CREDIT_POSTED: {SaleState.COMMITTED, SaleState.COMPENSATING},
    SaleState.CREDIT_SKIPPED: {SaleState.COMMITTED, SaleState.COMPENSATING},
    SaleState.COMPENSATING: {SaleState.VOIDED},
    SaleState.COMMITTED: set(),
    SaleState.VOIDED: set(),
}


def require_transition(current: SaleState, target: SaleState) -> None:
    if target not in _TRANSITIONS[current]:
        raise ValueError(f"Illegal sale state transition: {current.value} -> {target.value}")


@dataclass(frozen=True, slots=True)
class SaleLineRequest:
    """One (product, quantity) pair as submitted by the caller."""

    product_id: UUID
    quantity: int


@dataclass(frozen=True, slots=True)
class SaleLineItem:
    """
    Line item of a sale. unit_price is an immutable snapshot taken when the
    sale was submitted.
    """

    sale_id: UUID
    product_id: UUID
    quantity: int
    unit_price: Decimal
    line_number: int
    line_item_id: Optional[UUID] = None

    def __post_init__(self) -> None:
        if self.quantity <= 0:
            raise ValueError("quantity must be > 0")
        if self.unit_price < 0:
            raise ValueError("unit_price must be >= 0")

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


def compute_total(lines: Iterable[SaleLineItem]) -> Decimal:
    return sum((line.line_total for line in lines), Decimal("0"))


@dataclass(frozen=True, slots=True)
class Sale:
    """
    Sale header plus (when loaded) its line items.

    All timestamps must be passed explicitly.
    """

    sale_id: UUID
    seller_id: UUID
    sold_at: datetime
    payment_method: PaymentMethod
    total_amount: Decimal
    status: SaleStatus
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    credit_account_id: Optional[UUID] = None
    items: Tuple[SaleLineItem, ...] = field(default_factory=tuple)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("sold_at", self.sold_at)
        if self.created_at is not None:
            require_utc_timestamp("created_at", self.created_at)
        if self.updated_at is not None:
            require_utc_timestamp("updated_at", self.updated_at)
        if self.total_amount < 0:
            raise ValueError("total_amount must be >= 0")

    @property
    def is_on_credit(self) -> bool:
        return self.payment_method.is_credit

    def total_matches_items(self) -> bool:
        """True when the header total equals the sum of the loaded line items."""

        return self.total_amount == compute_total(self.items)


@dataclass(frozen=True, slots=True)
class SaleReturn:
    """
    Compensating record for a committed sale.

    Written instead of rewriting the sale: stock is restocked line by line and
    any credit posting is reversed with an adjustment transaction.
    """

    return_id: UUID
    sale_id: UUID
    actor_id: UUID
    reason: str
    restocked_units: int
    credit_reversed: Decimal
    created_at: datetime

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)
