"""
Domain: Credit accounts and their transaction history.

Invariants:
- While an account is active: 0 <= current_balance <= credit_limit.
- Transactions are append-only. A purchase increases the balance, a payment
  decreases it (stored with a negative amount), an adjustment may do either.
- Chain invariant: replaying an account's transactions in posting order from a
  balance of 0 reproduces current_balance exactly, and each transaction's
  previous_balance equals the previous transaction's new_balance.

This module is pure: no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from .time import require_utc_timestamp

ZERO = Decimal("0")


class CreditAccountStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    CANCELLED = "cancelled"


class CreditTransactionType(str, Enum):
    PURCHASE = "purchase"
    PAYMENT = "payment"
    ADJUSTMENT = "adjustment"


class CreditHealth(str, Enum):
    GOOD = "good"
    WARNING = "warning"


def require_positive_amount(amount: Decimal, *, name: str = "amount") -> None:
    if not isinstance(amount, Decimal):
        raise TypeError(f"{name} must be a Decimal, got {type(amount)!r}")
    if amount <= ZERO:
        raise ValueError(f"{name} must be > 0")


@dataclass(frozen=True, slots=True)
class CreditAccount:
    """
    Credit line extended by an owner (creditor, usually a wholesaler) to a
    counterparty (usually a retailer).
    """

    account_id: UUID
    owner_id: UUID
    counterparty_id: UUID
    credit_limit: Decimal
    current_balance: Decimal
    status: CreditAccountStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.credit_limit < ZERO:
            raise ValueError("credit_limit must be >= 0")
        if self.current_balance < ZERO:
            raise ValueError("current_balance must be >= 0")
        if self.created_at is not None:
            require_utc_timestamp("created_at", self.created_at)
        if self.updated_at is not None:
            require_utc_timestamp("updated_at", self.updated_at)

    @property
    def is_active(self) -> bool:
        return self.status is CreditAccountStatus.ACTIVE

    @property
    def available_credit(self) -> Decimal:
        return max(self.credit_limit - self.current_balance, ZERO)

    def can_absorb(self, amount: Decimal) -> bool:
        return self.current_balance + amount <= self.credit_limit

    def health(self, warning_ratio: Decimal) -> CreditHealth:
        """Accounts at or above warning_ratio of their limit are flagged."""

        if self.credit_limit == ZERO:
            return CreditHealth.WARNING if self.current_balance > ZERO else CreditHealth.GOOD
        if self.current_balance >= self.credit_limit * warning_ratio:
            return CreditHealth.WARNING
        return CreditHealth.GOOD

    def snapshot(self) -> Dict[str, Any]:
        """Serializable state used for audit before/after payloads."""

        return {
            "credit_limit": str(self.credit_limit),
            "current_balance": str(self.current_balance),
            "status": self.status.value,
        }


@dataclass(frozen=True, slots=True)
class CreditTransaction:
    """Immutable entry of an account's credit history."""

    transaction_id: UUID
    account_id: UUID
    transaction_type: CreditTransactionType
    amount: Decimal
    previous_balance: Decimal
    new_balance: Decimal
    created_by: UUID
    created_at: datetime
    reference_id: Optional[UUID] = None
    notes: Optional[str] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)
        if self.previous_balance + self.amount != self.new_balance:
            raise ValueError("new_balance must equal previous_balance + amount")


@dataclass(frozen=True, slots=True)
class CreditPosting:
    """Outcome of one credit ledger write: the updated account and its transaction."""

    account: CreditAccount
    transaction: CreditTransaction

    @property
    def entity_id(self) -> UUID:
        return self.account.account_id

    @property
    def new_balance(self) -> Decimal:
        return self.account.current_balance

    def audit_before(self) -> Dict[str, Any]:
        return {"current_balance": str(self.transaction.previous_balance)}

    def audit_after(self) -> Dict[str, Any]:
        after: Dict[str, Any] = {
            "current_balance": str(self.transaction.new_balance),
            "transaction_id": str(self.transaction.transaction_id),
            "transaction_type": self.transaction.transaction_type.value,
        }
        if self.transaction.reference_id is not None:
            after["reference_id"] = str(self.transaction.reference_id)
        return after


@dataclass(frozen=True, slots=True)
class CreditAccountChange:
    """Outcome of an administrative change (limit or status)."""

    before: CreditAccount
    account: CreditAccount

    @property
    def entity_id(self) -> UUID:
        return self.account.account_id

    def audit_before(self) -> Dict[str, Any]:
        return self.before.snapshot()

    def audit_after(self) -> Dict[str, Any]:
        return self.account.snapshot()


@dataclass(frozen=True, slots=True)
class ChainReport:
    """Result of replaying an account's transaction history."""

    account_id: UUID
    transaction_count: int
    replayed_balance: Decimal
    current_balance: Decimal
    broken_links: List[UUID]

    @property
    def is_consistent(self) -> bool:
        return not self.broken_links and self.replayed_balance == self.current_balance


def replay_balance(
    account_id: UUID,
    transactions: Sequence[CreditTransaction],
    current_balance: Decimal,
) -> ChainReport:
    """
    Replay transactions (already in posting order) from a zero balance.

    A link is broken when a transaction's previous_balance does not equal the
    running balance at that point.
    """

    running = ZERO
    broken: List[UUID] = []
    for txn in transactions:
        if txn.previous_balance != running:
            broken.append(txn.transaction_id)
        running = running + txn.amount
    return ChainReport(
        account_id=account_id,
        transaction_count=len(transactions),
        replayed_balance=running,
        current_balance=current_balance,
        broken_links=broken,
    )
