"""
Domain: ledger error taxonomy.

Every rejection raised by the ledger core derives from LedgerError. Each error
carries a `user_message` suitable for showing to the operator at the till:
business-rule rejections say what is actually available, transient failures
ask the caller to try again.

Store-level failures (network, PostgREST errors) are not part of this
hierarchy; repositories surface them as RuntimeError.
"""

from __future__ import annotations

from decimal import Decimal
from typing import List, Optional
from uuid import UUID


class LedgerError(Exception):
    """Base class for all ledger rejections."""

    retryable: bool = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.compensation_failures: List[str] = []

    @property
    def user_message(self) -> str:
        return str(self)


class InvalidSaleRequest(LedgerError):
    """The sale request is malformed (caller error, never retried)."""


class InvalidAdjustment(LedgerError):
    """The stock adjustment request is malformed."""


class ProductNotFound(LedgerError):
    def __init__(self, product_id: UUID) -> None:
        super().__init__(f"Product not found: {product_id}")
        self.product_id = product_id


class InsufficientStock(LedgerError):
    def __init__(self, product_id: UUID, requested: int, available: int) -> None:
        super().__init__(
            f"Insufficient stock for product {product_id}: "
            f"requested {requested}, only {available} available"
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available

    @property
    def user_message(self) -> str:
        return f"Only {self.available} unit(s) left in stock; {self.requested} requested."


class CreditAccountNotFound(LedgerError):
    def __init__(self, account_id: UUID) -> None:
        super().__init__(f"Credit account not found: {account_id}")
        self.account_id = account_id


class CreditAccountInactive(LedgerError):
    def __init__(self, account_id: UUID, status: str) -> None:
        super().__init__(f"Credit account {account_id} is not active (status: {status})")
        self.account_id = account_id
        self.status = status

    @property
    def user_message(self) -> str:
        return f"This credit account is {self.status}; purchases on credit are not allowed."


class CreditLimitExceeded(LedgerError):
    def __init__(self, account_id: UUID, amount: Decimal, available: Decimal) -> None:
        super().__init__(
            f"Purchase of {amount} would exceed the credit limit of account {account_id} "
            f"(available credit: {available})"
        )
        self.account_id = account_id
        self.amount = amount
        self.available = available

    @property
    def user_message(self) -> str:
        return f"Available credit is {self.available}; this purchase needs {self.amount}."


class PaymentExceedsBalance(LedgerError):
    def __init__(self, account_id: UUID, amount: Decimal, balance: Decimal) -> None:
        super().__init__(
            f"Payment of {amount} exceeds the current balance of account {account_id} ({balance})"
        )
        self.account_id = account_id
        self.amount = amount
        self.balance = balance

    @property
    def user_message(self) -> str:
        return f"The outstanding balance is {self.balance}; a payment of {self.amount} is too large."


class InvalidCreditLimit(LedgerError):
    """A credit limit or status change would break 0 <= balance <= limit."""


class SaleNotFound(LedgerError):
    def __init__(self, sale_id: UUID) -> None:
        super().__init__(f"Sale not found: {sale_id}")
        self.sale_id = sale_id


class SaleAlreadyCommitted(LedgerError):
    def __init__(self, sale_id: UUID) -> None:
        super().__init__(
            f"Sale {sale_id} is already committed and cannot be voided; record a return instead"
        )
        self.sale_id = sale_id


class SaleNotCommitted(LedgerError):
    def __init__(self, sale_id: UUID, status: str) -> None:
        super().__init__(f"Sale {sale_id} is {status}; only committed sales can be returned")
        self.sale_id = sale_id
        self.status = status


class AlreadyReturned(LedgerError):
    def __init__(self, sale_id: UUID) -> None:
        super().__init__(f"Sale {sale_id} has already been returned")
        self.sale_id = sale_id


class ConcurrentModification(LedgerError):
    """A compare-and-set write kept conflicting after the retry bound."""

    retryable = True

    def __init__(self, entity_type: str, entity_id: UUID, attempts: int) -> None:
        super().__init__(
            f"Concurrent modification of {entity_type} {entity_id} "
            f"(gave up after {attempts} attempts)"
        )
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.attempts = attempts

    @property
    def user_message(self) -> str:
        return "The record was changed by someone else at the same time. Please try again."


class AuditWriteFailed(LedgerError):
    """The audit store rejected an entry. Logged by callers, never fatal."""

    def __init__(self, action: str, entity_id: Optional[UUID], reason: str) -> None:
        super().__init__(f"Failed to write audit entry {action} for {entity_id}: {reason}")
        self.action = action
        self.entity_id = entity_id


__all__ = [
    "LedgerError",
    "InvalidSaleRequest",
    "InvalidAdjustment",
    "ProductNotFound",
    "InsufficientStock",
    "CreditAccountNotFound",
    "CreditAccountInactive",
    "CreditLimitExceeded",
    "PaymentExceedsBalance",
    "InvalidCreditLimit",
    "SaleNotFound",
    "SaleAlreadyCommitted",
    "SaleNotCommitted",
    "AlreadyReturned",
    "ConcurrentModification",
    "AuditWriteFailed",
]
