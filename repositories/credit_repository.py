"""
Credit repository (persistence).

Persistence for credit accounts and their append-only transaction history.
Balance writes are compare-and-set: they only land when the stored balance
(and any other guarded column) still holds the value the writer read.
Transactions have no update or delete operation here.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, List, Mapping, Optional
from uuid import UUID, uuid4

from domain.credit import (
    CreditAccount,
    CreditAccountStatus,
    CreditTransaction,
    CreditTransactionType,
)
from domain.time import parse_utc_datetime, to_iso_utc
from repositories.base import SupabaseRepository, TimeRange

_ACCOUNTS_TABLE: str = "credit_accounts"
_TRANSACTIONS_TABLE: str = "credit_transactions"

# Appended tables carry a `seq` identity column (bigint generated always as
# identity); listings order by timestamp, then seq, so ties page stably.


def _row_to_account(row: Mapping[str, Any]) -> CreditAccount:
    """Convert a Supabase row into a CreditAccount."""

    return CreditAccount(
        account_id=UUID(str(row["id"])),
        owner_id=UUID(str(row["owner_id"])),
        counterparty_id=UUID(str(row["counterparty_id"])),
        credit_limit=Decimal(str(row["credit_limit"])),
        current_balance=Decimal(str(row["current_balance"])),
        status=CreditAccountStatus(str(row["status"])),
        created_at=parse_utc_datetime(row["created_at"]) if row.get("created_at") else None,
        updated_at=parse_utc_datetime(row["updated_at"]) if row.get("updated_at") else None,
    )


def _row_to_transaction(row: Mapping[str, Any]) -> CreditTransaction:
    reference_id = row.get("reference_id")
    return CreditTransaction(
        transaction_id=UUID(str(row["id"])),
        account_id=UUID(str(row["credit_account_id"])),
        transaction_type=CreditTransactionType(str(row["transaction_type"])),
        amount=Decimal(str(row["amount"])),
        previous_balance=Decimal(str(row["previous_balance"])),
        new_balance=Decimal(str(row["new_balance"])),
        created_by=UUID(str(row["created_by"])),
        created_at=parse_utc_datetime(row["created_at"]),
        reference_id=UUID(str(reference_id)) if reference_id else None,
        notes=row.get("notes"),
    )


class CreditRepository(SupabaseRepository):
    table_name = _ACCOUNTS_TABLE

    def get_account(self, account_id: UUID) -> Optional[CreditAccount]:
        row = self._fetch_one("id", str(account_id), "fetch credit account")
        return _row_to_account(row) if row is not None else None

    def find_account(self, owner_id: UUID, counterparty_id: UUID) -> Optional[CreditAccount]:
        query = (
            self._table()
            .select("*")
            .eq("owner_id", str(owner_id))
            .eq("counterparty_id", str(counterparty_id))
            .limit(1)
        )
        rows = self._execute(query, "fetch credit account")
        return _row_to_account(rows[0]) if rows else None

    def insert_account(
        self,
        *,
        owner_id: UUID,
        counterparty_id: UUID,
        credit_limit: Decimal,
        created_at: datetime,
    ) -> CreditAccount:
        """
        Insert a new active account with a zero balance.

        Enforces:
        - One account per (owner_id, counterparty_id)
        """

        if self.find_account(owner_id, counterparty_id) is not None:
            raise ValueError("Credit account already exists for (owner_id, counterparty_id)")

        account = CreditAccount(
            account_id=uuid4(),
            owner_id=owner_id,
            counterparty_id=counterparty_id,
            credit_limit=credit_limit,
            current_balance=Decimal("0"),
            status=CreditAccountStatus.ACTIVE,
            created_at=created_at,
            updated_at=created_at,
        )
        timestamp = to_iso_utc(created_at, name="created_at")
        payload: dict[str, Any] = {
            "id": str(account.account_id),
            "owner_id": str(owner_id),
            "counterparty_id": str(counterparty_id),
            "credit_limit": str(credit_limit),
            "current_balance": "0",
            "status": CreditAccountStatus.ACTIVE.value,
            "created_at": timestamp,
            "updated_at": timestamp,
        }
        if not self._insert_unless_duplicate(self._table().insert(payload), "create credit account"):
            raise ValueError("Credit account already exists for (owner_id, counterparty_id)")
        return account

    def compare_and_set(
        self,
        account_id: UUID,
        *,
        expected: CreditAccount,
        changes: Mapping[str, Any],
        updated_at: datetime,
        guard_limit: bool = False,
        guard_status: bool = False,
    ) -> Optional[CreditAccount]:
        """
        Apply `changes` only if the stored account still matches `expected`.

        The balance is always part of the guard; limit and status are added
        on request. Returns None on a guard mismatch.
        """

        payload: dict[str, Any] = {
            key: (str(value) if isinstance(value, Decimal) else value)
            for key, value in changes.items()
        }
        payload["updated_at"] = to_iso_utc(updated_at, name="updated_at")

        query = (
            self._table()
            .update(payload)
            .eq("id", str(account_id))
            .eq("current_balance", str(expected.current_balance))
        )
        if guard_limit:
            query = query.eq("credit_limit", str(expected.credit_limit))
        if guard_status:
            query = query.eq("status", expected.status.value)

        rows = self._execute(query, "update credit account")
        return _row_to_account(rows[0]) if rows else None

    def insert_transaction(self, transaction: CreditTransaction) -> CreditTransaction:
        payload: dict[str, Any] = {
            "id": str(transaction.transaction_id),
            "credit_account_id": str(transaction.account_id),
            "transaction_type": transaction.transaction_type.value,
            "amount": str(transaction.amount),
            "previous_balance": str(transaction.previous_balance),
            "new_balance": str(transaction.new_balance),
            "reference_id": str(transaction.reference_id) if transaction.reference_id else None,
            "notes": transaction.notes,
            "created_by": str(transaction.created_by),
            "created_at": to_iso_utc(transaction.created_at, name="created_at"),
        }
        self._execute(
            self._client.table(_TRANSACTIONS_TABLE).insert(payload), "record credit transaction"
        )
        return transaction

    def get_transaction(self, transaction_id: UUID) -> Optional[CreditTransaction]:
        query = (
            self._client.table(_TRANSACTIONS_TABLE)
            .select("*")
            .eq("id", str(transaction_id))
            .limit(1)
        )
        rows = self._execute(query, "fetch credit transaction")
        return _row_to_transaction(rows[0]) if rows else None

    def list_transactions_page(
        self,
        *,
        account_id: Optional[UUID] = None,
        transaction_type: Optional[CreditTransactionType] = None,
        window: TimeRange = TimeRange(),
        offset: int = 0,
        limit: int = 500,
    ) -> List[CreditTransaction]:
        """One page of transactions in posting order (oldest first, seq breaks ties)."""

        query = self._client.table(_TRANSACTIONS_TABLE).select("*")
        if account_id is not None:
            query = query.eq("credit_account_id", str(account_id))
        if transaction_type is not None:
            query = query.eq("transaction_type", transaction_type.value)
        query = window.apply(query, "created_at").order("created_at").order("seq")
        rows = self._fetch_page(query, offset, limit, "list credit transactions")
        return [_row_to_transaction(row) for row in rows]


__all__ = ["CreditRepository"]
