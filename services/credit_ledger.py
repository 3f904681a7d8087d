"""
Credit ledger.

Owns each credit account's limit and running balance, and appends one
CreditTransaction per posting with the (previous_balance, new_balance) pair.

Posting protocol (per attempt):
1. Read the account.
2. Validate the posting against what was read (status, limit, balance).
3. Write the new balance guarded by `current_balance = <read value>` (plus
   limit and status for purchases). A guard miss re-runs from step 1, which
   keeps postings to one account in order.
4. Append the transaction. An error response is checked against the store:
   if the row landed the posting stands; if it is absent the balance write is
   reverted with the inverse guarded write before the error propagates.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional
from uuid import UUID, uuid4

from domain.audit import AuditAction, EntityType
from domain.credit import (
    ZERO,
    ChainReport,
    CreditAccount,
    CreditAccountChange,
    CreditAccountStatus,
    CreditPosting,
    CreditTransaction,
    CreditTransactionType,
    replay_balance,
    require_positive_amount,
)
from domain.errors import (
    CreditAccountInactive,
    CreditAccountNotFound,
    CreditLimitExceeded,
    InvalidCreditLimit,
    PaymentExceedsBalance,
)
from domain.time import utc_now
from repositories.base import TimeRange
from repositories.credit_repository import CreditRepository
from services.audit_service import AuditRecorder, audited
from services.concurrency import WriteConflict, run_with_retry
from services.settings import LedgerSettings

logger = logging.getLogger(__name__)


class CreditLedger:
    def __init__(
        self,
        accounts: CreditRepository,
        audit: AuditRecorder,
        settings: LedgerSettings,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._accounts = accounts
        self.audit = audit
        self._settings = settings
        self._clock = clock
        self._sleep = sleep

    def get_account(self, account_id: UUID) -> CreditAccount:
        account = self._accounts.get_account(account_id)
        if account is None:
            raise CreditAccountNotFound(account_id)
        return account

    def open_account(
        self,
        owner_id: UUID,
        counterparty_id: UUID,
        credit_limit: Decimal,
        *,
        actor_id: UUID,
    ) -> CreditAccount:
        """
        Extend credit to a counterparty for the first time.

        Raises ValueError if the owner already has an account for them.
        """

        if credit_limit < ZERO:
            raise InvalidCreditLimit("credit_limit must be >= 0")
        account = self._accounts.insert_account(
            owner_id=owner_id,
            counterparty_id=counterparty_id,
            credit_limit=credit_limit,
            created_at=self._clock(),
        )
        self.audit.record_best_effort(
            actor_id=actor_id,
            action=AuditAction.CREDIT_OPEN,
            entity_type=EntityType.CREDIT_ACCOUNT,
            entity_id=account.account_id,
            before=None,
            after=account.snapshot(),
        )
        return account

    # Postings

    @audited(AuditAction.CREDIT_PURCHASE, EntityType.CREDIT_ACCOUNT)
    def post_purchase(
        self,
        account_id: UUID,
        amount: Decimal,
        sale_ref: Optional[UUID],
        *,
        actor_id: UUID,
    ) -> CreditPosting:
        """
        Charge a purchase to the account.

        Raises:
            CreditAccountInactive: the account is suspended or cancelled
            CreditLimitExceeded: balance + amount would exceed the limit
        """

        require_positive_amount(amount)

        def validate(account: CreditAccount) -> None:
            if not account.is_active:
                raise CreditAccountInactive(account_id, account.status.value)
            if not account.can_absorb(amount):
                raise CreditLimitExceeded(account_id, amount, account.available_credit)

        return self._post(
            account_id,
            amount,
            CreditTransactionType.PURCHASE,
            validate,
            actor_id=actor_id,
            reference_id=sale_ref,
            notes="Purchase on credit",
            guard_limit=True,
            guard_status=True,
        )

    @audited(AuditAction.CREDIT_PAYMENT, EntityType.CREDIT_ACCOUNT)
    def post_payment(
        self,
        account_id: UUID,
        amount: Decimal,
        *,
        actor_id: UUID,
        reference_id: Optional[UUID] = None,
        notes: Optional[str] = None,
    ) -> CreditPosting:
        """Record a payment. Stored with a negative amount; the balance may not go negative."""

        require_positive_amount(amount)

        def validate(account: CreditAccount) -> None:
            if amount > account.current_balance:
                raise PaymentExceedsBalance(account_id, amount, account.current_balance)

        return self._post(
            account_id,
            -amount,
            CreditTransactionType.PAYMENT,
            validate,
            actor_id=actor_id,
            reference_id=reference_id,
            notes=notes,
        )

    @audited(AuditAction.CREDIT_ADJUSTMENT, EntityType.CREDIT_ACCOUNT)
    def post_adjustment(
        self,
        account_id: UUID,
        amount: Decimal,
        *,
        actor_id: UUID,
        reference_id: Optional[UUID] = None,
        notes: Optional[str] = None,
    ) -> CreditPosting:
        """
        Signed correction of the balance (e.g. reversing a returned credit sale).

        Allowed on inactive accounts so reversals always go through; the balance
        stays within [0, credit_limit].
        """

        if amount == ZERO:
            raise ValueError("adjustment amount must be non-zero")

        def validate(account: CreditAccount) -> None:
            new_balance = account.current_balance + amount
            if new_balance < ZERO:
                raise PaymentExceedsBalance(account_id, -amount, account.current_balance)
            if amount > ZERO and new_balance > account.credit_limit:
                raise CreditLimitExceeded(account_id, amount, account.available_credit)

        return self._post(
            account_id,
            amount,
            CreditTransactionType.ADJUSTMENT,
            validate,
            actor_id=actor_id,
            reference_id=reference_id,
            notes=notes,
            guard_limit=amount > ZERO,
        )

    # Administration

    @audited(AuditAction.CREDIT_SET_LIMIT, EntityType.CREDIT_ACCOUNT)
    def set_limit(self, account_id: UUID, limit: Decimal, *, actor_id: UUID) -> CreditAccountChange:
        """
        Change the credit limit (owner only).

        An active account may not get a limit below its current balance.
        """

        if limit < ZERO:
            raise InvalidCreditLimit("credit_limit must be >= 0")

        def attempt() -> CreditAccountChange:
            account = self.get_account(account_id)
            if account.is_active and limit < account.current_balance:
                raise InvalidCreditLimit(
                    f"Limit {limit} is below the outstanding balance {account.current_balance}"
                )
            updated = self._accounts.compare_and_set(
                account_id,
                expected=account,
                changes={"credit_limit": limit},
                updated_at=self._clock(),
                guard_limit=True,
                guard_status=True,
            )
            if updated is None:
                raise WriteConflict(f"credit account {account_id} changed since read")
            return CreditAccountChange(before=account, account=updated)

        return self._retry(attempt, account_id)

    @audited(AuditAction.CREDIT_SET_STATUS, EntityType.CREDIT_ACCOUNT)
    def set_status(
        self,
        account_id: UUID,
        status: CreditAccountStatus,
        *,
        actor_id: UUID,
    ) -> CreditAccountChange:
        """Change the account status (owner only)."""

        status = CreditAccountStatus(status)

        def attempt() -> CreditAccountChange:
            account = self.get_account(account_id)
            if status is CreditAccountStatus.ACTIVE and account.current_balance > account.credit_limit:
                raise InvalidCreditLimit(
                    f"Cannot reactivate: balance {account.current_balance} exceeds "
                    f"limit {account.credit_limit}"
                )
            updated = self._accounts.compare_and_set(
                account_id,
                expected=account,
                changes={"status": status.value},
                updated_at=self._clock(),
                guard_limit=True,
                guard_status=True,
            )
            if updated is None:
                raise WriteConflict(f"credit account {account_id} changed since read")
            return CreditAccountChange(before=account, account=updated)

        return self._retry(attempt, account_id)

    # History

    def list_transactions(
        self,
        account_id: UUID,
        *,
        transaction_type: Optional[CreditTransactionType] = None,
        window: TimeRange = TimeRange(),
    ) -> List[CreditTransaction]:
        """All matching transactions of one account, oldest first."""

        transactions: List[CreditTransaction] = []
        offset = 0
        page_size = self._settings.feed_page_size
        while True:
            page = self._accounts.list_transactions_page(
                account_id=account_id,
                transaction_type=transaction_type,
                window=window,
                offset=offset,
                limit=page_size,
            )
            transactions.extend(page)
            if len(page) < page_size:
                return transactions
            offset += len(page)

    def verify_chain(self, account_id: UUID) -> ChainReport:
        """Replay the full history and compare it with the stored balance."""

        account = self.get_account(account_id)
        report = replay_balance(account_id, self.list_transactions(account_id), account.current_balance)
        if not report.is_consistent:
            logger.error(
                "Credit chain broken for account %s: replayed %s, stored %s, %d broken link(s)",
                account_id,
                report.replayed_balance,
                report.current_balance,
                len(report.broken_links),
            )
        return report

    # Internals

    def _post(
        self,
        account_id: UUID,
        signed_amount: Decimal,
        transaction_type: CreditTransactionType,
        validate: Callable[[CreditAccount], None],
        *,
        actor_id: UUID,
        reference_id: Optional[UUID],
        notes: Optional[str],
        guard_limit: bool = False,
        guard_status: bool = False,
    ) -> CreditPosting:
        def attempt() -> CreditPosting:
            account = self.get_account(account_id)
            validate(account)

            previous_balance = account.current_balance
            new_balance = previous_balance + signed_amount
            posted_at = self._clock()
            updated = self._accounts.compare_and_set(
                account_id,
                expected=account,
                changes={"current_balance": new_balance},
                updated_at=posted_at,
                guard_limit=guard_limit,
                guard_status=guard_status,
            )
            if updated is None:
                raise WriteConflict(f"credit account {account_id} changed since read")

            transaction = CreditTransaction(
                transaction_id=uuid4(),
                account_id=account_id,
                transaction_type=transaction_type,
                amount=signed_amount,
                previous_balance=previous_balance,
                new_balance=new_balance,
                created_by=actor_id,
                created_at=posted_at,
                reference_id=reference_id,
                notes=notes,
            )
            try:
                self._accounts.insert_transaction(transaction)
            except Exception:
                landed = self._append_landed(transaction)
                if landed:
                    logger.warning(
                        "Append response for credit transaction %s was lost; the row is stored",
                        transaction.transaction_id,
                    )
                    return CreditPosting(account=updated, transaction=transaction)
                if landed is not None:
                    self._revert_balance(updated, previous_balance)
                raise
            return CreditPosting(account=updated, transaction=transaction)

        return self._retry(attempt, account_id)

    def _append_landed(self, transaction: CreditTransaction) -> Optional[bool]:
        """
        Whether a transaction append that answered with an error was stored.

        None when the lookup fails too: the outcome is unknown, so nothing is
        reverted and the account is left for verify_chain.
        """

        try:
            return self._accounts.get_transaction(transaction.transaction_id) is not None
        except Exception:
            logger.exception(
                "Could not tell whether credit transaction %s of account %s was stored; "
                "balance left as written, run verify_chain",
                transaction.transaction_id,
                transaction.account_id,
            )
            return None

    def _revert_balance(self, written: CreditAccount, previous_balance: Decimal) -> None:
        """Undo a balance write whose transaction could not be appended."""

        try:
            reverted = self._accounts.compare_and_set(
                written.account_id,
                expected=written,
                changes={"current_balance": previous_balance},
                updated_at=self._clock(),
            )
        except Exception:
            logger.exception(
                "Could not revert balance of credit account %s to %s after a failed "
                "transaction append",
                written.account_id,
                previous_balance,
            )
            return
        if reverted is None:
            logger.error(
                "Balance of credit account %s moved before it could be reverted to %s; "
                "run verify_chain",
                written.account_id,
                previous_balance,
            )

    def _retry(self, attempt: Callable[[], object], account_id: UUID):
        return run_with_retry(
            attempt,
            entity_type=EntityType.CREDIT_ACCOUNT,
            entity_id=account_id,
            attempts=self._settings.max_write_attempts,
            backoff_base=self._settings.retry_backoff_seconds,
            sleep=self._sleep,
        )


__all__ = ["CreditLedger"]
