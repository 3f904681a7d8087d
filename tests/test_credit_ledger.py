"""
Tests for `services/credit_ledger.py`.

Covers:
- Purchases within the limit, rejections beyond it, inactive accounts.
- Payments stored as negative amounts with the balance pair recorded.
- Administrative limit and status changes keep 0 <= balance <= limit.
- The transaction history replays to the stored balance.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from domain.audit import AuditAction
from domain.credit import CreditAccountStatus, CreditTransactionType
from domain.errors import (
    CreditAccountInactive,
    CreditAccountNotFound,
    CreditLimitExceeded,
    InvalidCreditLimit,
    PaymentExceedsBalance,
)
from services.ledger_service import LedgerService


def test_open_account_starts_active_with_zero_balance(ledger, supabase, seller_id, actor_id) -> None:
    """Verify a new account is active, empty and audited."""

    account = ledger.open_credit_account(seller_id, uuid4(), Decimal("5000"), actor_id=actor_id)

    assert account.status is CreditAccountStatus.ACTIVE
    assert account.current_balance == Decimal("0")
    assert [row["action"] for row in supabase.rows("audit_log")] == [AuditAction.CREDIT_OPEN]


def test_one_account_per_counterparty(ledger, seller_id, retailer_id, actor_id) -> None:
    """Verify a second account for the same pair is refused."""

    ledger.open_credit_account(seller_id, retailer_id, Decimal("5000"), actor_id=actor_id)

    with pytest.raises(ValueError):
        ledger.open_credit_account(seller_id, retailer_id, Decimal("9000"), actor_id=actor_id)


def test_purchase_within_limit(ledger, actor_id, make_account) -> None:
    """Verify a purchase raises the balance and records the balance pair."""

    account = make_account("100000", "50000")
    sale_ref = uuid4()

    posting = ledger.credit.post_purchase(account.account_id, Decimal("50000"), sale_ref, actor_id=actor_id)

    assert posting.new_balance == Decimal("100000")
    assert posting.transaction.previous_balance == Decimal("50000")
    assert posting.transaction.reference_id == sale_ref


def test_purchase_beyond_limit_is_rejected(ledger, actor_id, make_account) -> None:
    """Verify a purchase that would exceed the limit reports the available credit."""

    account = make_account("100000", "90000")

    with pytest.raises(CreditLimitExceeded) as excinfo:
        ledger.credit.post_purchase(account.account_id, Decimal("20000"), None, actor_id=actor_id)

    assert excinfo.value.available == Decimal("10000")
    assert ledger.get_credit_account(account.account_id).current_balance == Decimal("90000")


def test_purchase_on_suspended_account_is_rejected(ledger, actor_id, make_account) -> None:
    """Verify suspended accounts take no new purchases."""

    account = make_account("1000")
    ledger.set_credit_status(account.account_id, CreditAccountStatus.SUSPENDED, actor_id=actor_id)

    with pytest.raises(CreditAccountInactive):
        ledger.credit.post_purchase(account.account_id, Decimal("10"), None, actor_id=actor_id)


def test_unknown_account(ledger, actor_id) -> None:
    """Verify a missing account raises CreditAccountNotFound."""

    with pytest.raises(CreditAccountNotFound):
        ledger.post_credit_payment(uuid4(), Decimal("1"), actor_id=actor_id)


def test_payment_reduces_balance(ledger, actor_id, make_account) -> None:
    """Verify limit 100000, balance 50000, payment 20000 leaves 30000 with the pair recorded."""

    account = make_account("100000", "50000")

    updated = ledger.post_credit_payment(account.account_id, Decimal("20000"), actor_id=actor_id)

    assert updated.current_balance == Decimal("30000")
    payments = ledger.list_credit_transactions(
        account.account_id, transaction_type=CreditTransactionType.PAYMENT
    )
    assert len(payments) == 1
    assert payments[0].amount == Decimal("-20000")
    assert payments[0].previous_balance == Decimal("50000")
    assert payments[0].new_balance == Decimal("30000")


def test_payment_beyond_balance_is_rejected(ledger, actor_id, make_account) -> None:
    """Verify a payment cannot take the balance below zero."""

    account = make_account("1000", "100")

    with pytest.raises(PaymentExceedsBalance) as excinfo:
        ledger.post_credit_payment(account.account_id, Decimal("150"), actor_id=actor_id)

    assert excinfo.value.balance == Decimal("100")


def test_payment_allowed_on_suspended_account(ledger, actor_id, make_account) -> None:
    """Verify a suspended counterparty can still pay down its balance."""

    account = make_account("1000", "400")
    ledger.set_credit_status(account.account_id, CreditAccountStatus.SUSPENDED, actor_id=actor_id)

    updated = ledger.post_credit_payment(account.account_id, Decimal("400"), actor_id=actor_id)

    assert updated.current_balance == Decimal("0")
    assert updated.status is CreditAccountStatus.SUSPENDED


def test_non_decimal_amount_is_refused(ledger, actor_id, make_account) -> None:
    """Verify floats never reach the ledger."""

    account = make_account("1000")

    with pytest.raises(TypeError):
        ledger.post_credit_payment(account.account_id, 10.5, actor_id=actor_id)  # type: ignore[arg-type]


def test_adjustment_cannot_go_negative(ledger, actor_id, make_account) -> None:
    """Verify a negative adjustment larger than the balance is refused."""

    account = make_account("1000", "100")

    with pytest.raises(PaymentExceedsBalance):
        ledger.credit.post_adjustment(account.account_id, Decimal("-101"), actor_id=actor_id)


def test_set_limit_below_balance_is_refused(ledger, actor_id, make_account) -> None:
    """Verify an active account's limit cannot drop under what it owes."""

    account = make_account("1000", "600")

    with pytest.raises(InvalidCreditLimit):
        ledger.set_credit_limit(account.account_id, Decimal("500"), actor_id=actor_id)

    updated = ledger.set_credit_limit(account.account_id, Decimal("600"), actor_id=actor_id)
    assert updated.credit_limit == Decimal("600")
    assert updated.available_credit == Decimal("0")


def test_set_limit_is_audited_with_before_and_after(ledger, supabase, actor_id, make_account) -> None:
    """Verify a limit change records the old and new limit."""

    account = make_account("1000")

    ledger.set_credit_limit(account.account_id, Decimal("2500"), actor_id=actor_id)

    entry = [row for row in supabase.rows("audit_log") if row["action"] == AuditAction.CREDIT_SET_LIMIT][0]
    assert entry["before_state"]["credit_limit"] == "1000"
    assert entry["after_state"]["credit_limit"] == "2500"


def test_reactivation_requires_balance_within_limit(ledger, actor_id, make_account) -> None:
    """Verify a suspended account over its (lowered) limit cannot be reactivated."""

    account = make_account("1000", "800")
    ledger.set_credit_status(account.account_id, CreditAccountStatus.SUSPENDED, actor_id=actor_id)
    ledger.set_credit_limit(account.account_id, Decimal("500"), actor_id=actor_id)

    with pytest.raises(InvalidCreditLimit):
        ledger.set_credit_status(account.account_id, CreditAccountStatus.ACTIVE, actor_id=actor_id)

    ledger.post_credit_payment(account.account_id, Decimal("300"), actor_id=actor_id)
    reactivated = ledger.set_credit_status(account.account_id, CreditAccountStatus.ACTIVE, actor_id=actor_id)
    assert reactivated.is_active


def test_failed_transaction_append_reverts_balance(ledger, supabase, actor_id, make_account) -> None:
    """Verify the balance is restored when the history write fails."""

    account = make_account("1000", "200")
    supabase.fail("credit_transactions", "insert")

    with pytest.raises(RuntimeError):
        ledger.post_credit_payment(account.account_id, Decimal("50"), actor_id=actor_id)

    assert ledger.get_credit_account(account.account_id).current_balance == Decimal("200")
    assert ledger.verify_credit_chain(account.account_id).is_consistent


def test_lost_append_response_keeps_the_posting(ledger, supabase, actor_id, make_account) -> None:
    """Verify a transaction stored despite an error response is not reverted."""

    account = make_account("100000", "50000")
    supabase.lose_response("credit_transactions", "insert")

    updated = ledger.post_credit_payment(account.account_id, Decimal("20000"), actor_id=actor_id)

    assert updated.current_balance == Decimal("30000")
    assert ledger.get_credit_account(account.account_id).current_balance == Decimal("30000")
    payments = ledger.list_credit_transactions(
        account.account_id, transaction_type=CreditTransactionType.PAYMENT
    )
    assert [txn.amount for txn in payments] == [Decimal("-20000")]
    assert ledger.verify_credit_chain(account.account_id).is_consistent


def test_unknown_append_outcome_leaves_balance_as_written(ledger, supabase, actor_id, make_account) -> None:
    """Verify nothing is reverted when the append cannot be confirmed either way."""

    account = make_account("1000", "200")
    supabase.fail("credit_transactions", "insert")
    supabase.fail("credit_transactions", "select")

    with pytest.raises(RuntimeError):
        ledger.post_credit_payment(account.account_id, Decimal("50"), actor_id=actor_id)

    assert ledger.get_credit_account(account.account_id).current_balance == Decimal("150")
    assert not ledger.verify_credit_chain(account.account_id).is_consistent


def test_concurrent_balance_change_is_reread(ledger, supabase, actor_id, make_account) -> None:
    """Verify a purchase re-validates against a balance changed by another writer."""

    account = make_account("1000", "500")
    supabase.before(
        "credit_accounts",
        "update",
        lambda: supabase.set_column("credit_accounts", account.account_id, "current_balance", "950"),
    )

    with pytest.raises(CreditLimitExceeded) as excinfo:
        ledger.credit.post_purchase(account.account_id, Decimal("100"), None, actor_id=actor_id)

    assert excinfo.value.available == Decimal("50")


def test_chain_replays_to_current_balance(ledger, actor_id, make_account) -> None:
    """Verify a mixed history replays to the stored balance across listing pages."""

    account = make_account("10000")
    ledger.credit.post_purchase(account.account_id, Decimal("3000"), None, actor_id=actor_id)
    ledger.post_credit_payment(account.account_id, Decimal("1000"), actor_id=actor_id)
    ledger.credit.post_purchase(account.account_id, Decimal("2500.50"), None, actor_id=actor_id)
    ledger.credit.post_adjustment(account.account_id, Decimal("-500.50"), actor_id=actor_id, notes="Goodwill")
    ledger.post_credit_payment(account.account_id, Decimal("2000"), actor_id=actor_id)

    report = ledger.verify_credit_chain(account.account_id)

    assert report.transaction_count == 5
    assert report.replayed_balance == Decimal("2000.00")
    assert report.is_consistent


def test_chain_detects_tampered_balance(ledger, supabase, actor_id, make_account) -> None:
    """Verify a balance edited outside the ledger is detected."""

    account = make_account("1000", "300")
    supabase.set_column("credit_accounts", account.account_id, "current_balance", "250")

    report = ledger.verify_credit_chain(account.account_id)

    assert not report.is_consistent
    assert report.replayed_balance == Decimal("300")
    assert report.current_balance == Decimal("250")


def test_chain_with_equal_timestamps_spans_pages(supabase, settings, seller_id, actor_id) -> None:
    """Verify postings sharing one timestamp list in posting order across pages."""

    frozen = datetime(2025, 1, 1, 9, 0, 0, tzinfo=timezone.utc)
    ledger = LedgerService(supabase, settings, clock=lambda: frozen, sleep=lambda seconds: None)
    supabase.reverse_ties = True
    account = ledger.open_credit_account(seller_id, uuid4(), Decimal("1000"), actor_id=actor_id)
    for amount in ("100", "200", "300"):
        ledger.credit.post_purchase(account.account_id, Decimal(amount), None, actor_id=actor_id)
    ledger.post_credit_payment(account.account_id, Decimal("50"), actor_id=actor_id)

    history = ledger.list_credit_transactions(account.account_id)

    assert [txn.amount for txn in history] == [
        Decimal("100"),
        Decimal("200"),
        Decimal("300"),
        Decimal("-50"),
    ]
    assert ledger.verify_credit_chain(account.account_id).is_consistent
