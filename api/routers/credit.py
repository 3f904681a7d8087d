"""
Credit API Endpoints.

Endpoints for opening credit accounts, taking payments, administering limits
and status, and reading an account's history.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import get_ledger_service
from api.errors import to_http_exception
from api.models import (
    ChainReportResponse,
    CreditAccountCreateRequest,
    CreditAccountResponse,
    CreditLimitRequest,
    CreditPaymentRequest,
    CreditStatusRequest,
    CreditTransactionListResponse,
    credit_account_response,
    credit_transaction_response,
)
from domain.credit import CreditTransactionType
from domain.errors import LedgerError
from repositories.base import TimeRange
from services.ledger_service import LedgerService

router = APIRouter()


def _account_response(service: LedgerService, account) -> CreditAccountResponse:
    return credit_account_response(account, service.credit_health(account))


@router.post(
    "/credit-accounts",
    response_model=CreditAccountResponse,
    status_code=201,
    summary="Open Credit Account",
)
def open_credit_account(
    request: CreditAccountCreateRequest,
    service: LedgerService = Depends(get_ledger_service),
):
    """
    Extend credit from an owner to a counterparty.

    The account starts active with a zero balance. Only one account may exist
    per (owner, counterparty) pair; a second one is rejected with 409.
    """
    try:
        account = service.open_credit_account(
            request.owner_id,
            request.counterparty_id,
            request.credit_limit,
            actor_id=request.actor_id,
        )
        return _account_response(service, account)

    except LedgerError as e:
        raise to_http_exception(e)
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to open credit account: {str(e)}"
        )


@router.get(
    "/credit-accounts/{account_id}",
    response_model=CreditAccountResponse,
    summary="Get Credit Account",
)
def get_credit_account(account_id: UUID, service: LedgerService = Depends(get_ledger_service)):
    """Fetch an account with its available credit and health flag."""
    try:
        return _account_response(service, service.get_credit_account(account_id))

    except LedgerError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to fetch credit account: {str(e)}"
        )


@router.post(
    "/credit-accounts/{account_id}/payments",
    response_model=CreditAccountResponse,
    summary="Record Payment",
)
def record_payment(
    account_id: UUID,
    request: CreditPaymentRequest,
    service: LedgerService = Depends(get_ledger_service),
):
    """
    Record a payment against the outstanding balance.

    A payment larger than the balance is rejected with 409.
    """
    try:
        account = service.post_credit_payment(account_id, request.amount, actor_id=request.actor_id)
        return _account_response(service, account)

    except LedgerError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to record payment: {str(e)}"
        )


@router.put(
    "/credit-accounts/{account_id}/limit",
    response_model=CreditAccountResponse,
    summary="Set Credit Limit",
)
def set_credit_limit(
    account_id: UUID,
    request: CreditLimitRequest,
    service: LedgerService = Depends(get_ledger_service),
):
    """Change the credit limit. An active account cannot go below its balance."""
    try:
        account = service.set_credit_limit(account_id, request.credit_limit, actor_id=request.actor_id)
        return _account_response(service, account)

    except LedgerError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to set credit limit: {str(e)}"
        )


@router.put(
    "/credit-accounts/{account_id}/status",
    response_model=CreditAccountResponse,
    summary="Set Account Status",
)
def set_credit_status(
    account_id: UUID,
    request: CreditStatusRequest,
    service: LedgerService = Depends(get_ledger_service),
):
    """Suspend, cancel or reactivate an account."""
    try:
        account = service.set_credit_status(account_id, request.status, actor_id=request.actor_id)
        return _account_response(service, account)

    except LedgerError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to set account status: {str(e)}"
        )


@router.get(
    "/credit-accounts/{account_id}/transactions",
    response_model=CreditTransactionListResponse,
    summary="List Credit Transactions",
    description="Transaction history of one account, oldest first."
)
def list_credit_transactions(
    account_id: UUID,
    transaction_type: Optional[CreditTransactionType] = Query(None, description="purchase, payment or adjustment"),
    start: Optional[datetime] = Query(None, description="Earliest created_at (UTC, inclusive)"),
    end: Optional[datetime] = Query(None, description="Latest created_at (UTC, inclusive)"),
    service: LedgerService = Depends(get_ledger_service),
):
    """
    List an account's transactions.

    **Example usage:**
    - All history: `GET /api/v1/credit-accounts/{id}/transactions`
    - Payments only: `GET /api/v1/credit-accounts/{id}/transactions?transaction_type=payment`
    """
    try:
        transactions = service.list_credit_transactions(
            account_id,
            transaction_type=transaction_type,
            window=TimeRange(start=start, end=end),
        )
        items = [credit_transaction_response(txn) for txn in transactions]
        return CreditTransactionListResponse(items=items, total_count=len(items))

    except LedgerError as e:
        raise to_http_exception(e)
    except ValueError as e:
        # naive timestamps
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to list credit transactions: {str(e)}"
        )


@router.get(
    "/credit-accounts/{account_id}/chain",
    response_model=ChainReportResponse,
    summary="Verify Credit History",
    description="Replay the account's history and compare it with the stored balance."
)
def verify_credit_chain(account_id: UUID, service: LedgerService = Depends(get_ledger_service)):
    try:
        report = service.verify_credit_chain(account_id)
        return ChainReportResponse(
            account_id=report.account_id,
            transaction_count=report.transaction_count,
            replayed_balance=report.replayed_balance,
            current_balance=report.current_balance,
            broken_links=report.broken_links,
            is_consistent=report.is_consistent,
        )

    except LedgerError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to verify credit history: {str(e)}"
        )
