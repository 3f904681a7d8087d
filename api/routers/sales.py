"""
Sales API Endpoints.

Endpoints for recording, voiding and returning sales.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import get_ledger_service
from api.errors import to_http_exception
from api.models import (
    ReturnSaleRequest,
    SaleCreateRequest,
    SaleResponse,
    SaleReturnResponse,
    VoidSaleRequest,
    sale_response,
)
from domain.errors import LedgerError
from domain.sale import SaleLineRequest
from services.ledger_service import LedgerService

router = APIRouter()


@router.post(
    "/sales",
    response_model=SaleResponse,
    status_code=201,
    summary="Record Sale",
    description="Record a sale, take its stock and, for credit sales, charge the credit account."
)
def record_sale(request: SaleCreateRequest, service: LedgerService = Depends(get_ledger_service)):
    """
    Record a sale as one all-or-nothing unit.

    **Process:**
    1. Validates the line items and the payment method
    2. Snapshots the current unit price of every product
    3. Takes stock line by line
    4. For `credit` sales, charges the total to the credit account
    5. Commits the sale

    If any step fails, everything already done is undone and the sale is not
    recorded. Stock and credit rejections come back as 409 with the amount
    actually available; a 503 means the sale raced with other writers and can
    be resubmitted.
    """
    try:
        sale = service.submit_sale(
            request.seller_id,
            [SaleLineRequest(product_id=line.product_id, quantity=line.quantity) for line in request.line_items],
            request.payment_method,
            request.credit_account_id,
            actor_id=request.actor_id,
            customer_name=request.customer_name,
            customer_phone=request.customer_phone,
        )
        return sale_response(sale)

    except LedgerError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to record sale: {str(e)}"
        )


@router.get(
    "/sales/{sale_id}",
    response_model=SaleResponse,
    summary="Get Sale",
)
def get_sale(sale_id: UUID, service: LedgerService = Depends(get_ledger_service)):
    """Fetch a sale with its line items."""
    try:
        return sale_response(service.get_sale(sale_id))

    except LedgerError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to fetch sale: {str(e)}"
        )


@router.post(
    "/sales/{sale_id}/void",
    response_model=SaleResponse,
    summary="Void Draft Sale",
    description="Void a sale that never committed. Voiding twice is a no-op."
)
def void_sale(sale_id: UUID, request: VoidSaleRequest, service: LedgerService = Depends(get_ledger_service)):
    """
    Void a draft sale.

    Committed sales cannot be voided (409); record a return instead.
    """
    try:
        return sale_response(service.void_sale(sale_id, actor_id=request.actor_id))

    except LedgerError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to void sale: {str(e)}"
        )


@router.post(
    "/sales/{sale_id}/return",
    response_model=SaleReturnResponse,
    status_code=201,
    summary="Return Sale",
    description="Reverse a committed sale: restock its items and reverse any credit charge."
)
def return_sale(sale_id: UUID, request: ReturnSaleRequest, service: LedgerService = Depends(get_ledger_service)):
    """
    Record a return for a committed sale.

    The original sale is left untouched. A sale can be returned once; a second
    return is rejected with 409.
    """
    try:
        sale_return = service.return_sale(sale_id, actor_id=request.actor_id, reason=request.reason)
        return SaleReturnResponse(
            return_id=sale_return.return_id,
            sale_id=sale_return.sale_id,
            reason=sale_return.reason,
            restocked_units=sale_return.restocked_units,
            credit_reversed=sale_return.credit_reversed,
            created_at=sale_return.created_at,
        )

    except LedgerError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to return sale: {str(e)}"
        )
