"""
Products API Endpoints.

Endpoints for manual stock adjustments and low-stock reporting.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import get_ledger_service
from api.errors import to_http_exception
from api.models import (
    ProductListResponse,
    ProductResponse,
    StockAdjustmentRequest,
    product_response,
)
from domain.errors import LedgerError
from services.ledger_service import LedgerService

router = APIRouter()


@router.get(
    "/products/low-stock",
    response_model=ProductListResponse,
    summary="Low Stock Products",
    description="Products of one seller at or below their minimum stock level."
)
def list_low_stock(
    owner_id: UUID = Query(..., description="Seller whose catalogue is checked"),
    service: LedgerService = Depends(get_ledger_service),
):
    try:
        items = [product_response(product) for product in service.low_stock_products(owner_id)]
        return ProductListResponse(items=items, total_count=len(items))

    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to list low stock products: {str(e)}"
        )


@router.post(
    "/products/{product_id}/adjustments",
    response_model=ProductResponse,
    status_code=201,
    summary="Adjust Stock",
    description="Add or remove stock outside of a sale (damage, correction, restock)."
)
def adjust_stock(
    product_id: UUID,
    request: StockAdjustmentRequest,
    service: LedgerService = Depends(get_ledger_service),
):
    """
    Record a manual stock adjustment.

    Removing more than is on hand is rejected with 409 and the quantity
    actually available.

    **Example request:**
    ```json
    {
      "direction": "remove",
      "quantity": 3,
      "reason": "Damaged in transit",
      "actor_id": "123e4567-e89b-12d3-a456-426614174001"
    }
    ```
    """
    try:
        product = service.adjust_stock(
            product_id,
            request.direction,
            request.quantity,
            request.reason,
            actor_id=request.actor_id,
        )
        return product_response(product)

    except LedgerError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to adjust stock: {str(e)}"
        )
