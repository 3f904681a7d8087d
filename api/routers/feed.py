"""
Reporting Feed API Endpoints.

Read-only access to committed sales (also as CSV) and the audit log for
downstream reporting.
"""

from datetime import datetime
from itertools import islice
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from api.dependencies import get_ledger_service
from api.models import AuditListResponse, SaleListResponse, audit_entry_response, sale_response
from services.ledger_feed import FeedFilters
from services.ledger_service import LedgerService
from services.sales_export import generate_sales_csv

router = APIRouter()


@router.get(
    "/feed/sales",
    response_model=SaleListResponse,
    summary="Committed Sales Feed",
    description="Committed sales ordered by sale time, with optional seller and time filters."
)
def committed_sales_feed(
    seller_id: Optional[UUID] = Query(None, description="Filter by seller"),
    start: Optional[datetime] = Query(None, description="Earliest sold_at (UTC, inclusive)"),
    end: Optional[datetime] = Query(None, description="Latest sold_at (UTC, inclusive)"),
    with_items: bool = Query(True, description="Include line items"),
    limit: int = Query(100, ge=1, le=1000, description="Maximum number of results to return"),
    service: LedgerService = Depends(get_ledger_service),
):
    """
    **Example usage:**
    - One seller's sales: `GET /api/v1/feed/sales?seller_id=...`
    - A day of sales: `GET /api/v1/feed/sales?start=2025-01-01T00:00:00Z&end=2025-01-01T23:59:59Z`
    """
    try:
        filters = FeedFilters(start=start, end=end, seller_id=seller_id)
        sales = islice(service.feed.committed_sales(filters, with_items=with_items), limit)
        items = [sale_response(sale) for sale in sales]
        return SaleListResponse(items=items, total_count=len(items))

    except ValueError as e:
        # naive timestamps
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to read sales feed: {str(e)}"
        )


@router.get(
    "/feed/audit",
    response_model=AuditListResponse,
    summary="Audit Log Feed",
    description="Audit entries ordered by time, filterable by entity."
)
def audit_feed(
    entity_type: Optional[str] = Query(None, description="product, credit_account, sale or inventory_adjustment"),
    entity_id: Optional[UUID] = Query(None, description="Filter by entity"),
    start: Optional[datetime] = Query(None, description="Earliest created_at (UTC, inclusive)"),
    end: Optional[datetime] = Query(None, description="Latest created_at (UTC, inclusive)"),
    limit: int = Query(100, ge=1, le=1000, description="Maximum number of results to return"),
    service: LedgerService = Depends(get_ledger_service),
):
    try:
        filters = FeedFilters(start=start, end=end, entity_type=entity_type, entity_id=entity_id)
        items = [audit_entry_response(entry) for entry in islice(service.feed.audit_entries(filters), limit)]
        return AuditListResponse(items=items, total_count=len(items))

    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to read audit feed: {str(e)}"
        )


@router.get(
    "/feed/sales/export",
    summary="Export Committed Sales (CSV)",
    description="One CSV row per sale line item for a seller's committed sales.",
    response_class=Response,
)
def export_sales_csv(
    seller_id: UUID = Query(..., description="Seller whose sales are exported"),
    start: Optional[datetime] = Query(None, description="Earliest sold_at (UTC, inclusive)"),
    end: Optional[datetime] = Query(None, description="Latest sold_at (UTC, inclusive)"),
    service: LedgerService = Depends(get_ledger_service),
):
    try:
        filters = FeedFilters(start=start, end=end, seller_id=seller_id)
        content = generate_sales_csv(service.feed.committed_sales(filters, with_items=True))

    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to export sales: {str(e)}"
        )

    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="sales_{seller_id}.csv"'},
    )
