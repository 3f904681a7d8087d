"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from domain.adjustment import AdjustmentDirection
from domain.credit import CreditAccountStatus, CreditHealth, CreditTransactionType
from domain.sale import PaymentMethod, SaleStatus


# ============================================================================
# Sale Models
# ============================================================================

class SaleLineRequest(BaseModel):
    """One line of a sale request."""
    product_id: UUID
    quantity: int = Field(..., gt=0, description="Units sold (positive integer)")


class SaleCreateRequest(BaseModel):
    """Request to record a sale."""
    seller_id: UUID
    actor_id: UUID
    line_items: List[SaleLineRequest] = Field(
        ...,
        min_length=1,
        description="Products and quantities sold, in till order"
    )
    payment_method: PaymentMethod
    credit_account_id: Optional[UUID] = Field(
        None,
        description="Required when payment_method is 'credit', forbidden otherwise"
    )
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "seller_id": "123e4567-e89b-12d3-a456-426614174000",
                "actor_id": "123e4567-e89b-12d3-a456-426614174001",
                "line_items": [
                    {"product_id": "123e4567-e89b-12d3-a456-426614174002", "quantity": 2}
                ],
                "payment_method": "credit",
                "credit_account_id": "123e4567-e89b-12d3-a456-426614174003"
            }
        }


class SaleLineItemResponse(BaseModel):
    """Line item of a sale, with its price snapshot."""
    line_number: int
    product_id: UUID
    quantity: int
    unit_price: Decimal
    line_total: Decimal


class SaleResponse(BaseModel):
    """Sale header with its line items."""
    sale_id: UUID
    seller_id: UUID
    status: SaleStatus
    payment_method: PaymentMethod
    total_amount: Decimal
    sold_at: datetime
    credit_account_id: Optional[UUID] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    items: List[SaleLineItemResponse]

    class Config:
        json_schema_extra = {
            "example": {
                "sale_id": "123e4567-e89b-12d3-a456-426614174004",
                "seller_id": "123e4567-e89b-12d3-a456-426614174000",
                "status": "committed",
                "payment_method": "cash",
                "total_amount": "20.00",
                "sold_at": "2025-01-01T12:00:00Z",
                "items": [
                    {
                        "line_number": 1,
                        "product_id": "123e4567-e89b-12d3-a456-426614174002",
                        "quantity": 2,
                        "unit_price": "10.00",
                        "line_total": "20.00"
                    }
                ]
            }
        }


class SaleListResponse(BaseModel):
    """Page of committed sales from the reporting feed."""
    items: List[SaleResponse]
    total_count: int


class VoidSaleRequest(BaseModel):
    actor_id: UUID


class ReturnSaleRequest(BaseModel):
    """Request to reverse a committed sale."""
    actor_id: UUID
    reason: str = Field(..., min_length=1, description="Why the goods came back")


class SaleReturnResponse(BaseModel):
    return_id: UUID
    sale_id: UUID
    reason: str
    restocked_units: int
    credit_reversed: Decimal
    created_at: datetime


# ============================================================================
# Credit Models
# ============================================================================

class CreditAccountCreateRequest(BaseModel):
    """Request to extend credit to a counterparty."""
    owner_id: UUID
    counterparty_id: UUID
    credit_limit: Decimal = Field(..., ge=0)
    actor_id: UUID

    class Config:
        json_schema_extra = {
            "example": {
                "owner_id": "123e4567-e89b-12d3-a456-426614174010",
                "counterparty_id": "123e4567-e89b-12d3-a456-426614174011",
                "credit_limit": "100.00",
                "actor_id": "123e4567-e89b-12d3-a456-426614174010"
            }
        }


class CreditAccountResponse(BaseModel):
    """Credit account with its derived availability and health flag."""
    account_id: UUID
    owner_id: UUID
    counterparty_id: UUID
    credit_limit: Decimal
    current_balance: Decimal
    available_credit: Decimal
    status: CreditAccountStatus
    health: CreditHealth


class CreditPaymentRequest(BaseModel):
    amount: Decimal = Field(..., gt=0)
    actor_id: UUID


class CreditLimitRequest(BaseModel):
    credit_limit: Decimal = Field(..., ge=0)
    actor_id: UUID


class CreditStatusRequest(BaseModel):
    status: CreditAccountStatus
    actor_id: UUID


class CreditTransactionResponse(BaseModel):
    """Single entry of a credit account's history."""
    transaction_id: UUID
    account_id: UUID
    transaction_type: CreditTransactionType
    amount: Decimal  # negative for payments
    previous_balance: Decimal
    new_balance: Decimal
    reference_id: Optional[UUID] = None
    notes: Optional[str] = None
    created_by: UUID
    created_at: datetime


class CreditTransactionListResponse(BaseModel):
    items: List[CreditTransactionResponse]
    total_count: int


class ChainReportResponse(BaseModel):
    """Outcome of replaying an account's history against its balance."""
    account_id: UUID
    transaction_count: int
    replayed_balance: Decimal
    current_balance: Decimal
    broken_links: List[UUID]
    is_consistent: bool


# ============================================================================
# Product Models
# ============================================================================

class StockAdjustmentRequest(BaseModel):
    """Manual stock change outside of a sale."""
    direction: AdjustmentDirection
    quantity: int = Field(..., gt=0)
    reason: str = Field(..., min_length=1)
    actor_id: UUID

    class Config:
        json_schema_extra = {
            "example": {
                "direction": "remove",
                "quantity": 3,
                "reason": "Damaged in transit",
                "actor_id": "123e4567-e89b-12d3-a456-426614174001"
            }
        }


class ProductResponse(BaseModel):
    product_id: UUID
    owner_id: UUID
    name: str
    category: Optional[str] = None
    sku: Optional[str] = None
    quantity_on_hand: int
    min_stock_level: int
    unit_price: Decimal
    is_low_stock: bool


class ProductListResponse(BaseModel):
    items: List[ProductResponse]
    total_count: int


# ============================================================================
# Audit Models
# ============================================================================

class AuditEntryResponse(BaseModel):
    entry_id: UUID
    actor_id: UUID
    action: str
    entity_type: str
    entity_id: UUID
    created_at: datetime
    before_state: Optional[Dict[str, Any]] = None
    after_state: Optional[Dict[str, Any]] = None


class AuditListResponse(BaseModel):
    items: List[AuditEntryResponse]
    total_count: int


# ============================================================================
# Domain -> response conversion
# ============================================================================

def sale_response(sale) -> SaleResponse:
    return SaleResponse(
        sale_id=sale.sale_id,
        seller_id=sale.seller_id,
        status=sale.status,
        payment_method=sale.payment_method,
        total_amount=sale.total_amount,
        sold_at=sale.sold_at,
        credit_account_id=sale.credit_account_id,
        customer_name=sale.customer_name,
        customer_phone=sale.customer_phone,
        items=[
            SaleLineItemResponse(
                line_number=item.line_number,
                product_id=item.product_id,
                quantity=item.quantity,
                unit_price=item.unit_price,
                line_total=item.line_total,
            )
            for item in sale.items
        ],
    )


def credit_account_response(account, health: CreditHealth) -> CreditAccountResponse:
    return CreditAccountResponse(
        account_id=account.account_id,
        owner_id=account.owner_id,
        counterparty_id=account.counterparty_id,
        credit_limit=account.credit_limit,
        current_balance=account.current_balance,
        available_credit=account.available_credit,
        status=account.status,
        health=health,
    )


def credit_transaction_response(txn) -> CreditTransactionResponse:
    return CreditTransactionResponse(
        transaction_id=txn.transaction_id,
        account_id=txn.account_id,
        transaction_type=txn.transaction_type,
        amount=txn.amount,
        previous_balance=txn.previous_balance,
        new_balance=txn.new_balance,
        reference_id=txn.reference_id,
        notes=txn.notes,
        created_by=txn.created_by,
        created_at=txn.created_at,
    )


def product_response(product) -> ProductResponse:
    return ProductResponse(
        product_id=product.product_id,
        owner_id=product.owner_id,
        name=product.name,
        category=product.category,
        sku=product.sku,
        quantity_on_hand=product.quantity_on_hand,
        min_stock_level=product.min_stock_level,
        unit_price=product.unit_price,
        is_low_stock=product.is_low_stock,
    )


def audit_entry_response(entry) -> AuditEntryResponse:
    return AuditEntryResponse(
        entry_id=entry.entry_id,
        actor_id=entry.actor_id,
        action=entry.action,
        entity_type=entry.entity_type,
        entity_id=entry.entity_id,
        created_at=entry.created_at,
        before_state=dict(entry.before_state) if entry.before_state is not None else None,
        after_state=dict(entry.after_state) if entry.after_state is not None else None,
    )
