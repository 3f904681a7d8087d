"""
Sale repository (persistence).

This module provides *only* persistence operations for sale headers, their
line items and sale returns. It does not enforce business rules (totals,
stock, credit); those live in the sale transaction processor. Status changes
are conditional on the status the caller last saw.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, List, Mapping, Optional, Sequence
from uuid import UUID, uuid4

from domain.sale import (
    PaymentMethod,
    Sale,
    SaleLineItem,
    SaleReturn,
    SaleStatus,
)
from domain.time import parse_utc_datetime, to_iso_utc
from repositories.base import SupabaseRepository, TimeRange

# Supabase table names for sales.
# Keep these aligned with your database schema.
_SALES_TABLE: str = "sales"
_SALE_ITEMS_TABLE: str = "sale_items"
_SALE_RETURNS_TABLE: str = "sale_returns"


def _row_to_sale(row: Mapping[str, Any], items: Sequence[SaleLineItem] = ()) -> Sale:
    """Convert a Supabase row into a Sale."""

    credit_account_id = row.get("credit_account_id")
    return Sale(
        sale_id=UUID(str(row["id"])),
        seller_id=UUID(str(row["seller_id"])),
        sold_at=parse_utc_datetime(row["sold_at"]),
        payment_method=PaymentMethod(str(row["payment_method"])),
        total_amount=Decimal(str(row["total_amount"])),
        status=SaleStatus(str(row["status"])),
        customer_name=row.get("customer_name"),
        customer_phone=row.get("customer_phone"),
        credit_account_id=UUID(str(credit_account_id)) if credit_account_id else None,
        items=tuple(items),
        created_at=parse_utc_datetime(row["created_at"]) if row.get("created_at") else None,
        updated_at=parse_utc_datetime(row["updated_at"]) if row.get("updated_at") else None,
    )


def _row_to_line_item(row: Mapping[str, Any]) -> SaleLineItem:
    return SaleLineItem(
        line_item_id=UUID(str(row["id"])),
        sale_id=UUID(str(row["sale_id"])),
        product_id=UUID(str(row["product_id"])),
        quantity=int(row["quantity"]),
        unit_price=Decimal(str(row["unit_price"])),
        line_number=int(row["line_number"]),
    )


def _row_to_return(row: Mapping[str, Any]) -> SaleReturn:
    return SaleReturn(
        return_id=UUID(str(row["id"])),
        sale_id=UUID(str(row["sale_id"])),
        actor_id=UUID(str(row["actor_id"])),
        reason=str(row["reason"]),
        restocked_units=int(row["restocked_units"]),
        credit_reversed=Decimal(str(row["credit_reversed"])),
        created_at=parse_utc_datetime(row["created_at"]),
    )


class SaleRepository(SupabaseRepository):
    table_name = _SALES_TABLE

    def insert_header(
        self,
        *,
        seller_id: UUID,
        sold_at: datetime,
        payment_method: PaymentMethod,
        total_amount: Decimal,
        customer_name: Optional[str] = None,
        customer_phone: Optional[str] = None,
        credit_account_id: Optional[UUID] = None,
    ) -> Sale:
        """
        Insert a new sale header in draft status.

        Returns:
            Sale domain model (without line items)
        """

        sale_id = uuid4()
        timestamp = to_iso_utc(sold_at, name="sold_at")

        payload: dict[str, Any] = {
            "id": str(sale_id),
            "seller_id": str(seller_id),
            "sold_at": timestamp,
            "payment_method": payment_method.value,
            "total_amount": str(total_amount),
            "status": SaleStatus.DRAFT.value,
            "customer_name": customer_name,
            "customer_phone": customer_phone,
            "credit_account_id": str(credit_account_id) if credit_account_id else None,
            "created_at": timestamp,
            "updated_at": timestamp,
        }

        self._execute(self._table().insert(payload), "record sale header")

        return Sale(
            sale_id=sale_id,
            seller_id=seller_id,
            sold_at=sold_at,
            payment_method=payment_method,
            total_amount=total_amount,
            status=SaleStatus.DRAFT,
            customer_name=customer_name,
            customer_phone=customer_phone,
            credit_account_id=credit_account_id,
            created_at=sold_at,
            updated_at=sold_at,
        )

    def get(self, sale_id: UUID, *, with_items: bool = True) -> Optional[Sale]:
        """
        Retrieve a single sale by its ID.

        Returns:
            Sale (with line items ordered by line_number) or None if not found
        """

        row = self._fetch_one("id", str(sale_id), "get sale")
        if row is None:
            return None
        items = self.list_items(sale_id) if with_items else []
        return _row_to_sale(row, items)

    def update_status(
        self,
        sale_id: UUID,
        *,
        expected: SaleStatus,
        new: SaleStatus,
        updated_at: datetime,
    ) -> Optional[Sale]:
        """
        Move a sale from `expected` to `new` status.

        Returns None when the sale is missing or no longer in `expected`.
        """

        query = (
            self._table()
            .update(
                {
                    "status": new.value,
                    "updated_at": to_iso_utc(updated_at, name="updated_at"),
                }
            )
            .eq("id", str(sale_id))
            .eq("status", expected.value)
        )
        rows = self._execute(query, "update sale status")
        return _row_to_sale(rows[0]) if rows else None

    def delete_draft(self, sale_id: UUID) -> None:
        """Delete a sale header, only while it is still a draft."""

        query = (
            self._table()
            .delete()
            .eq("id", str(sale_id))
            .eq("status", SaleStatus.DRAFT.value)
        )
        self._execute(query, "delete draft sale")

    def insert_items(self, items: Sequence[SaleLineItem]) -> List[SaleLineItem]:
        """Insert all line items of a sale in one request."""

        if not items:
            return []

        stored: List[SaleLineItem] = []
        payload: List[dict[str, Any]] = []
        for item in items:
            line_item_id = item.line_item_id or uuid4()
            stored.append(
                SaleLineItem(
                    line_item_id=line_item_id,
                    sale_id=item.sale_id,
                    product_id=item.product_id,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    line_number=item.line_number,
                )
            )
            payload.append(
                {
                    "id": str(line_item_id),
                    "sale_id": str(item.sale_id),
                    "product_id": str(item.product_id),
                    "quantity": item.quantity,
                    "unit_price": str(item.unit_price),
                    "line_total": str(item.line_total),
                    "line_number": item.line_number,
                }
            )

        self._execute(self._client.table(_SALE_ITEMS_TABLE).insert(payload), "record sale items")
        return stored

    def delete_items(self, sale_id: UUID) -> None:
        query = (
            self._client.table(_SALE_ITEMS_TABLE)
            .delete()
            .eq("sale_id", str(sale_id))
        )
        self._execute(query, "delete sale items")

    def list_items(self, sale_id: UUID) -> List[SaleLineItem]:
        query = (
            self._client.table(_SALE_ITEMS_TABLE)
            .select("*")
            .eq("sale_id", str(sale_id))
            .order("line_number")
        )
        return [_row_to_line_item(row) for row in self._execute(query, "list sale items")]

    def list_page(
        self,
        *,
        status: Optional[SaleStatus] = None,
        seller_id: Optional[UUID] = None,
        window: TimeRange = TimeRange(),
        offset: int = 0,
        limit: int = 500,
    ) -> List[Sale]:
        """One page of sale headers ordered by sold_at, then seq (items not loaded)."""

        query = self._table().select("*")
        if status is not None:
            query = query.eq("status", status.value)
        if seller_id is not None:
            query = query.eq("seller_id", str(seller_id))
        query = window.apply(query, "sold_at").order("sold_at").order("seq")
        return [_row_to_sale(row) for row in self._fetch_page(query, offset, limit, "list sales")]

    # Returns

    def get_return(self, sale_id: UUID) -> Optional[SaleReturn]:
        query = (
            self._client.table(_SALE_RETURNS_TABLE)
            .select("*")
            .eq("sale_id", str(sale_id))
            .limit(1)
        )
        rows = self._execute(query, "get sale return")
        return _row_to_return(rows[0]) if rows else None

    def insert_return(self, sale_return: SaleReturn) -> bool:
        """
        Insert a return record.

        Returns False when a return already exists for the sale (the table has
        a unique constraint on sale_id).
        """

        if self.get_return(sale_return.sale_id) is not None:
            return False

        payload: dict[str, Any] = {
            "id": str(sale_return.return_id),
            "sale_id": str(sale_return.sale_id),
            "actor_id": str(sale_return.actor_id),
            "reason": sale_return.reason,
            "restocked_units": sale_return.restocked_units,
            "credit_reversed": str(sale_return.credit_reversed),
            "created_at": to_iso_utc(sale_return.created_at, name="created_at"),
        }
        return self._insert_unless_duplicate(
            self._client.table(_SALE_RETURNS_TABLE).insert(payload), "record sale return"
        )

    def delete_return(self, return_id: UUID) -> None:
        """Release a return claim whose restock could not be completed."""

        query = (
            self._client.table(_SALE_RETURNS_TABLE)
            .delete()
            .eq("id", str(return_id))
        )
        self._execute(query, "delete sale return")


__all__ = ["SaleRepository"]
