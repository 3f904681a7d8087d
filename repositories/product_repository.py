"""
Product repository (persistence).

Provides reads and the compare-and-set quantity write used by the stock
ledger. The only condition enforced here is the optimistic-concurrency guard:
a quantity write lands only if quantity_on_hand still holds the value the
writer last read.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, List, Mapping, Optional
from uuid import UUID, uuid4

from domain.product import Product
from domain.time import parse_utc_datetime, to_iso_utc
from repositories.base import SupabaseRepository

# Supabase table name for products.
# Keep this aligned with your database schema.
_PRODUCTS_TABLE: str = "products"


def _row_to_product(row: Mapping[str, Any]) -> Product:
    """Convert a Supabase row into a Product."""

    return Product(
        product_id=UUID(str(row["id"])),
        owner_id=UUID(str(row["owner_id"])),
        name=str(row["name"]),
        quantity_on_hand=int(row["quantity_on_hand"]),
        unit_price=Decimal(str(row["unit_price"])),
        category=row.get("category"),
        sku=row.get("sku"),
        min_stock_level=int(row.get("min_stock_level") or 0),
        unit_cost=Decimal(str(row.get("unit_cost") or "0")),
        updated_at=parse_utc_datetime(row["updated_at"]) if row.get("updated_at") else None,
    )


class ProductRepository(SupabaseRepository):
    table_name = _PRODUCTS_TABLE

    def get(self, product_id: UUID) -> Optional[Product]:
        row = self._fetch_one("id", str(product_id), "fetch product")
        return _row_to_product(row) if row is not None else None

    def compare_and_set_quantity(
        self,
        product_id: UUID,
        expected_quantity: int,
        new_quantity: int,
        updated_at: datetime,
    ) -> Optional[Product]:
        """
        Write new_quantity only if quantity_on_hand still equals expected_quantity.

        Returns the updated Product, or None when the guard did not match
        (another writer got there first, or the product was deleted).
        """

        if new_quantity < 0:
            raise ValueError("quantity_on_hand may not be written below 0")

        query = (
            self._table()
            .update(
                {
                    "quantity_on_hand": new_quantity,
                    "updated_at": to_iso_utc(updated_at, name="updated_at"),
                }
            )
            .eq("id", str(product_id))
            .eq("quantity_on_hand", expected_quantity)
        )
        rows = self._execute(query, "update product quantity")
        return _row_to_product(rows[0]) if rows else None

    def insert(
        self,
        *,
        owner_id: UUID,
        name: str,
        quantity_on_hand: int,
        unit_price: Decimal,
        updated_at: datetime,
        category: Optional[str] = None,
        sku: Optional[str] = None,
        min_stock_level: int = 0,
        unit_cost: Decimal = Decimal("0"),
        product_id: Optional[UUID] = None,
    ) -> Product:
        """Insert a product (catalogue maintenance and seeding)."""

        product = Product(
            product_id=product_id or uuid4(),
            owner_id=owner_id,
            name=name,
            quantity_on_hand=quantity_on_hand,
            unit_price=unit_price,
            category=category,
            sku=sku,
            min_stock_level=min_stock_level,
            unit_cost=unit_cost,
            updated_at=updated_at,
        )
        payload: dict[str, Any] = {
            "id": str(product.product_id),
            "owner_id": str(owner_id),
            "name": name,
            "category": category,
            "sku": sku,
            "quantity_on_hand": quantity_on_hand,
            "min_stock_level": min_stock_level,
            "unit_cost": str(unit_cost),
            "unit_price": str(unit_price),
            "updated_at": to_iso_utc(updated_at, name="updated_at"),
        }
        self._execute(self._table().insert(payload), "insert product")
        return product

    def list_by_owner(self, owner_id: UUID) -> List[Product]:
        query = (
            self._table()
            .select("*")
            .eq("owner_id", str(owner_id))
            .order("name")
        )
        return [_row_to_product(row) for row in self._execute(query, "list products")]

    def list_low_stock(self, owner_id: UUID) -> List[Product]:
        """
        Products at or below their minimum stock level.

        PostgREST cannot compare two columns, so the comparison runs in Python.
        """

        return [p for p in self.list_by_owner(owner_id) if p.is_low_stock]


__all__ = ["ProductRepository"]
