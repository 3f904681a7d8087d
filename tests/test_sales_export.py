"""
Tests for `services/sales_export.py`.

Covers:
- One row per line item with header fields repeated.
- Formula-leading characters are stripped from customer fields.
- Only committed sales can be exported.
"""

from __future__ import annotations

import csv
import logging
from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from domain.sale import PaymentMethod, Sale, SaleStatus
from services.sales_export import CSV_COLUMNS, generate_sales_csv, sanitize_csv_field


def _parse(content: str):
    return list(csv.DictReader(StringIO(content)))


def test_rows_per_line_item(ledger, seller_id, actor_id, make_product) -> None:
    """Verify each line item becomes a row carrying its sale's totals."""

    tea = make_product(10, "4.50", name="Tea")
    rice = make_product(10, "12.00", name="Rice")
    sale = ledger.submit_sale(
        seller_id,
        [(tea.product_id, 2), (rice.product_id, 1)],
        "cash",
        actor_id=actor_id,
        customer_name="Amina",
    )

    rows = _parse(generate_sales_csv(ledger.feed.committed_sales(with_items=True)))

    assert list(rows[0].keys()) == CSV_COLUMNS
    assert [row["Product ID"] for row in rows] == [str(tea.product_id), str(rice.product_id)]
    assert {row["Sale ID"] for row in rows} == {str(sale.sale_id)}
    assert Decimal(rows[0]["Line Total"]) == Decimal("9.00")
    assert Decimal(rows[1]["Sale Total"]) == Decimal("21.00")
    assert rows[0]["Customer Name"] == "Amina"
    assert rows[0]["Credit Account ID"] == ""


def test_customer_fields_are_sanitized(ledger, seller_id, actor_id, make_product, caplog) -> None:
    """Verify a formula in the customer name is neutralised and logged."""

    product = make_product(10)
    ledger.submit_sale(
        seller_id,
        [(product.product_id, 1)],
        "cash",
        actor_id=actor_id,
        customer_name="=HYPERLINK(\"x\")",
        customer_phone="+255700000000",
    )

    with caplog.at_level(logging.WARNING, logger="services.sales_export"):
        rows = _parse(generate_sales_csv(ledger.feed.committed_sales(with_items=True)))

    assert rows[0]["Customer Name"] == "HYPERLINK(\"x\")"
    assert rows[0]["Customer Phone"] == "'+255700000000"
    assert "customer_name" in caplog.text


def test_plain_values_pass_through() -> None:
    """Verify ordinary values are returned unchanged and empty values become ''."""

    assert sanitize_csv_field("Mama Neema Shop", "customer_name") == "Mama Neema Shop"
    assert sanitize_csv_field(None) == ""


def test_uncommitted_sale_is_refused() -> None:
    """Verify drafts never reach a report."""

    draft = Sale(
        sale_id=uuid4(),
        seller_id=uuid4(),
        sold_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
        payment_method=PaymentMethod.CASH,
        total_amount=Decimal("0"),
        status=SaleStatus.DRAFT,
    )

    with pytest.raises(ValueError):
        generate_sales_csv([draft])


def test_empty_export_has_header_only() -> None:
    """Verify an empty feed still yields the header row."""

    assert generate_sales_csv([]).splitlines() == [",".join(CSV_COLUMNS)]


def test_phone_numbers_keep_their_plus_sign() -> None:
    """Verify quoting keeps the international prefix while stripping would drop it."""

    assert sanitize_csv_field("+255712000000", "customer_phone", quote=True) == "'+255712000000"
    assert sanitize_csv_field("0712000000", "customer_phone", quote=True) == "0712000000"
    assert sanitize_csv_field("+255712000000", "customer_phone") == "255712000000"
