"""
CSV export of committed sales for downstream reporting.

One row per sale line item, carrying the sale header fields alongside.
Free-text fields (customer name and phone) are sanitized so a spreadsheet
never evaluates them as formulas; stripped characters are logged.
"""

from __future__ import annotations

import csv
import logging
from io import StringIO
from typing import Iterable, List, Optional

from domain.sale import Sale, SaleStatus

logger = logging.getLogger(__name__)

CSV_COLUMNS: List[str] = [
    "Sale ID",
    "Sold At",
    "Seller ID",
    "Payment Method",
    "Credit Account ID",
    "Customer Name",
    "Customer Phone",
    "Line Number",
    "Product ID",
    "Quantity",
    "Unit Price",
    "Line Total",
    "Sale Total",
]

_FORMULA_PREFIXES = {"=", "+", "-", "@", "\t", "\r"}


def sanitize_csv_field(value: Optional[str], field_name: str = "unknown", quote: bool = False) -> str:
    """
    Neutralise leading characters that trigger formula execution in Excel/Sheets.

    By default those characters are stripped. With `quote` the value is kept
    whole behind a leading apostrophe, so "+255..." phone numbers survive.

    Example:
        sanitize_csv_field("=1+1", "customer_name")  # "1+1", logs a warning
        sanitize_csv_field("Amina", "customer_name")  # "Amina"
        sanitize_csv_field("+255712000000", "customer_phone", quote=True)  # "'+255712000000"
    """
    if value is None or value == "":
        return ""

    text = str(value).strip()
    if quote:
        if text and text[0] in _FORMULA_PREFIXES:
            logger.warning(
                f"CSV formula prefix quoted in field '{field_name}'",
                extra={"field_name": field_name, "original_value": text[:100]},
            )
            return "'" + text
        return text

    original_text = text
    stripped_chars = []
    while text and text[0] in _FORMULA_PREFIXES:
        stripped_chars.append(text[0])
        text = text[1:]

    if stripped_chars:
        logger.warning(
            f"CSV injection character(s) stripped from field '{field_name}'",
            extra={
                "field_name": field_name,
                "stripped_characters": "".join(stripped_chars),
                "original_value": original_text[:100],
            },
        )

    return text


def generate_sales_csv(sales: Iterable[Sale]) -> str:
    """
    Render committed sales as CSV.

    Sales must be loaded with their line items (`committed_sales(...,
    with_items=True)`); a sale without items contributes no rows.

    Raises:
        ValueError: If a sale is not committed
    """
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(CSV_COLUMNS)

    for sale in sales:
        if sale.status is not SaleStatus.COMMITTED:
            raise ValueError(f"Only committed sales can be exported, sale {sale.sale_id} is {sale.status.value}")

        customer_name = sanitize_csv_field(sale.customer_name, "customer_name")
        customer_phone = sanitize_csv_field(sale.customer_phone, "customer_phone", quote=True)
        for item in sale.items:
            writer.writerow([
                str(sale.sale_id),
                sale.sold_at.isoformat(),
                str(sale.seller_id),
                sale.payment_method.value,
                str(sale.credit_account_id) if sale.credit_account_id else "",
                customer_name,
                customer_phone,
                item.line_number,
                str(item.product_id),
                item.quantity,
                str(item.unit_price),
                str(item.line_total),
                str(sale.total_amount),
            ])

    return output.getvalue()


__all__ = ["CSV_COLUMNS", "generate_sales_csv", "sanitize_csv_field"]
