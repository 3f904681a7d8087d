"""
Tests for `services/adjustment_engine.py`.

Covers:
- Add/remove adjustments move stock and keep a reasoned record.
- Removals cannot take stock below zero.
- Malformed adjustments are rejected before any write.
"""

from __future__ import annotations

import pytest

from domain.adjustment import AdjustmentDirection
from domain.audit import AuditAction, EntityType
from domain.errors import InsufficientStock, InvalidAdjustment


def test_remove_adjustment(ledger, supabase, actor_id, make_product) -> None:
    """Verify removing damaged units lowers stock and records the reason."""

    product = make_product(12)

    updated = ledger.adjust_stock(product.product_id, "remove", 3, "Damaged in transit", actor_id=actor_id)

    assert updated.quantity_on_hand == 9
    records = ledger.adjustments.list_adjustments(product.product_id)
    assert len(records) == 1
    assert records[0].direction is AdjustmentDirection.REMOVE
    assert records[0].previous_quantity == 12
    assert records[0].new_quantity == 9
    assert records[0].reason == "Damaged in transit"


def test_add_adjustment_is_audited_separately_from_sales(ledger, supabase, actor_id, make_product) -> None:
    """Verify a restock writes a stock entry and a reasoned adjustment entry."""

    product = make_product(2)

    ledger.adjust_stock(product.product_id, AdjustmentDirection.ADD, 10, "Delivery from depot", actor_id=actor_id)

    actions = [row["action"] for row in supabase.rows("audit_log")]
    assert actions == [AuditAction.STOCK_INCREMENT, AuditAction.STOCK_ADJUST]
    adjust_entry = supabase.rows("audit_log")[1]
    assert adjust_entry["entity_type"] == EntityType.ADJUSTMENT
    assert adjust_entry["after_state"]["reason"] == "Delivery from depot"
    assert adjust_entry["after_state"]["quantity_on_hand"] == 12


def test_remove_more_than_on_hand(ledger, supabase, actor_id, make_product) -> None:
    """Verify a removal beyond stock is rejected and nothing is recorded."""

    product = make_product(2)

    with pytest.raises(InsufficientStock):
        ledger.adjust_stock(product.product_id, "remove", 5, "Stock count", actor_id=actor_id)

    assert ledger.stock.get_product(product.product_id).quantity_on_hand == 2
    assert supabase.rows("inventory_adjustments") == []


@pytest.mark.parametrize(
    "direction, quantity, reason",
    [
        ("shrink", 1, "Stock count"),
        ("add", 0, "Stock count"),
        ("add", -4, "Stock count"),
        ("remove", 1, "  "),
    ],
)
def test_malformed_adjustments(ledger, supabase, actor_id, make_product, direction, quantity, reason) -> None:
    """Verify unknown directions, non-positive quantities and blank reasons are refused."""

    product = make_product(5)

    with pytest.raises(InvalidAdjustment):
        ledger.adjust_stock(product.product_id, direction, quantity, reason, actor_id=actor_id)

    assert ledger.stock.get_product(product.product_id).quantity_on_hand == 5


def test_record_failure_undoes_stock_change(ledger, supabase, actor_id, make_product) -> None:
    """Verify stock is put back when the adjustment record cannot be written."""

    product = make_product(5)
    supabase.fail("inventory_adjustments", "insert")

    with pytest.raises(RuntimeError):
        ledger.adjust_stock(product.product_id, "remove", 2, "Expired", actor_id=actor_id)

    assert ledger.stock.get_product(product.product_id).quantity_on_hand == 5
