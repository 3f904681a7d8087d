"""
Tests for the Supabase repositories in `repositories/`.

Covers:
- Row <-> domain mapping through the in-memory store.
- Compare-and-set writes only land when the guarded value is unchanged.
- PostgREST errors, raised or returned, surface as RuntimeError; unique
  violations are reported as duplicates.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from postgrest.exceptions import APIError

from domain.sale import PaymentMethod, SaleReturn, SaleStatus
from repositories.base import SupabaseRepository, TimeRange
from repositories.credit_repository import CreditRepository
from repositories.product_repository import ProductRepository
from repositories.sale_repository import SaleRepository

NOW = datetime(2025, 3, 1, 8, 30, 0, tzinfo=timezone.utc)


class _RaisingQuery:
    def __init__(self, error: APIError) -> None:
        self._error = error

    def execute(self):
        raise self._error


def _api_error(code: str) -> APIError:
    return APIError({"message": "request failed", "code": code, "hint": None, "details": None})


def test_product_round_trip(supabase) -> None:
    """Verify a stored product reads back with its Decimal prices and UTC timestamp."""

    repository = ProductRepository(supabase)
    product = repository.insert(
        owner_id=uuid4(),
        name="Tea leaves 250g",
        quantity_on_hand=7,
        unit_price=Decimal("3.40"),
        unit_cost=Decimal("2.10"),
        updated_at=NOW,
        sku="TEA-250",
    )

    loaded = repository.get(product.product_id)

    assert loaded == product


def test_quantity_compare_and_set(supabase) -> None:
    """Verify the quantity write is refused when the expected value is stale."""

    repository = ProductRepository(supabase)
    product = repository.insert(
        owner_id=uuid4(), name="Tea", quantity_on_hand=7, unit_price=Decimal("3.40"), updated_at=NOW
    )

    assert repository.compare_and_set_quantity(product.product_id, 6, 5, NOW) is None
    updated = repository.compare_and_set_quantity(product.product_id, 7, 5, NOW)
    assert updated is not None
    assert updated.quantity_on_hand == 5

    with pytest.raises(ValueError):
        repository.compare_and_set_quantity(product.product_id, 5, -1, NOW)


def test_sale_status_update_is_conditional(supabase) -> None:
    """Verify a status change only applies from the expected status."""

    repository = SaleRepository(supabase)
    header = repository.insert_header(
        seller_id=uuid4(), sold_at=NOW, payment_method=PaymentMethod.CASH, total_amount=Decimal("4")
    )

    assert repository.update_status(
        header.sale_id, expected=SaleStatus.COMMITTED, new=SaleStatus.VOIDED, updated_at=NOW
    ) is None
    committed = repository.update_status(
        header.sale_id, expected=SaleStatus.DRAFT, new=SaleStatus.COMMITTED, updated_at=NOW
    )
    assert committed.status is SaleStatus.COMMITTED

    # committed headers are not removable as drafts
    repository.delete_draft(header.sale_id)
    assert repository.get(header.sale_id) is not None


def test_return_claim_is_unique(supabase) -> None:
    """Verify only the first return for a sale is stored."""

    repository = SaleRepository(supabase)
    sale_id = uuid4()

    def claim() -> bool:
        return repository.insert_return(
            SaleReturn(
                return_id=uuid4(),
                sale_id=sale_id,
                actor_id=uuid4(),
                reason="Faulty",
                restocked_units=1,
                credit_reversed=Decimal("0"),
                created_at=NOW,
            )
        )

    assert claim() is True
    assert claim() is False
    assert repository.get_return(sale_id).reason == "Faulty"


def test_duplicate_account_is_refused(supabase) -> None:
    """Verify a second account for the same owner and counterparty raises ValueError."""

    repository = CreditRepository(supabase)
    owner, counterparty = uuid4(), uuid4()
    repository.insert_account(owner_id=owner, counterparty_id=counterparty, credit_limit=Decimal("10"), created_at=NOW)

    with pytest.raises(ValueError):
        repository.insert_account(owner_id=owner, counterparty_id=counterparty, credit_limit=Decimal("20"), created_at=NOW)


def test_raised_api_error_becomes_runtime_error(supabase) -> None:
    """Verify PostgREST errors raised by supabase-py keep the repository convention."""

    repository = SupabaseRepository(supabase)

    with pytest.raises(RuntimeError, match="Failed to list things"):
        repository._execute(_RaisingQuery(_api_error("500")), "list things")


def test_raised_unique_violation_is_a_duplicate(supabase) -> None:
    """Verify a raised 23505 is reported as a duplicate, other codes as failures."""

    repository = SupabaseRepository(supabase)

    assert repository._insert_unless_duplicate(_RaisingQuery(_api_error("23505")), "insert thing") is False
    with pytest.raises(RuntimeError):
        repository._insert_unless_duplicate(_RaisingQuery(_api_error("42501")), "insert thing")


def test_returned_error_becomes_runtime_error(supabase) -> None:
    """Verify an error carried on the response is raised."""

    supabase.fail("products", "select")

    with pytest.raises(RuntimeError, match="simulated outage"):
        ProductRepository(supabase).get(uuid4())


def test_time_range_requires_utc(supabase) -> None:
    """Verify naive window bounds are refused."""

    with pytest.raises(ValueError):
        TimeRange(start=datetime(2025, 1, 1)).apply(supabase.table("sales").select("*"), "sold_at")
