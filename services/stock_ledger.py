"""
Stock ledger.

Owns per-product quantity on hand. Both operations are read-validate-write
cycles guarded by a compare-and-set on the quantity just read, so a
concurrent writer causes a re-read and re-validation rather than a blind
overwrite. Stock is never written below zero.

Each successful call emits exactly one audit entry (before/after quantity).
InsufficientStock is reported to the caller and never retried here.
"""

from __future__ import annotations

import time
from datetime import datetime
from typing import Callable, Optional
from uuid import UUID

from domain.audit import AuditAction, EntityType
from domain.errors import InsufficientStock, ProductNotFound
from domain.product import Product, StockChange, require_positive_quantity
from domain.time import utc_now
from repositories.product_repository import ProductRepository
from services.audit_service import AuditRecorder, audited
from services.concurrency import WriteConflict, run_with_retry
from services.settings import LedgerSettings


class StockLedger:
    def __init__(
        self,
        products: ProductRepository,
        audit: AuditRecorder,
        settings: LedgerSettings,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._products = products
        self.audit = audit
        self._settings = settings
        self._clock = clock
        self._sleep = sleep

    def get_product(self, product_id: UUID) -> Product:
        product = self._products.get(product_id)
        if product is None:
            raise ProductNotFound(product_id)
        return product

    @audited(AuditAction.STOCK_DECREMENT, EntityType.PRODUCT)
    def reserve_and_decrement(
        self,
        product_id: UUID,
        quantity: int,
        *,
        actor_id: UUID,
        reference_id: Optional[UUID] = None,
    ) -> StockChange:
        """
        Take `quantity` units out of stock.

        Raises:
            ProductNotFound: the product does not exist
            InsufficientStock: quantity exceeds the stock on hand
            ConcurrentModification: the write kept conflicting
        """

        require_positive_quantity(quantity)

        def attempt() -> StockChange:
            product = self.get_product(product_id)
            if not product.can_fulfil(quantity):
                raise InsufficientStock(product_id, quantity, product.quantity_on_hand)
            return self._write(product, product.quantity_on_hand - quantity, reference_id)

        return self._retry(attempt, product_id)

    @audited(AuditAction.STOCK_INCREMENT, EntityType.PRODUCT)
    def increment(
        self,
        product_id: UUID,
        quantity: int,
        *,
        actor_id: UUID,
        reference_id: Optional[UUID] = None,
    ) -> StockChange:
        """Put `quantity` units back (returns, restocks, compensation). No upper bound."""

        require_positive_quantity(quantity)

        def attempt() -> StockChange:
            product = self.get_product(product_id)
            return self._write(product, product.quantity_on_hand + quantity, reference_id)

        return self._retry(attempt, product_id)

    def _write(self, product: Product, new_quantity: int, reference_id: Optional[UUID]) -> StockChange:
        updated = self._products.compare_and_set_quantity(
            product.product_id,
            expected_quantity=product.quantity_on_hand,
            new_quantity=new_quantity,
            updated_at=self._clock(),
        )
        if updated is None:
            raise WriteConflict(f"product {product.product_id} changed since read")
        return StockChange(
            product_id=product.product_id,
            previous_quantity=product.quantity_on_hand,
            new_quantity=updated.quantity_on_hand,
            reference_id=reference_id,
            product=updated,
        )

    def _retry(self, attempt: Callable[[], StockChange], product_id: UUID) -> StockChange:
        return run_with_retry(
            attempt,
            entity_type=EntityType.PRODUCT,
            entity_id=product_id,
            attempts=self._settings.max_write_attempts,
            backoff_base=self._settings.retry_backoff_seconds,
            sleep=self._sleep,
        )


__all__ = ["StockLedger"]
