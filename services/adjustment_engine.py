"""
Adjustment engine: manual, non-sale stock changes (damage, correction, restock).

Reuses the stock ledger for the quantity change (and its per-change audit
entry), then keeps an adjustment record and a separate `stock.adjust` audit
entry carrying the operator's reason, so variance reports can tell stock that
was sold from stock that was adjusted.
"""

from __future__ import annotations

import functools
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Union
from uuid import UUID, uuid4

from domain.adjustment import AdjustmentDirection, AdjustmentRecord
from domain.audit import AuditAction, EntityType
from domain.errors import InvalidAdjustment, LedgerError
from domain.product import Product, StockChange
from domain.time import utc_now
from repositories.adjustment_repository import AdjustmentRepository
from services.audit_service import AuditRecorder, audited
from services.saga import Saga
from services.stock_ledger import StockLedger


@dataclass(frozen=True, slots=True)
class AdjustmentResult:
    record: AdjustmentRecord
    product: Product

    @property
    def new_quantity(self) -> int:
        return self.record.new_quantity

    @property
    def entity_id(self) -> UUID:
        return self.record.entity_id

    def audit_before(self) -> Dict[str, Any]:
        return self.record.audit_before()

    def audit_after(self) -> Dict[str, Any]:
        return self.record.audit_after()


class AdjustmentEngine:
    def __init__(
        self,
        stock: StockLedger,
        adjustments: AdjustmentRepository,
        audit: AuditRecorder,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._stock = stock
        self._adjustments = adjustments
        self.audit = audit
        self._clock = clock

    @audited(AuditAction.STOCK_ADJUST, EntityType.ADJUSTMENT)
    def adjust(
        self,
        product_id: UUID,
        direction: Union[AdjustmentDirection, str],
        quantity: int,
        reason: str,
        *,
        actor_id: UUID,
    ) -> AdjustmentResult:
        """
        Add or remove stock outside of a sale.

        Raises:
            InvalidAdjustment: unknown direction, non-positive quantity or blank reason
            ProductNotFound, InsufficientStock (remove only), ConcurrentModification
        """

        try:
            direction = AdjustmentDirection(direction)
        except ValueError:
            raise InvalidAdjustment(f"Unknown adjustment direction: {direction!r}") from None
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise InvalidAdjustment(f"quantity must be a positive integer, got {quantity!r}")
        if not reason or not reason.strip():
            raise InvalidAdjustment("A reason is required for every stock adjustment")

        change: StockChange
        saga = Saga(f"adjustment of {product_id}")
        if direction is AdjustmentDirection.REMOVE:
            change = self._stock.reserve_and_decrement(product_id, quantity, actor_id=actor_id)
            undo = functools.partial(self._stock.increment, product_id, quantity, actor_id=actor_id)
        else:
            change = self._stock.increment(product_id, quantity, actor_id=actor_id)
            undo = functools.partial(
                self._stock.reserve_and_decrement, product_id, quantity, actor_id=actor_id
            )
        saga.add_compensation(f"revert {direction.value} of {quantity} x {product_id}", undo)

        record = AdjustmentRecord(
            adjustment_id=uuid4(),
            product_id=product_id,
            actor_id=actor_id,
            direction=direction,
            quantity=quantity,
            reason=reason.strip(),
            previous_quantity=change.previous_quantity,
            new_quantity=change.new_quantity,
            created_at=self._clock(),
        )
        try:
            self._adjustments.insert(record)
        except Exception as exc:
            failures = saga.compensate()
            if isinstance(exc, LedgerError):
                exc.compensation_failures.extend(failures)
            raise

        product = change.product if change.product is not None else self._stock.get_product(product_id)
        return AdjustmentResult(record=record, product=product)

    def list_adjustments(self, product_id: UUID) -> List[AdjustmentRecord]:
        """Adjustments of one product, newest first."""

        return self._adjustments.list_by_product(product_id)


__all__ = ["AdjustmentEngine", "AdjustmentResult"]
