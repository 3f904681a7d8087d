"""
Sale transaction processor.

Records a sale, takes its stock and (for credit sales) charges the credit
account as one logical unit over a store with no multi-table transactions.

Handles:
- Validation and price snapshotting before anything is written
- A draft header, then stock decrements line by line, then the credit posting
- Compensation: every committed step registers its undo; any failure after the
  header write replays the undos in reverse and deletes the draft, so the
  caller never observes a half-applied sale
- Voiding drafts and returning committed sales
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Tuple
from uuid import UUID, uuid4

from domain.audit import AuditAction, EntityType
from domain.credit import ZERO
from domain.errors import (
    AlreadyReturned,
    ConcurrentModification,
    InvalidSaleRequest,
    LedgerError,
    SaleAlreadyCommitted,
    SaleNotCommitted,
    SaleNotFound,
)
from domain.product import Product
from domain.sale import (
    PaymentMethod,
    Sale,
    SaleLineItem,
    SaleLineRequest,
    SaleReturn,
    SaleState,
    SaleStatus,
    require_transition,
)
from domain.time import utc_now
from repositories.sale_repository import SaleRepository
from services.audit_service import AuditRecorder
from services.credit_ledger import CreditLedger
from services.saga import Saga
from services.stock_ledger import StockLedger

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SaleRequest:
    """
    Request to record a sale.

    Lines referencing the same product twice are kept as separate lines and
    decremented independently, in order.
    """

    seller_id: UUID
    lines: Tuple[SaleLineRequest, ...]
    payment_method: PaymentMethod
    credit_account_id: Optional[UUID] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None


@dataclass
class _Progress:
    """Tracks the processor state for one submission."""

    sale_id: Optional[UUID] = None
    state: SaleState = SaleState.DRAFT
    history: List[SaleState] = field(default_factory=lambda: [SaleState.DRAFT])

    def advance(self, target: SaleState) -> None:
        require_transition(self.state, target)
        logger.debug("Sale %s: %s -> %s", self.sale_id, self.state.value, target.value)
        self.state = target
        self.history.append(target)


class SaleTransactionProcessor:
    def __init__(
        self,
        sales: SaleRepository,
        stock: StockLedger,
        credit: CreditLedger,
        audit: AuditRecorder,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._sales = sales
        self._stock = stock
        self._credit = credit
        self._audit = audit
        self._clock = clock

    def submit_sale(self, request: SaleRequest, *, actor_id: UUID) -> Sale:
        """
        Execute a sale.

        Process:
        1. Validate the request (non-empty, positive quantities, payment method)
        2. Snapshot unit prices and compute the total
        3. Write the sale header as a draft
        4. Decrement stock for each line, in request order
        5. For credit sales, post the purchase to the credit account
        6. Persist the line items and commit the header
        7. Audit the commit

        Any failure after step 3 compensates before the original error is
        re-raised.

        Returns:
            The committed Sale with its line items

        Raises:
            InvalidSaleRequest, ProductNotFound, InsufficientStock,
            CreditAccountNotFound, CreditAccountInactive, CreditLimitExceeded,
            ConcurrentModification, or the store's RuntimeError
        """

        progress = _Progress()
        self._validate(request)
        products = self._load_products(request)
        sold_at = self._clock()

        priced: List[Tuple[SaleLineRequest, Decimal]] = [
            (line, products[line.product_id].unit_price) for line in request.lines
        ]
        total = sum((price * line.quantity for line, price in priced), ZERO)
        progress.advance(SaleState.ITEMS_VALIDATED)

        header = self._sales.insert_header(
            seller_id=request.seller_id,
            sold_at=sold_at,
            payment_method=request.payment_method,
            total_amount=total,
            customer_name=request.customer_name,
            customer_phone=request.customer_phone,
            credit_account_id=request.credit_account_id,
        )
        sale_id = header.sale_id
        progress.sale_id = sale_id
        saga = Saga(f"sale {sale_id}")

        try:
            for line in request.lines:
                self._stock.reserve_and_decrement(
                    line.product_id, line.quantity, actor_id=actor_id, reference_id=sale_id
                )
                saga.add_compensation(
                    f"restock {line.quantity} x {line.product_id}",
                    functools.partial(
                        self._stock.increment,
                        line.product_id,
                        line.quantity,
                        actor_id=actor_id,
                        reference_id=sale_id,
                    ),
                )
            progress.advance(SaleState.STOCK_RESERVED)

            if request.payment_method.is_credit and total > ZERO:
                account_id = request.credit_account_id
                if account_id is None:
                    raise InvalidSaleRequest("A credit sale needs a credit account")
                self._credit.post_purchase(account_id, total, sale_id, actor_id=actor_id)
                saga.add_compensation(
                    f"reverse credit purchase of {total} on {account_id}",
                    functools.partial(
                        self._credit.post_adjustment,
                        account_id,
                        -total,
                        actor_id=actor_id,
                        reference_id=sale_id,
                        notes="Reversal of uncommitted sale",
                    ),
                )
                progress.advance(SaleState.CREDIT_POSTED)
            else:
                progress.advance(SaleState.CREDIT_SKIPPED)

            line_items = [
                SaleLineItem(
                    sale_id=sale_id,
                    product_id=line.product_id,
                    quantity=line.quantity,
                    unit_price=price,
                    line_number=number,
                )
                for number, (line, price) in enumerate(priced, start=1)
            ]
            saga.add_compensation(
                f"delete items of sale {sale_id}",
                functools.partial(self._sales.delete_items, sale_id),
            )
            stored_items = self._sales.insert_items(line_items)

            committed = self._commit_header(sale_id)
            if committed is None:
                # the draft was voided or removed while we were working on it
                raise ConcurrentModification(EntityType.SALE, sale_id, 1)
            progress.advance(SaleState.COMMITTED)
        except Exception as exc:
            self._compensate(saga, progress, exc, actor_id=actor_id)
            raise

        self._audit.record_best_effort(
            actor_id=actor_id,
            action=AuditAction.SALE_COMMIT,
            entity_type=EntityType.SALE,
            entity_id=sale_id,
            before={"status": SaleStatus.DRAFT.value},
            after={
                "status": SaleStatus.COMMITTED.value,
                "total_amount": str(total),
                "payment_method": request.payment_method.value,
                "line_count": len(stored_items),
            },
        )
        logger.info("Committed sale %s (%d line(s), total %s)", sale_id, len(stored_items), total)

        sale = Sale(
            sale_id=committed.sale_id,
            seller_id=committed.seller_id,
            sold_at=committed.sold_at,
            payment_method=committed.payment_method,
            total_amount=committed.total_amount,
            status=committed.status,
            customer_name=committed.customer_name,
            customer_phone=committed.customer_phone,
            credit_account_id=committed.credit_account_id,
            items=tuple(stored_items),
            created_at=committed.created_at,
            updated_at=committed.updated_at,
        )
        return sale

    def get_sale(self, sale_id: UUID) -> Sale:
        sale = self._sales.get(sale_id)
        if sale is None:
            raise SaleNotFound(sale_id)
        return sale

    def void_sale(self, sale_id: UUID, *, actor_id: UUID) -> Sale:
        """
        Void a sale that never committed.

        Voiding an already voided sale is a no-op. Committed sales cannot be
        voided; they are reversed with `return_sale`.
        """

        sale = self.get_sale(sale_id)

        if sale.status is SaleStatus.VOIDED:
            logger.info("Sale %s already voided; nothing to do", sale_id)
            return sale
        if sale.status is SaleStatus.COMMITTED:
            raise SaleAlreadyCommitted(sale_id)

        voided = self._sales.update_status(
            sale_id,
            expected=SaleStatus.DRAFT,
            new=SaleStatus.VOIDED,
            updated_at=self._clock(),
        )
        if voided is None:
            # status moved under us (committed, voided or deleted); decide on the fresh state
            current = self._sales.get(sale_id)
            if current is None:
                raise SaleNotFound(sale_id)
            if current.status is SaleStatus.VOIDED:
                return current
            raise SaleAlreadyCommitted(sale_id)

        self._sales.delete_items(sale_id)
        self._audit.record_best_effort(
            actor_id=actor_id,
            action=AuditAction.SALE_VOID,
            entity_type=EntityType.SALE,
            entity_id=sale_id,
            before={"status": SaleStatus.DRAFT.value},
            after={"status": SaleStatus.VOIDED.value},
        )
        logger.info("Voided draft sale %s", sale_id)
        return voided

    def return_sale(self, sale_id: UUID, *, actor_id: UUID, reason: str) -> SaleReturn:
        """
        Reverse a committed sale with a compensating return.

        Restocks every line and reverses the credit charge. The original sale
        and its audit trail are left untouched. A sale can be returned once.
        """

        if not reason or not reason.strip():
            raise InvalidSaleRequest("A reason is required to return a sale")

        sale = self.get_sale(sale_id)
        if sale.status is not SaleStatus.COMMITTED:
            raise SaleNotCommitted(sale_id, sale.status.value)

        credit_reversed = ZERO
        if sale.is_on_credit and sale.credit_account_id is not None and sale.total_amount > ZERO:
            account = self._credit.get_account(sale.credit_account_id)
            # whatever was already paid back is refunded outside the ledger
            credit_reversed = min(sale.total_amount, account.current_balance)

        sale_return = SaleReturn(
            return_id=uuid4(),
            sale_id=sale_id,
            actor_id=actor_id,
            reason=reason.strip(),
            restocked_units=sum(item.quantity for item in sale.items),
            credit_reversed=credit_reversed,
            created_at=self._clock(),
        )
        if not self._sales.insert_return(sale_return):
            raise AlreadyReturned(sale_id)

        saga = Saga(f"return of sale {sale_id}")
        saga.add_compensation(
            f"release return claim {sale_return.return_id}",
            functools.partial(self._sales.delete_return, sale_return.return_id),
        )
        try:
            for item in sale.items:
                self._stock.increment(
                    item.product_id, item.quantity, actor_id=actor_id, reference_id=sale_id
                )
                saga.add_compensation(
                    f"take back {item.quantity} x {item.product_id}",
                    functools.partial(
                        self._stock.reserve_and_decrement,
                        item.product_id,
                        item.quantity,
                        actor_id=actor_id,
                        reference_id=sale_id,
                    ),
                )
            if credit_reversed > ZERO and sale.credit_account_id is not None:
                self._credit.post_adjustment(
                    sale.credit_account_id,
                    -credit_reversed,
                    actor_id=actor_id,
                    reference_id=sale_id,
                    notes=f"Return of sale: {sale_return.reason}",
                )
        except Exception as exc:
            failures = saga.compensate()
            if isinstance(exc, LedgerError):
                exc.compensation_failures.extend(failures)
            raise

        self._audit.record_best_effort(
            actor_id=actor_id,
            action=AuditAction.SALE_RETURN,
            entity_type=EntityType.SALE,
            entity_id=sale_id,
            before={"status": sale.status.value},
            after={
                "return_id": str(sale_return.return_id),
                "restocked_units": sale_return.restocked_units,
                "credit_reversed": str(credit_reversed),
                "reason": sale_return.reason,
            },
        )
        logger.info("Returned sale %s (%d unit(s) restocked)", sale_id, sale_return.restocked_units)
        return sale_return

    # Internals

    @staticmethod
    def _validate(request: SaleRequest) -> None:
        if not request.lines:
            raise InvalidSaleRequest("A sale needs at least one line item")
        for number, line in enumerate(request.lines, start=1):
            quantity = line.quantity
            if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
                raise InvalidSaleRequest(
                    f"Line {number}: quantity must be a positive integer, got {quantity!r}"
                )
        if request.payment_method.is_credit and request.credit_account_id is None:
            raise InvalidSaleRequest("A credit sale needs a credit account")
        if not request.payment_method.is_credit and request.credit_account_id is not None:
            raise InvalidSaleRequest(
                f"Payment method {request.payment_method.value} cannot reference a credit account"
            )

    def _commit_header(self, sale_id: UUID) -> Optional[Sale]:
        """
        Move the header from draft to committed.

        A failed response does not mean the write failed: the header is re-read
        and, if it already reads committed, the sale is done and must not be
        compensated. Returns None when the draft is gone or no longer a draft.
        """

        try:
            return self._sales.update_status(
                sale_id,
                expected=SaleStatus.DRAFT,
                new=SaleStatus.COMMITTED,
                updated_at=self._clock(),
            )
        except Exception:
            current = self._sales.get(sale_id, with_items=False)
            if current is None or current.status is not SaleStatus.COMMITTED:
                raise
            logger.warning("Commit response for sale %s was lost; the header reads committed", sale_id)
            return current

    def _load_products(self, request: SaleRequest) -> Dict[UUID, Product]:
        """Read each distinct product once; raises ProductNotFound."""

        products: Dict[UUID, Product] = {}
        for line in request.lines:
            if line.product_id in products:
                continue
            product = self._stock.get_product(line.product_id)
            if product.owner_id != request.seller_id:
                raise InvalidSaleRequest(
                    f"Product {product.product_id} is not sold by seller {request.seller_id}"
                )
            products[line.product_id] = product
        return products

    def _compensate(
        self,
        saga: Saga,
        progress: _Progress,
        error: Exception,
        *,
        actor_id: UUID,
    ) -> None:
        sale_id = progress.sale_id
        failed_in = progress.state
        progress.advance(SaleState.COMPENSATING)
        logger.warning("Sale %s failed in state %s: %s; compensating", sale_id, failed_in.value, error)

        failures = saga.compensate()
        try:
            self._sales.delete_draft(sale_id)
        except Exception as exc:
            logger.exception("Could not delete draft header of sale %s", sale_id)
            failures.append(f"delete draft sale {sale_id}: {exc}")
        progress.advance(SaleState.VOIDED)

        if isinstance(error, LedgerError):
            error.compensation_failures.extend(failures)

        self._audit.record_best_effort(
            actor_id=actor_id,
            action=AuditAction.SALE_COMPENSATE,
            entity_type=EntityType.SALE,
            entity_id=sale_id,
            before={"status": SaleStatus.DRAFT.value, "state": failed_in.value},
            after={
                "status": SaleStatus.VOIDED.value,
                "error": type(error).__name__,
                "compensation_failures": failures,
            },
        )


__all__ = ["SaleRequest", "SaleTransactionProcessor"]
