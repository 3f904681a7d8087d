"""
Read-only feed for downstream reporting.

Streams committed sales, credit transactions and audit entries page by page,
filterable by time range, seller/account id and entity type. Nothing here
writes to the store.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterator, List, Optional, TypeVar
from uuid import UUID

from domain.audit import AuditEntry
from domain.credit import CreditTransaction, CreditTransactionType
from domain.product import Product
from domain.sale import Sale, SaleStatus
from repositories.audit_repository import AuditRepository
from repositories.base import TimeRange
from repositories.credit_repository import CreditRepository
from repositories.product_repository import ProductRepository
from repositories.sale_repository import SaleRepository

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class FeedFilters:
    """Filter criteria for feed queries. Unset fields do not filter."""

    start: Optional[datetime] = None
    end: Optional[datetime] = None
    seller_id: Optional[UUID] = None
    account_id: Optional[UUID] = None
    entity_type: Optional[str] = None
    entity_id: Optional[UUID] = None
    transaction_type: Optional[CreditTransactionType] = None

    @property
    def window(self) -> TimeRange:
        return TimeRange(start=self.start, end=self.end)


class LedgerFeed:
    def __init__(
        self,
        sales: SaleRepository,
        credit: CreditRepository,
        audit: AuditRepository,
        products: ProductRepository,
        page_size: int = 500,
    ) -> None:
        self._sales = sales
        self._credit = credit
        self._audit = audit
        self._products = products
        self._page_size = page_size

    def committed_sales(
        self, filters: FeedFilters = FeedFilters(), *, with_items: bool = False
    ) -> Iterator[Sale]:
        def fetch(offset: int, limit: int) -> List[Sale]:
            return self._sales.list_page(
                status=SaleStatus.COMMITTED,
                seller_id=filters.seller_id,
                window=filters.window,
                offset=offset,
                limit=limit,
            )

        for sale in self._paginate(fetch):
            if with_items:
                loaded = self._sales.get(sale.sale_id)
                if loaded is not None:
                    yield loaded
            else:
                yield sale

    def credit_transactions(self, filters: FeedFilters = FeedFilters()) -> Iterator[CreditTransaction]:
        def fetch(offset: int, limit: int) -> List[CreditTransaction]:
            return self._credit.list_transactions_page(
                account_id=filters.account_id,
                transaction_type=filters.transaction_type,
                window=filters.window,
                offset=offset,
                limit=limit,
            )

        return self._paginate(fetch)

    def audit_entries(self, filters: FeedFilters = FeedFilters()) -> Iterator[AuditEntry]:
        def fetch(offset: int, limit: int) -> List[AuditEntry]:
            return self._audit.list_page(
                entity_type=filters.entity_type,
                entity_id=filters.entity_id,
                window=filters.window,
                offset=offset,
                limit=limit,
            )

        return self._paginate(fetch)

    def low_stock_products(self, owner_id: UUID) -> List[Product]:
        return self._products.list_low_stock(owner_id)

    def _paginate(self, fetch: Callable[[int, int], List[T]]) -> Iterator[T]:
        offset = 0
        while True:
            page = fetch(offset, self._page_size)
            yield from page
            if len(page) < self._page_size:
                return
            offset += len(page)


__all__ = ["FeedFilters", "LedgerFeed"]
