"""
Ledger service: the entry point the surrounding application talks to.

Constructed once with its store client injected; wires the repositories,
the audit recorder, both ledgers, the sale processor, the adjustment engine
and the reporting feed around that one client.
"""

from __future__ import annotations

import time
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Iterable, List, Optional, Tuple, Union
from uuid import UUID

from domain.adjustment import AdjustmentDirection
from domain.credit import (
    ChainReport,
    CreditAccount,
    CreditAccountStatus,
    CreditHealth,
    CreditTransaction,
    CreditTransactionType,
)
from domain.errors import InvalidSaleRequest
from domain.product import Product
from domain.sale import PaymentMethod, Sale, SaleLineRequest, SaleReturn
from domain.time import utc_now
from repositories.adjustment_repository import AdjustmentRepository
from repositories.audit_repository import AuditRepository
from repositories.base import TimeRange
from repositories.credit_repository import CreditRepository
from repositories.product_repository import ProductRepository
from repositories.sale_repository import SaleRepository
from services.adjustment_engine import AdjustmentEngine
from services.audit_service import AuditRecorder
from services.credit_ledger import CreditLedger
from services.ledger_feed import LedgerFeed
from services.sale_processor import SaleRequest, SaleTransactionProcessor
from services.settings import LedgerSettings
from services.stock_ledger import StockLedger

LineInput = Union[SaleLineRequest, Tuple[UUID, int]]


def _to_line(line: LineInput) -> SaleLineRequest:
    if isinstance(line, SaleLineRequest):
        return line
    product_id, quantity = line
    return SaleLineRequest(product_id=product_id, quantity=quantity)


class LedgerService:
    def __init__(
        self,
        client: Any,
        settings: Optional[LedgerSettings] = None,
        *,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings or LedgerSettings()

        self.products = ProductRepository(client)
        sales = SaleRepository(client)
        credit_accounts = CreditRepository(client)
        audit_log = AuditRepository(client)

        self.audit = AuditRecorder(audit_log, clock=clock)
        self.stock = StockLedger(self.products, self.audit, self.settings, clock=clock, sleep=sleep)
        self.credit = CreditLedger(credit_accounts, self.audit, self.settings, clock=clock, sleep=sleep)
        self.sales = SaleTransactionProcessor(sales, self.stock, self.credit, self.audit, clock=clock)
        self.adjustments = AdjustmentEngine(
            self.stock, AdjustmentRepository(client), self.audit, clock=clock
        )
        self.feed = LedgerFeed(
            sales,
            credit_accounts,
            audit_log,
            self.products,
            page_size=self.settings.feed_page_size,
        )

    @classmethod
    def from_environment(cls) -> "LedgerService":
        """Build the service against the Supabase project named in the environment."""

        from repositories.client import create_supabase_client

        return cls(create_supabase_client(), LedgerSettings.from_env())

    # Sales

    def submit_sale(
        self,
        seller_id: UUID,
        line_items: Iterable[LineInput],
        payment_method: Union[PaymentMethod, str],
        credit_account_id: Optional[UUID] = None,
        *,
        actor_id: UUID,
        customer_name: Optional[str] = None,
        customer_phone: Optional[str] = None,
    ) -> Sale:
        try:
            method = PaymentMethod(payment_method)
        except ValueError:
            raise InvalidSaleRequest(f"Unknown payment method: {payment_method!r}") from None
        request = SaleRequest(
            seller_id=seller_id,
            lines=tuple(_to_line(line) for line in line_items),
            payment_method=method,
            credit_account_id=credit_account_id,
            customer_name=customer_name,
            customer_phone=customer_phone,
        )
        return self.sales.submit_sale(request, actor_id=actor_id)

    def get_sale(self, sale_id: UUID) -> Sale:
        return self.sales.get_sale(sale_id)

    def void_sale(self, sale_id: UUID, *, actor_id: UUID) -> Sale:
        return self.sales.void_sale(sale_id, actor_id=actor_id)

    def return_sale(self, sale_id: UUID, *, actor_id: UUID, reason: str) -> SaleReturn:
        return self.sales.return_sale(sale_id, actor_id=actor_id, reason=reason)

    # Credit

    def open_credit_account(
        self,
        owner_id: UUID,
        counterparty_id: UUID,
        credit_limit: Decimal,
        *,
        actor_id: UUID,
    ) -> CreditAccount:
        return self.credit.open_account(owner_id, counterparty_id, credit_limit, actor_id=actor_id)

    def get_credit_account(self, account_id: UUID) -> CreditAccount:
        return self.credit.get_account(account_id)

    def list_credit_transactions(
        self,
        account_id: UUID,
        *,
        transaction_type: Optional[CreditTransactionType] = None,
        window: TimeRange = TimeRange(),
    ) -> List[CreditTransaction]:
        self.credit.get_account(account_id)
        return self.credit.list_transactions(
            account_id, transaction_type=transaction_type, window=window
        )

    def verify_credit_chain(self, account_id: UUID) -> ChainReport:
        return self.credit.verify_chain(account_id)

    def credit_health(self, account: CreditAccount) -> CreditHealth:
        return account.health(self.settings.credit_warning_ratio)

    def post_credit_payment(self, account_id: UUID, amount: Decimal, *, actor_id: UUID) -> CreditAccount:
        return self.credit.post_payment(account_id, amount, actor_id=actor_id).account

    def set_credit_limit(self, account_id: UUID, limit: Decimal, *, actor_id: UUID) -> CreditAccount:
        return self.credit.set_limit(account_id, limit, actor_id=actor_id).account

    def set_credit_status(
        self,
        account_id: UUID,
        status: Union[CreditAccountStatus, str],
        *,
        actor_id: UUID,
    ) -> CreditAccount:
        return self.credit.set_status(account_id, CreditAccountStatus(status), actor_id=actor_id).account

    # Stock

    def adjust_stock(
        self,
        product_id: UUID,
        direction: Union[AdjustmentDirection, str],
        quantity: int,
        reason: str,
        *,
        actor_id: UUID,
    ) -> Product:
        return self.adjustments.adjust(product_id, direction, quantity, reason, actor_id=actor_id).product

    def low_stock_products(self, owner_id: UUID) -> List[Product]:
        return self.feed.low_stock_products(owner_id)


__all__ = ["LedgerService", "LineInput"]
