"""
Pytest configuration and shared fixtures.

Adds the project root to the Python path so tests can import domain,
repositories, services and api, and provides an in-memory stand-in for the
Supabase client so the ledger can be exercised without a live project.

The stand-in implements the subset of the supabase-py query builder the
repositories use (select/insert/update/delete, eq/in_/gte/lte, order, limit,
range, execute). Every execute() runs under one lock, so a filtered update
behaves like PostgREST's single-statement conditional update.
"""

from __future__ import annotations

import copy
import itertools
import sys
import threading
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple
from uuid import UUID, uuid4

import pytest

# Add the project root to the Python path
# so tests can import domain, repositories, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from services.ledger_service import LedgerService  # noqa: E402
from services.settings import LedgerSettings  # noqa: E402

# Unique constraints of the schema, besides the primary key.
UNIQUE_COLUMNS: Dict[str, List[Tuple[str, ...]]] = {
    "credit_accounts": [("owner_id", "counterparty_id")],
    "sale_returns": [("sale_id",)],
}


class FakeError:
    def __init__(self, message: str, code: Optional[str] = None) -> None:
        self.message = message
        self.code = code

    def __str__(self) -> str:
        return self.message


class FakeResponse:
    def __init__(self, data: Optional[List[Dict[str, Any]]] = None, error: Optional[FakeError] = None) -> None:
        self.data = data or []
        self.error = error


def _scalar(value: Any) -> Any:
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        return Decimal(str(value))
    if isinstance(value, str):
        try:
            return Decimal(value)
        except InvalidOperation:
            return value
    return value


def _same(stored: Any, wanted: Any) -> bool:
    if stored is None or wanted is None:
        return False
    return _scalar(stored) == _scalar(wanted)


def _sort_key(value: Any) -> Tuple[int, Any]:
    if value is None:
        return (0, 0)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            scalar = _scalar(value)
            return (2, scalar) if isinstance(scalar, Decimal) else (3, value)
        return (1, parsed)
    return (2, _scalar(value))


class FakeQuery:
    def __init__(self, client: "FakeSupabaseClient", table: str) -> None:
        self._client = client
        self.table = table
        self.operation = "select"
        self.payload: Any = None
        self.filters: List[Tuple[str, str, Any]] = []
        self.ordering: List[Tuple[str, bool]] = []
        self.max_rows: Optional[int] = None
        self.window: Optional[Tuple[int, int]] = None

    def select(self, *columns: str) -> "FakeQuery":
        self.operation = "select"
        return self

    def insert(self, payload: Any) -> "FakeQuery":
        self.operation = "insert"
        self.payload = payload
        return self

    def update(self, payload: Dict[str, Any]) -> "FakeQuery":
        self.operation = "update"
        self.payload = payload
        return self

    def delete(self) -> "FakeQuery":
        self.operation = "delete"
        return self

    def eq(self, column: str, value: Any) -> "FakeQuery":
        self.filters.append((column, "eq", value))
        return self

    def in_(self, column: str, values: List[Any]) -> "FakeQuery":
        self.filters.append((column, "in", list(values)))
        return self

    def gte(self, column: str, value: Any) -> "FakeQuery":
        self.filters.append((column, "gte", value))
        return self

    def lte(self, column: str, value: Any) -> "FakeQuery":
        self.filters.append((column, "lte", value))
        return self

    def order(self, column: str, desc: bool = False) -> "FakeQuery":
        self.ordering.append((column, desc))
        return self

    def limit(self, count: int) -> "FakeQuery":
        self.max_rows = count
        return self

    def range(self, start: int, end: int) -> "FakeQuery":
        self.window = (start, end)
        return self

    def execute(self) -> FakeResponse:
        return self._client.run(self)


class FakeSupabaseClient:
    """Thread-safe in-memory tables behind the supabase-py query builder surface."""

    def __init__(self) -> None:
        self.tables: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        self.executed: List[Tuple[str, str]] = []
        self._lock = threading.RLock()
        self._failures: List[List[Any]] = []
        self._lost: List[List[Any]] = []
        self._hooks: List[List[Any]] = []
        self._seq = itertools.count(1)
        # Postgres returns rows with equal sort keys in no fixed order
        self.reverse_ties = False

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    # Test controls

    def fail(self, table: str, operation: str, message: str = "simulated outage", times: int = 1) -> None:
        """Make the next `times` matching requests come back with an error."""

        self._failures.append([table, operation, message, times])

    def lose_response(self, table: str, operation: str, message: str = "timeout", times: int = 1) -> None:
        """Apply the next `times` matching requests, then answer them with an error."""

        self._lost.append([table, operation, message, times])

    def before(self, table: str, operation: str, hook: Callable[[], Any], times: int = 1) -> None:
        """Run `hook` just before the next `times` matching requests execute."""

        self._hooks.append([table, operation, hook, times])

    def rows(self, table: str) -> List[Dict[str, Any]]:
        with self._lock:
            return copy.deepcopy(self.tables[table])

    def row(self, table: str, row_id: UUID) -> Optional[Dict[str, Any]]:
        for row in self.rows(table):
            if row["id"] == str(row_id):
                return row
        return None

    def set_column(self, table: str, row_id: UUID, column: str, value: Any) -> None:
        with self._lock:
            for row in self.tables[table]:
                if row["id"] == str(row_id):
                    row[column] = value

    # Execution

    def run(self, query: FakeQuery) -> FakeResponse:
        for hook in self._take(self._hooks, query):
            hook()
        with self._lock:
            failure = self._take(self._failures, query)
            self.executed.append((query.table, query.operation))
            if failure:
                return FakeResponse(error=FakeError(failure[0]))
            lost = self._take(self._lost, query)
            response = getattr(self, f"_{query.operation}")(query)
            if lost and response.error is None:
                return FakeResponse(error=FakeError(lost[0]))
            return response

    def _take(self, registry: List[List[Any]], query: FakeQuery) -> List[Any]:
        with self._lock:
            for entry in registry:
                if entry[0] == query.table and entry[1] == query.operation:
                    entry[3] -= 1
                    if entry[3] <= 0:
                        registry.remove(entry)
                    return [entry[2]]
        return []

    def _matching(self, query: FakeQuery) -> List[Dict[str, Any]]:
        return [row for row in self.tables[query.table] if self._matches(row, query.filters)]

    @staticmethod
    def _matches(row: Dict[str, Any], filters: List[Tuple[str, str, Any]]) -> bool:
        for column, op, value in filters:
            stored = row.get(column)
            if op == "eq" and not _same(stored, value):
                return False
            if op == "in" and not any(_same(stored, item) for item in value):
                return False
            if op == "gte" and (stored is None or _sort_key(stored) < _sort_key(value)):
                return False
            if op == "lte" and (stored is None or _sort_key(stored) > _sort_key(value)):
                return False
        return True

    def _select(self, query: FakeQuery) -> FakeResponse:
        rows = self._matching(query)
        if self.reverse_ties:
            rows.reverse()
        for column, desc in reversed(query.ordering):
            rows.sort(key=lambda row: _sort_key(row.get(column)), reverse=desc)
        if query.window is not None:
            start, end = query.window
            rows = rows[start:end + 1]
        if query.max_rows is not None:
            rows = rows[: query.max_rows]
        return FakeResponse(data=copy.deepcopy(rows))

    def _insert(self, query: FakeQuery) -> FakeResponse:
        payload = query.payload if isinstance(query.payload, list) else [query.payload]
        existing = self.tables[query.table]
        new_rows = [copy.deepcopy(dict(row)) for row in payload]
        for row in new_rows:
            row.setdefault("id", str(uuid4()))
            row.setdefault("seq", next(self._seq))
            for other in existing + [r for r in new_rows if r is not row]:
                if other.get("id") == row["id"]:
                    return FakeResponse(error=FakeError("duplicate key value (id)", code="23505"))
                for columns in UNIQUE_COLUMNS.get(query.table, []):
                    if all(_same(other.get(c), row.get(c)) for c in columns):
                        return FakeResponse(error=FakeError(f"duplicate key value {columns}", code="23505"))
        existing.extend(new_rows)
        return FakeResponse(data=copy.deepcopy(new_rows))

    def _update(self, query: FakeQuery) -> FakeResponse:
        updated = []
        for row in self._matching(query):
            row.update(copy.deepcopy(query.payload))
            updated.append(copy.deepcopy(row))
        return FakeResponse(data=updated)

    def _delete(self, query: FakeQuery) -> FakeResponse:
        doomed = self._matching(query)
        self.tables[query.table] = [row for row in self.tables[query.table] if row not in doomed]
        return FakeResponse(data=copy.deepcopy(doomed))


class FakeClock:
    """Monotonic UTC clock advancing one second per reading."""

    def __init__(self, start: datetime = datetime(2025, 1, 1, 9, 0, 0, tzinfo=timezone.utc)) -> None:
        self._now = start
        self._lock = threading.Lock()

    def __call__(self) -> datetime:
        with self._lock:
            self._now = self._now + timedelta(seconds=1)
            return self._now


@pytest.fixture
def supabase() -> FakeSupabaseClient:
    return FakeSupabaseClient()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> LedgerSettings:
    # small pages so listing code crosses page boundaries
    return LedgerSettings(max_write_attempts=5, retry_backoff_seconds=0.0, feed_page_size=2)


@pytest.fixture
def ledger(supabase: FakeSupabaseClient, settings: LedgerSettings, clock: FakeClock) -> LedgerService:
    return LedgerService(supabase, settings, clock=clock, sleep=lambda seconds: None)


@pytest.fixture
def seller_id() -> UUID:
    return UUID("00000000-0000-0000-0000-0000000000a1")


@pytest.fixture
def retailer_id() -> UUID:
    return UUID("00000000-0000-0000-0000-0000000000b1")


@pytest.fixture
def actor_id() -> UUID:
    return UUID("00000000-0000-0000-0000-0000000000c1")


@pytest.fixture
def make_product(ledger: LedgerService, seller_id: UUID, clock: FakeClock):
    def factory(quantity: int, unit_price: str = "10.00", *, name: str = "Maize flour 2kg", min_stock_level: int = 0, owner_id: Optional[UUID] = None):
        return ledger.products.insert(
            owner_id=owner_id or seller_id,
            name=name,
            quantity_on_hand=quantity,
            unit_price=Decimal(unit_price),
            updated_at=clock(),
            min_stock_level=min_stock_level,
        )

    return factory


@pytest.fixture
def make_account(ledger: LedgerService, seller_id: UUID, actor_id: UUID):
    """Open an account for a fresh counterparty, optionally pre-charged to `balance`."""

    def factory(limit: str, balance: str = "0"):
        account = ledger.open_credit_account(seller_id, uuid4(), Decimal(limit), actor_id=actor_id)
        if Decimal(balance) > 0:
            ledger.credit.post_purchase(account.account_id, Decimal(balance), None, actor_id=actor_id)
        return ledger.get_credit_account(account.account_id)

    return factory
