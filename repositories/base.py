"""
Shared plumbing for the Supabase repositories.

Repositories hold a reference to an injected client (anything exposing the
supabase-py query builder: `client.table(name).select(...).eq(...).execute()`).
They translate rows to domain objects and back; they enforce no business
rules beyond conditional (compare-and-set) updates.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Mapping, Optional

from postgrest.exceptions import APIError

from domain.time import to_iso_utc


@dataclass(frozen=True, slots=True)
class TimeRange:
    """Inclusive time window applied to a timestamp column."""

    start: Optional[datetime] = None
    end: Optional[datetime] = None

    def apply(self, query: Any, column: str) -> Any:
        if self.start is not None:
            query = query.gte(column, to_iso_utc(self.start, name="start"))
        if self.end is not None:
            query = query.lte(column, to_iso_utc(self.end, name="end"))
        return query


class SupabaseRepository:
    """Base class: owns the client and the response checks."""

    table_name: str = ""

    def __init__(self, client: Any) -> None:
        self._client = client

    def _table(self) -> Any:
        return self._client.table(self.table_name)

    @staticmethod
    def _rows(response: Any, action: str) -> List[Mapping[str, Any]]:
        """Return the response rows, raising RuntimeError on a store error."""

        error = getattr(response, "error", None)
        if error:
            raise RuntimeError(f"Failed to {action}: {error}")
        return list(getattr(response, "data", None) or [])

    def _execute(self, query: Any, action: str) -> List[Mapping[str, Any]]:
        """
        Execute a built query and return its rows.

        supabase-py raises APIError for PostgREST errors; older clients return
        them on the response instead. Both surface as RuntimeError.
        """

        try:
            response = query.execute()
        except APIError as exc:
            raise RuntimeError(f"Failed to {action}: {exc.message}") from exc
        return self._rows(response, action)

    def _insert_unless_duplicate(self, query: Any, action: str) -> bool:
        """Execute an insert; False when it hit a unique constraint."""

        try:
            response = query.execute()
        except APIError as exc:
            if self._is_unique_violation(exc):
                return False
            raise RuntimeError(f"Failed to {action}: {exc.message}") from exc
        error = getattr(response, "error", None)
        if error and self._is_unique_violation(error):
            return False
        self._rows(response, action)
        return True

    @staticmethod
    def _is_unique_violation(error: Any) -> bool:
        code = getattr(error, "code", None)
        return str(code) == "23505"

    def _fetch_one(self, column: str, value: Any, action: str) -> Optional[Mapping[str, Any]]:
        rows = self._execute(self._table().select("*").eq(column, value).limit(1), action)
        return rows[0] if rows else None

    def _fetch_page(self, query: Any, offset: int, limit: int, action: str) -> List[Mapping[str, Any]]:
        return self._execute(query.range(offset, offset + limit - 1), action)


__all__ = ["SupabaseRepository", "TimeRange"]
