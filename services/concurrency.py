"""
Optimistic-concurrency helper shared by the stock and credit ledgers.

The store offers no locks and no transactions, so every shared write is a
compare-and-set: read the current value, write only if it is unchanged. An
operation signals a lost race by raising WriteConflict; run_with_retry then
re-runs the whole read-validate-write operation (never the write alone) with
exponential backoff, and gives up with ConcurrentModification.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar
from uuid import UUID

from domain.errors import ConcurrentModification

logger = logging.getLogger(__name__)

T = TypeVar("T")


class WriteConflict(Exception):
    """A compare-and-set guard did not match: the value changed since it was read."""


def run_with_retry(
    operation: Callable[[], T],
    *,
    entity_type: str,
    entity_id: UUID,
    attempts: int = 5,
    backoff_base: float = 0.05,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Execute `operation` with retry on write conflicts.

    Business-rule errors raised by the operation (insufficient stock, credit
    limit) propagate immediately; only WriteConflict is retried.
    """

    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    for attempt in range(attempts):
        try:
            return operation()
        except WriteConflict:
            logger.debug(
                "Write conflict on %s %s (attempt %d/%d)",
                entity_type,
                entity_id,
                attempt + 1,
                attempts,
            )
            if attempt >= attempts - 1:
                break
            if backoff_base > 0:
                sleep(backoff_base * (2 ** attempt))

    logger.warning("Giving up on %s %s after %d conflicting writes", entity_type, entity_id, attempts)
    raise ConcurrentModification(entity_type, entity_id, attempts)


__all__ = ["WriteConflict", "run_with_retry"]
