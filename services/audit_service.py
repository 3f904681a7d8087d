"""
Audit recorder.

Appends one AuditEntry per state-changing ledger operation. Audit is
observability, not a consistency gate: a failed audit write raises
AuditWriteFailed from `record`, while `record_best_effort` (used by the
ledgers) logs it as a warning and lets the already-committed primary change
stand.

The `audited` decorator wraps ledger-mutating methods so each implementation
gets its audit entry without repeating the call at every site.
"""

from __future__ import annotations

import functools
import logging
from datetime import datetime
from typing import Any, Callable, Mapping, Optional, TypeVar
from uuid import UUID, uuid4

from domain.audit import AuditEntry
from domain.errors import AuditWriteFailed
from domain.time import utc_now
from repositories.audit_repository import AuditRepository

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


class AuditRecorder:
    def __init__(
        self,
        repository: AuditRepository,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._repository = repository
        self._clock = clock

    def record(
        self,
        *,
        actor_id: UUID,
        action: str,
        entity_type: str,
        entity_id: UUID,
        before: Optional[Mapping[str, Any]] = None,
        after: Optional[Mapping[str, Any]] = None,
    ) -> AuditEntry:
        """Persist one entry. Raises AuditWriteFailed if the store rejects it."""

        entry = AuditEntry(
            entry_id=uuid4(),
            actor_id=actor_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            created_at=self._clock(),
            before_state=before,
            after_state=after,
        )
        try:
            return self._repository.insert(entry)
        except Exception as exc:
            raise AuditWriteFailed(action, entity_id, str(exc)) from exc

    def record_best_effort(self, **kwargs: Any) -> Optional[AuditEntry]:
        """Like `record`, but a failed write is logged and None is returned."""

        try:
            return self.record(**kwargs)
        except AuditWriteFailed as exc:
            logger.warning("Audit entry not persisted; primary change kept: %s", exc)
            return None


def audited(action: str, entity_type: str) -> Callable[[F], F]:
    """
    Emit an AuditEntry after every successful call of a ledger method.

    The decorated method must be called with an `actor_id` keyword argument
    and return a change object exposing `entity_id`, `audit_before()` and
    `audit_after()`. The owning instance provides the recorder as `self.audit`.
    Failed calls emit nothing.
    """

    def decorator(method: F) -> F:
        @functools.wraps(method)
        def wrapper(self: Any, *args: Any, actor_id: UUID, **kwargs: Any) -> Any:
            change = method(self, *args, actor_id=actor_id, **kwargs)
            self.audit.record_best_effort(
                actor_id=actor_id,
                action=action,
                entity_type=entity_type,
                entity_id=change.entity_id,
                before=change.audit_before(),
                after=change.audit_after(),
            )
            return change

        return wrapper  # type: ignore[return-value]

    return decorator


__all__ = ["AuditRecorder", "audited"]
