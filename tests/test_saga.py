"""
Tests for `services/saga.py`.

Covers:
- Undos run newest first.
- A failing undo is reported and does not stop the remaining undos.
"""

from __future__ import annotations

from services.saga import Saga


def test_compensations_run_in_reverse_order() -> None:
    """Verify the most recently registered undo runs first."""

    undone = []
    saga = Saga("sale 1")
    saga.add_compensation("first", lambda: undone.append("first"))
    saga.add_compensation("second", lambda: undone.append("second"))
    saga.add_compensation("third", lambda: undone.append("third"))

    failures = saga.compensate()

    assert undone == ["third", "second", "first"]
    assert failures == []
    assert len(saga) == 0


def test_failing_compensation_is_reported_and_others_still_run() -> None:
    """Verify a broken undo is collected while the earlier undos still execute."""

    undone = []

    def broken() -> None:
        raise RuntimeError("store unreachable")

    saga = Saga("sale 2")
    saga.add_compensation("restock A", lambda: undone.append("A"))
    saga.add_compensation("restock B", broken)
    saga.add_compensation("restock C", lambda: undone.append("C"))

    failures = saga.compensate()

    assert undone == ["C", "A"]
    assert failures == ["restock B: store unreachable"]


def test_compensate_twice_is_a_no_op() -> None:
    """Verify undos are consumed by the first compensation."""

    undone = []
    saga = Saga("sale 3")
    saga.add_compensation("only", lambda: undone.append("only"))

    saga.compensate()
    saga.compensate()

    assert undone == ["only"]
