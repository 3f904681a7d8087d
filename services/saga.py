"""
Compensation list for multi-step operations over a non-transactional store.

Each step that commits something registers its undo right after it succeeds.
On failure the undos run in reverse registration order. An undo that fails
is logged and reported, and the remaining undos still run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, List

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CompensationStep:
    description: str
    undo: Callable[[], Any]


class Saga:
    def __init__(self, name: str) -> None:
        self.name = name
        self._steps: List[CompensationStep] = []

    def __len__(self) -> int:
        return len(self._steps)

    def add_compensation(self, description: str, undo: Callable[[], Any]) -> None:
        self._steps.append(CompensationStep(description=description, undo=undo))

    def compensate(self) -> List[str]:
        """
        Run all registered undos, newest first.

        Returns:
            Descriptions of the undos that failed (empty when all succeeded)
        """

        failures: List[str] = []
        while self._steps:
            step = self._steps.pop()
            try:
                step.undo()
            except Exception as exc:
                logger.exception("Compensation failed for %s: %s", self.name, step.description)
                failures.append(f"{step.description}: {exc}")
            else:
                logger.debug("Compensated %s: %s", self.name, step.description)
        return failures


__all__ = ["Saga", "CompensationStep"]
