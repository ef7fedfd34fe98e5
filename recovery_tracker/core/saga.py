"""
Two-step (or n-step) sagas over a store without multi-statement transactions.

Each step is an awaitable action paired with an optional compensation that
undoes it. Steps run in order; when one fails, the compensations of every
completed step run in reverse order and the original error is re-raised.
A compensation that itself fails is logged and does not mask the original
error; the ledger is then left inconsistent and the log entry is the only
trace of it.

Compensations that roll back the session expire every ORM instance loaded
through it. Callers must re-read by id after a failed run instead of touching
objects they held before it.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional

from recovery_tracker.core.logging import get_logger

logger = get_logger(__name__)

Action = Callable[[], Awaitable[Any]]
Compensation = Callable[[Any], Awaitable[None]]


@dataclass
class SagaStep:
    name: str
    action: Action
    compensation: Optional[Compensation] = None


class Saga:
    def __init__(self, name: str) -> None:
        self.name = name
        self.steps: List[SagaStep] = []

    def step(self, name: str, action: Action, compensation: Optional[Compensation] = None) -> "Saga":
        self.steps.append(SagaStep(name, action, compensation))
        return self

    async def run(self) -> List[Any]:
        """Run all steps; returns each step's result in order."""
        completed: List[tuple] = []
        for step in self.steps:
            try:
                result = await step.action()
            except Exception as exc:
                logger.warning(
                    "saga_step_failed",
                    saga=self.name,
                    step=step.name,
                    error=str(exc),
                    compensating=[s.name for s, _ in completed if s.compensation],
                )
                await self._compensate(completed)
                raise
            completed.append((step, result))
        return [result for _, result in completed]

    async def _compensate(self, completed: List[tuple]) -> None:
        for step, result in reversed(completed):
            if step.compensation is None:
                continue
            try:
                await step.compensation(result)
            except Exception:
                logger.exception("saga_compensation_failed", saga=self.name, step=step.name)
