"""Saga/compensation for object-store + metadata-index writes.

Server-side stores write the object bytes and then the metadata record. If
the metadata write fails, the object write is compensated (the object is
deleted) so no unindexed object is left behind by a failed store.

Design:
- SagaStep: Individual write operation with compensation action
- SagaExecutor: Runs steps in order, compensating completed steps on failure
- Fail-closed: Any failure triggers compensation for all completed steps
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from metasync.errors import MetasyncError

logger = logging.getLogger(__name__)

StepFn = Callable[[dict[str, Any]], Any]
CompensateFn = Callable[[dict[str, Any], Any], None]


class SagaStepStatus(StrEnum):
    """Status of a saga step."""

    COMPLETED = "completed"
    FAILED = "failed"
    COMPENSATED = "compensated"
    COMPENSATION_FAILED = "compensation_failed"


class SagaStatus(StrEnum):
    """Overall status of a saga execution."""

    COMPLETED = "completed"
    COMPENSATED = "compensated"
    COMPENSATION_FAILED = "compensation_failed"


@dataclass
class SagaStepResult:
    """Result of executing (or compensating) a saga step."""

    step_name: str
    status: SagaStepStatus
    result: Any = None
    error: Exception | None = None


@dataclass
class SagaResult:
    """Result of executing a complete saga."""

    saga_id: str
    status: SagaStatus
    step_results: list[SagaStepResult] = field(default_factory=list)
    error: Exception | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def is_success(self) -> bool:
        return self.status == SagaStatus.COMPLETED

    @property
    def is_compensated(self) -> bool:
        return self.status == SagaStatus.COMPENSATED

    def raise_for_status(self) -> None:
        """Re-raise the failing step's error, or SagaConsistencyError if compensation failed."""
        if self.is_success:
            return
        if self.is_compensated and self.error is not None:
            raise self.error
        raise SagaConsistencyError(self) from self.error


@dataclass(frozen=True)
class SagaStep:
    """A forward action and the compensation that undoes it.

    Attributes:
        name: Step name for logging.
        execute: Called with the shared context; its return value is kept.
        compensate: Called with the context and execute's return value.
    """

    name: str
    execute: StepFn
    compensate: CompensateFn


class SagaExecutor:
    """Runs saga steps in order with reverse-order compensation on failure.

    All compensations are attempted even if some fail; compensation failures
    are logged and reported as COMPENSATION_FAILED.
    """

    def __init__(self, saga_id: str) -> None:
        self.saga_id = saga_id
        self._steps: list[SagaStep] = []

    def add_step(self, name: str, execute: StepFn, compensate: CompensateFn) -> SagaExecutor:
        """Add a step; returns self for chaining."""
        self._steps.append(SagaStep(name, execute, compensate))
        return self

    def execute(self, initial_context: dict[str, Any] | None = None) -> SagaResult:
        """Execute the saga with all steps.

        Args:
            initial_context: Initial context data passed to every step.

        Returns:
            SagaResult with overall status and per-step results.
        """
        context = dict(initial_context or {})
        step_results: list[SagaStepResult] = []
        completed: list[tuple[SagaStep, Any]] = []
        started_at = datetime.now(UTC)

        logger.debug("Starting saga %s with %d steps", self.saga_id, len(self._steps))

        for step in self._steps:
            try:
                result = step.execute(context)
            except Exception as e:
                step_results.append(SagaStepResult(step.name, SagaStepStatus.FAILED, error=e))
                logger.error("Saga %s step %s failed: %s", self.saga_id, step.name, e)
                status = self._compensate(context, completed, step_results)
                return SagaResult(
                    saga_id=self.saga_id,
                    status=status,
                    step_results=step_results,
                    error=e,
                    started_at=started_at,
                    completed_at=datetime.now(UTC),
                )
            step_results.append(SagaStepResult(step.name, SagaStepStatus.COMPLETED, result=result))
            completed.append((step, result))

        logger.debug("Saga %s completed", self.saga_id)
        return SagaResult(
            saga_id=self.saga_id,
            status=SagaStatus.COMPLETED,
            step_results=step_results,
            started_at=started_at,
            completed_at=datetime.now(UTC),
        )

    def _compensate(
        self,
        context: dict[str, Any],
        completed: list[tuple[SagaStep, Any]],
        step_results: list[SagaStepResult],
    ) -> SagaStatus:
        all_compensated = True
        for step, result in reversed(completed):
            try:
                step.compensate(context, result)
            except Exception as e:
                all_compensated = False
                step_results.append(
                    SagaStepResult(
                        f"{step.name}_compensation", SagaStepStatus.COMPENSATION_FAILED, error=e
                    )
                )
                logger.error(
                    "Saga %s compensation failed for step %s: %s", self.saga_id, step.name, e
                )
                continue
            step_results.append(
                SagaStepResult(f"{step.name}_compensation", SagaStepStatus.COMPENSATED)
            )
            logger.info("Saga %s compensated step %s", self.saga_id, step.name)

        return SagaStatus.COMPENSATED if all_compensated else SagaStatus.COMPENSATION_FAILED


class SagaConsistencyError(MetasyncError):
    """Raised when a failed saga could not be fully compensated.

    The object store and metadata index may disagree until the leftover
    object is removed.
    """

    def __init__(self, saga_result: SagaResult) -> None:
        self.saga_result = saga_result
        super().__init__(
            f"Saga {saga_result.saga_id} failed and compensation failed: {saga_result.error}"
        )
