"""Retry job data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from metasync.retry.backoff import BackoffPolicy


class JobStatus(StrEnum):
    """Lifecycle of a retry job: in_progress -> succeeded | failed | canceled."""

    IN_PROGRESS = "in_progress"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        """True for succeeded, failed and canceled."""
        return self != JobStatus.IN_PROGRESS


class ResultKind(StrEnum):
    """Kind of terminal result delivered to the completion callback."""

    SUCCESS = "success"
    FAILED = "failed"
    CANCELED = "canceled"


@dataclass(frozen=True)
class JobResult:
    """Terminal result of a retry job.

    Attributes:
        kind: success, failed or canceled.
        value: Return value of the action (success only), JSON-serializable.
        error: Error message (failed only).
    """

    kind: ResultKind
    value: Any = None
    error: str | None = None

    @classmethod
    def success(cls, value: Any = None) -> JobResult:
        return cls(kind=ResultKind.SUCCESS, value=value)

    @classmethod
    def failed(cls, error: str) -> JobResult:
        return cls(kind=ResultKind.FAILED, error=error)

    @classmethod
    def canceled(cls) -> JobResult:
        return cls(kind=ResultKind.CANCELED)

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "value": self.value, "error": self.error}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JobResult:
        return cls(
            kind=ResultKind(data["kind"]),
            value=data.get("value"),
            error=data.get("error"),
        )


@dataclass
class RetryJob:
    """A durable, retried execution of one named action.

    Attributes:
        job_id: Unique job identifier.
        action: Registered action name.
        arguments: Keyword arguments for the action (JSON-serializable).
        policy: Backoff policy.
        status: Current lifecycle state.
        attempts: Failed attempts so far.
        next_attempt_at: Epoch seconds when the job is next due (in_progress only).
        last_error: Message of the most recent failure.
        on_complete: Registered callback name invoked on terminal transition.
        result: Terminal result, once reached.
        created_at: ISO-8601 creation timestamp.
        updated_at: ISO-8601 last update timestamp.
    """

    job_id: str
    action: str
    arguments: dict[str, Any]
    policy: BackoffPolicy
    status: JobStatus = JobStatus.IN_PROGRESS
    attempts: int = 0
    next_attempt_at: float | None = None
    last_error: str | None = None
    on_complete: str | None = None
    result: JobResult | None = None
    created_at: str = ""
    updated_at: str = field(default="")

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "job_id": self.job_id,
            "action": self.action,
            "arguments": self.arguments,
            "policy": self.policy.to_dict(),
            "status": self.status.value,
            "attempts": self.attempts,
            "next_attempt_at": self.next_attempt_at,
            "last_error": self.last_error,
            "on_complete": self.on_complete,
            "result": self.result.to_dict() if self.result else None,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
