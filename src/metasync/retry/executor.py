"""Retry executor: durable, backoff-driven execution of named actions.

A job runs its action until it succeeds, fails max_failures times, or is
canceled. Failed attempts are rescheduled with exponential backoff (see
metasync.retry.backoff). Terminal transitions invoke the job's completion
callback exactly once per executor that performs the transition.

Delivery is at-least-once: a process crash between running an action and
recording its outcome re-runs the action when its lease expires, so actions
must be idempotent.
"""

from __future__ import annotations

import logging
import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from metasync.errors import JobNotFoundError, RetryExhausted
from metasync.retry.backoff import BackoffPolicy, next_attempt_at
from metasync.retry.job_store import JobStore
from metasync.retry.models import JobResult, JobStatus, RetryJob
from metasync.retry.registry import ActionRegistry

logger = logging.getLogger(__name__)

DEFAULT_LEASE_SECONDS = 300.0
DEFAULT_BATCH_SIZE = 50


class RetryExecutor(ABC):
    """Contract for submitting and observing retry jobs."""

    @abstractmethod
    def submit(
        self,
        action: str,
        arguments: dict[str, Any],
        *,
        policy: BackoffPolicy | None = None,
        on_complete: str | None = None,
    ) -> str:
        """Schedule action(**arguments) for immediate execution with retries.

        Returns:
            The new job id.
        """

    @abstractmethod
    def status(self, job_id: str) -> RetryJob:
        """Return the job.

        Raises:
            JobNotFoundError: If the job id is unknown.
        """

    @abstractmethod
    def cancel(self, job_id: str) -> bool:
        """Cancel an in-progress job.

        Returns:
            True if the job was canceled, False if it was already terminal.

        Raises:
            JobNotFoundError: If the job id is unknown.
        """


class DurableRetryExecutor(RetryExecutor):
    """RetryExecutor persisting jobs in a JobStore.

    Jobs are executed by run_due(), called directly or from a RetryWorker.
    """

    def __init__(
        self,
        job_store: JobStore,
        registry: ActionRegistry | None = None,
        *,
        default_policy: BackoffPolicy | None = None,
        clock: Callable[[], float] | None = None,
        lease_seconds: float = DEFAULT_LEASE_SECONDS,
    ) -> None:
        """Initialize the executor.

        Args:
            job_store: Where jobs are persisted.
            registry: Action and callback registry (default: empty registry).
            default_policy: Policy for jobs submitted without one.
            clock: Epoch-seconds clock (default: time.time).
            lease_seconds: How long a claimed job is hidden from other pollers.
        """
        self._jobs = job_store
        self.registry = registry or ActionRegistry()
        self._default_policy = default_policy or BackoffPolicy()
        self._clock = clock or time.time
        self._lease_seconds = lease_seconds

    def _timestamp(self, epoch: float) -> str:
        return datetime.fromtimestamp(epoch, UTC).isoformat()

    def submit(
        self,
        action: str,
        arguments: dict[str, Any],
        *,
        policy: BackoffPolicy | None = None,
        on_complete: str | None = None,
    ) -> str:
        if not self.registry.has_action(action):
            raise ValueError(f"Unknown retry action: {action}")
        if on_complete is not None and not self.registry.has_callback(on_complete):
            raise ValueError(f"Unknown completion callback: {on_complete}")

        now = self._clock()
        job = RetryJob(
            job_id=str(uuid.uuid4()),
            action=action,
            arguments=dict(arguments),
            policy=policy or self._default_policy,
            next_attempt_at=now,
            on_complete=on_complete,
            created_at=self._timestamp(now),
            updated_at=self._timestamp(now),
        )
        self._jobs.insert(job)
        logger.info("Submitted retry job %s action=%s", job.job_id, action)
        return job.job_id

    def status(self, job_id: str) -> RetryJob:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def cancel(self, job_id: str) -> bool:
        job = self.status(job_id)
        if job.status.is_terminal:
            return False

        job.status = JobStatus.CANCELED
        job.next_attempt_at = None
        job.result = JobResult.canceled()
        job.updated_at = self._timestamp(self._clock())
        if not self._jobs.save_if_in_progress(job):
            return False

        logger.info("Canceled retry job %s", job_id)
        self._notify(job)
        return True

    def run_due(self, now: float | None = None, *, limit: int = DEFAULT_BATCH_SIZE) -> int:
        """Execute every job due at or before now, once each.

        Args:
            now: Epoch seconds (default: the executor clock).
            limit: Maximum jobs claimed in this call.

        Returns:
            Number of jobs executed.
        """
        now = self._clock() if now is None else now
        jobs = self._jobs.claim_due(now, now + self._lease_seconds, limit)
        for job in jobs:
            self._run_one(job, now)
        return len(jobs)

    def _run_one(self, job: RetryJob, now: float) -> None:
        try:
            action = self.registry.action(job.action)
            value = action(**job.arguments)
        except Exception as e:
            self._record_failure(job, now, e)
            return

        job.status = JobStatus.SUCCEEDED
        job.next_attempt_at = None
        job.result = JobResult.success(value)
        job.updated_at = self._timestamp(now)
        if self._jobs.save_if_in_progress(job):
            logger.info("Retry job %s succeeded after %d failures", job.job_id, job.attempts)
            self._notify(job)
        else:
            logger.info("Retry job %s finished after it was canceled; result discarded", job.job_id)

    def _record_failure(self, job: RetryJob, now: float, error: Exception) -> None:
        job.attempts += 1
        job.last_error = f"{type(error).__name__}: {error}"
        job.updated_at = self._timestamp(now)

        retry_at = next_attempt_at(now, job.attempts, job.policy)
        if retry_at is None:
            exhausted = RetryExhausted(
                job_id=job.job_id, attempts=job.attempts, last_error=job.last_error
            )
            job.status = JobStatus.FAILED
            job.next_attempt_at = None
            job.result = JobResult.failed(str(exhausted))
            if self._jobs.save_if_in_progress(job):
                logger.error(
                    "Retry job %s failed permanently: %s",
                    job.job_id,
                    job.last_error,
                )
                self._notify(job)
            return

        job.next_attempt_at = retry_at
        if self._jobs.save_if_in_progress(job):
            logger.warning(
                "Retry job %s attempt %d failed (%s); next attempt in %.1fs",
                job.job_id,
                job.attempts,
                job.last_error,
                retry_at - now,
            )

    def _notify(self, job: RetryJob) -> None:
        if job.on_complete is None:
            return
        try:
            self.registry.callback(job.on_complete)(job)
        except Exception:
            # The job's terminal state is already durable; callback errors
            # must not disturb other jobs in the batch.
            logger.exception(
                "Completion callback %s raised for job %s", job.on_complete, job.job_id
            )
