"""Durable storage for retry jobs.

State transitions are compare-and-set on the stored status (and, for claims,
on next_attempt_at) so several executors may poll the same store without
running a job twice within one lease or overwriting a concurrent cancel.

Backends:
- SqlJobStore: SQLAlchemy (retry_jobs table from metasync.db)
- InMemoryJobStore: Process-local (tests)
"""

from __future__ import annotations

import copy
import json
import logging
import threading
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from sqlalchemy import and_, insert, select, update
from sqlalchemy.exc import SQLAlchemyError

from metasync.db import begin, retry_jobs_table
from metasync.errors import TransientStoreError
from metasync.retry.backoff import BackoffPolicy
from metasync.retry.models import JobResult, JobStatus, RetryJob

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


class JobStore(ABC):
    """Persistence contract for retry jobs."""

    @abstractmethod
    def insert(self, job: RetryJob) -> None:
        """Persist a new job."""

    @abstractmethod
    def get(self, job_id: str) -> RetryJob | None:
        """Return the job or None."""

    @abstractmethod
    def claim_due(self, now: float, lease_until: float, limit: int) -> list[RetryJob]:
        """Claim in-progress jobs due at or before now.

        Each claimed job's next_attempt_at is pushed to lease_until so other
        pollers skip it while it runs. A job whose executor crashes becomes
        due again when the lease expires.

        Returns:
            Claimed jobs, oldest due first, with next_attempt_at already set
            to lease_until.
        """

    @abstractmethod
    def save_if_in_progress(self, job: RetryJob) -> bool:
        """Write job's mutable fields if the stored job is still in progress.

        Returns:
            True if written, False if the stored job reached a terminal state
            (e.g. was canceled) in the meantime.
        """


class InMemoryJobStore(JobStore):
    """Process-local job store."""

    def __init__(self) -> None:
        self._jobs: dict[str, RetryJob] = {}
        self._lock = threading.Lock()

    def insert(self, job: RetryJob) -> None:
        with self._lock:
            if job.job_id in self._jobs:
                raise ValueError(f"Duplicate job id: {job.job_id}")
            self._jobs[job.job_id] = copy.deepcopy(job)

    def get(self, job_id: str) -> RetryJob | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return copy.deepcopy(job) if job is not None else None

    def claim_due(self, now: float, lease_until: float, limit: int) -> list[RetryJob]:
        with self._lock:
            due = sorted(
                (
                    job
                    for job in self._jobs.values()
                    if job.status == JobStatus.IN_PROGRESS
                    and job.next_attempt_at is not None
                    and job.next_attempt_at <= now
                ),
                key=lambda job: (job.next_attempt_at, job.created_at),
            )[:limit]
            for job in due:
                job.next_attempt_at = lease_until
            return [copy.deepcopy(job) for job in due]

    def save_if_in_progress(self, job: RetryJob) -> bool:
        with self._lock:
            stored = self._jobs.get(job.job_id)
            if stored is None or stored.status != JobStatus.IN_PROGRESS:
                return False
            self._jobs[job.job_id] = copy.deepcopy(job)
            return True


_t = retry_jobs_table


def _row_to_job(row: Any) -> RetryJob:
    return RetryJob(
        job_id=row.job_id,
        action=row.action,
        arguments=json.loads(row.arguments),
        policy=BackoffPolicy.from_dict(json.loads(row.policy)),
        status=JobStatus(row.status),
        attempts=row.attempts,
        next_attempt_at=row.next_attempt_at,
        last_error=row.last_error,
        on_complete=row.on_complete,
        result=JobResult.from_dict(json.loads(row.result)) if row.result else None,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _mutable_values(job: RetryJob) -> dict[str, Any]:
    return {
        "status": job.status.value,
        "attempts": job.attempts,
        "next_attempt_at": job.next_attempt_at,
        "last_error": job.last_error,
        "result": json.dumps(job.result.to_dict(), default=str) if job.result else None,
        "updated_at": job.updated_at,
    }


class SqlJobStore(JobStore):
    """Job store over an SQLAlchemy engine."""

    def __init__(self, engine: Engine) -> None:
        """Initialize the store.

        Args:
            engine: Engine whose database has the retry_jobs table
                (see metasync.db.create_db_engine).
        """
        self._engine = engine

    def insert(self, job: RetryJob) -> None:
        try:
            with begin(self._engine) as conn:
                conn.execute(
                    insert(_t).values(
                        job_id=job.job_id,
                        action=job.action,
                        arguments=json.dumps(job.arguments),
                        policy=json.dumps(job.policy.to_dict()),
                        on_complete=job.on_complete,
                        created_at=job.created_at,
                        **_mutable_values(job),
                    )
                )
        except SQLAlchemyError as e:
            raise TransientStoreError(f"Failed to persist retry job: {e}", cause=e) from e

    def get(self, job_id: str) -> RetryJob | None:
        try:
            with self._engine.connect() as conn:
                row = conn.execute(select(_t).where(_t.c.job_id == job_id)).first()
        except SQLAlchemyError as e:
            raise TransientStoreError(f"Failed to read retry job: {e}", cause=e) from e
        return _row_to_job(row) if row is not None else None

    def claim_due(self, now: float, lease_until: float, limit: int) -> list[RetryJob]:
        claimed: list[RetryJob] = []
        try:
            with begin(self._engine) as conn:
                rows = conn.execute(
                    select(_t)
                    .where(
                        and_(
                            _t.c.status == JobStatus.IN_PROGRESS.value,
                            _t.c.next_attempt_at.is_not(None),
                            _t.c.next_attempt_at <= now,
                        )
                    )
                    .order_by(_t.c.next_attempt_at, _t.c.created_at)
                    .limit(limit)
                ).all()
                for row in rows:
                    result = conn.execute(
                        update(_t)
                        .where(
                            and_(
                                _t.c.job_id == row.job_id,
                                _t.c.status == JobStatus.IN_PROGRESS.value,
                                _t.c.next_attempt_at == row.next_attempt_at,
                            )
                        )
                        .values(next_attempt_at=lease_until)
                    )
                    if result.rowcount == 1:
                        job = _row_to_job(row)
                        job.next_attempt_at = lease_until
                        claimed.append(job)
        except SQLAlchemyError as e:
            raise TransientStoreError(f"Failed to claim retry jobs: {e}", cause=e) from e
        return claimed

    def save_if_in_progress(self, job: RetryJob) -> bool:
        try:
            with begin(self._engine) as conn:
                result = conn.execute(
                    update(_t)
                    .where(
                        and_(
                            _t.c.job_id == job.job_id,
                            _t.c.status == JobStatus.IN_PROGRESS.value,
                        )
                    )
                    .values(**_mutable_values(job))
                )
        except SQLAlchemyError as e:
            raise TransientStoreError(f"Failed to update retry job: {e}", cause=e) from e
        return result.rowcount == 1
