"""Durable retry jobs with exponential backoff."""

from metasync.retry.backoff import (
    BackoffPolicy,
    compute_backoff_seconds,
    get_retry_schedule,
    is_retry_exhausted,
    next_attempt_at,
)
from metasync.retry.executor import DurableRetryExecutor, RetryExecutor
from metasync.retry.job_store import InMemoryJobStore, JobStore, SqlJobStore
from metasync.retry.models import JobResult, JobStatus, ResultKind, RetryJob
from metasync.retry.registry import ActionRegistry
from metasync.retry.worker import RetryWorker

__all__ = [
    "ActionRegistry",
    "BackoffPolicy",
    "DurableRetryExecutor",
    "InMemoryJobStore",
    "JobResult",
    "JobStatus",
    "JobStore",
    "ResultKind",
    "RetryExecutor",
    "RetryJob",
    "RetryWorker",
    "SqlJobStore",
    "compute_backoff_seconds",
    "get_retry_schedule",
    "is_retry_exhausted",
    "next_attempt_at",
]
