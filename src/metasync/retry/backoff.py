"""Retry backoff primitives.

Deterministic exponential backoff for retry jobs:
- Delay before retry n (0-based): initial_delay * base^n, capped at max_delay
- A job is marked failed once it has failed max_failures times
- No jitter by default (deterministic for testing)

Default schedule (base=2, initial=1s, cap=3600s, max_failures=8):
  Retry 0:   1s
  Retry 1:   2s
  Retry 2:   4s
  Retry 3:   8s
  Retry 4:  16s
  Retry 5:  32s
  Retry 6:  64s
  (8th failure is terminal)
"""

from __future__ import annotations

import random
from dataclasses import asdict, dataclass
from typing import Any, Final

DEFAULT_BASE: Final[float] = 2.0
DEFAULT_INITIAL_DELAY_SECONDS: Final[float] = 1.0
DEFAULT_MAX_DELAY_SECONDS: Final[float] = 3600.0
DEFAULT_MAX_FAILURES: Final[int] = 8


@dataclass(frozen=True)
class BackoffPolicy:
    """Exponential backoff configuration for one retry job.

    Attributes:
        base: Growth factor between consecutive delays.
        initial_delay_seconds: Delay before the first retry.
        max_delay_seconds: Upper bound on any single delay.
        max_failures: Failures after which the job is marked failed.
        jitter: If True, add up to 10% random jitter to each delay.
    """

    base: float = DEFAULT_BASE
    initial_delay_seconds: float = DEFAULT_INITIAL_DELAY_SECONDS
    max_delay_seconds: float = DEFAULT_MAX_DELAY_SECONDS
    max_failures: int = DEFAULT_MAX_FAILURES
    jitter: bool = False

    def __post_init__(self) -> None:
        if self.base < 1:
            raise ValueError("base must be >= 1")
        if self.initial_delay_seconds < 0 or self.max_delay_seconds < 0:
            raise ValueError("delays must be non-negative")
        if self.max_failures < 1:
            raise ValueError("max_failures must be >= 1")

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BackoffPolicy:
        """Create a policy from a dictionary produced by to_dict()."""
        return cls(
            base=float(data.get("base", DEFAULT_BASE)),
            initial_delay_seconds=float(
                data.get("initial_delay_seconds", DEFAULT_INITIAL_DELAY_SECONDS)
            ),
            max_delay_seconds=float(data.get("max_delay_seconds", DEFAULT_MAX_DELAY_SECONDS)),
            max_failures=int(data.get("max_failures", DEFAULT_MAX_FAILURES)),
            jitter=bool(data.get("jitter", False)),
        )


def compute_backoff_seconds(retry_index: int, policy: BackoffPolicy | None = None) -> float:
    """Compute the delay before a given retry.

    Args:
        retry_index: Zero-based retry index (0 = first retry after a failure).
        policy: Backoff policy (default BackoffPolicy()).

    Returns:
        Delay in seconds.

    Example:
        >>> compute_backoff_seconds(0)
        1.0
        >>> compute_backoff_seconds(3)
        8.0
    """
    policy = policy or BackoffPolicy()
    if retry_index < 0:
        return 0.0

    delay = min(
        policy.initial_delay_seconds * (policy.base**retry_index),
        policy.max_delay_seconds,
    )
    if policy.jitter:
        delay += delay * 0.1 * random.random()
    return float(delay)


def is_retry_exhausted(failures: int, policy: BackoffPolicy | None = None) -> bool:
    """Check if a job with this many failures must be marked failed."""
    policy = policy or BackoffPolicy()
    return failures >= policy.max_failures


def next_attempt_at(now: float, failures: int, policy: BackoffPolicy | None = None) -> float | None:
    """Compute the epoch time of the next attempt after a failure.

    Args:
        now: Current epoch seconds.
        failures: Failures so far, including the one just observed (>= 1).
        policy: Backoff policy.

    Returns:
        Epoch seconds of the next attempt, or None if retries are exhausted.
    """
    policy = policy or BackoffPolicy()
    if is_retry_exhausted(failures, policy):
        return None
    return now + compute_backoff_seconds(max(0, failures - 1), policy)


def get_retry_schedule(policy: BackoffPolicy | None = None) -> list[float]:
    """Return the delays before each permitted retry, without jitter."""
    policy = policy or BackoffPolicy()
    no_jitter = BackoffPolicy(
        base=policy.base,
        initial_delay_seconds=policy.initial_delay_seconds,
        max_delay_seconds=policy.max_delay_seconds,
        max_failures=policy.max_failures,
    )
    return [compute_backoff_seconds(i, no_jitter) for i in range(policy.max_failures - 1)]
