"""metasync error taxonomy.

Every error raised across the sync, permission and retry layers derives from
MetasyncError and carries the bucket/key it concerns, when known.

Propagation:
- Gate and effect-hook failures surface to the immediate caller unchanged.
- Missing metadata on read paths is reported as None, not raised.
- Physical-deletion failures reach only the retry job's completion callback.
"""

from __future__ import annotations


class MetasyncError(Exception):
    """Base exception for metasync operations.

    Attributes:
        message: Human-readable error message.
        bucket: Bucket associated with the operation (if applicable).
        key: Object key associated with the operation (if applicable).
    """

    def __init__(
        self,
        message: str,
        *,
        bucket: str | None = None,
        key: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.bucket = bucket
        self.key = key

    def __str__(self) -> str:
        parts = [self.message]
        if self.bucket:
            parts.append(f"bucket={self.bucket}")
        if self.key:
            parts.append(f"key={self.key}")
        return " ".join(parts)


class ConfigurationError(MetasyncError):
    """Raised when required configuration fields are missing or malformed.

    Attributes:
        missing_fields: Names of every missing field, in declaration order.
    """

    def __init__(self, message: str | None = None, *, missing_fields: list[str] | None = None) -> None:
        self.missing_fields = list(missing_fields or [])
        if message is None:
            message = "Missing required configuration: " + ", ".join(self.missing_fields)
        super().__init__(message)


class PermissionDenied(MetasyncError):
    """Raised by a permission hook to reject an operation.

    No metadata or object-store side effect has happened when this is raised.
    """

    def __init__(
        self,
        message: str = "Permission denied",
        *,
        bucket: str | None = None,
        key: str | None = None,
    ) -> None:
        super().__init__(message, bucket=bucket, key=key)


class NotFoundError(MetasyncError):
    """Raised when an object required by a sync path is absent from the store."""

    def __init__(
        self,
        message: str = "Object not found",
        *,
        bucket: str | None = None,
        key: str | None = None,
    ) -> None:
        super().__init__(message, bucket=bucket, key=key)


class DuplicateKeyError(MetasyncError):
    """Raised when a caller-supplied key collides with an existing record."""

    def __init__(
        self,
        message: str = "Key already exists",
        *,
        bucket: str | None = None,
        key: str | None = None,
    ) -> None:
        super().__init__(message, bucket=bucket, key=key)


class ChecksumMismatchError(MetasyncError):
    """Raised when the store-reported sha256 differs from the expected one.

    Fatal for the sync: no metadata record is written.
    """

    def __init__(
        self,
        *,
        expected: str,
        actual: str,
        bucket: str | None = None,
        key: str | None = None,
    ) -> None:
        super().__init__(
            f"Checksum mismatch: expected {expected}, got {actual}",
            bucket=bucket,
            key=key,
        )
        self.expected = expected
        self.actual = actual


class TransientStoreError(MetasyncError):
    """Raised for network/store failures that are safe to retry."""

    def __init__(
        self,
        message: str = "Transient store failure",
        *,
        bucket: str | None = None,
        key: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, bucket=bucket, key=key)
        self.cause = cause


class RetryExhausted(MetasyncError):
    """Terminal failure of a retry job after its last permitted attempt.

    Only ever delivered through the job's completion callback.
    """

    def __init__(self, *, job_id: str, attempts: int, last_error: str | None) -> None:
        super().__init__(f"Retry exhausted for job {job_id} after {attempts} attempts: {last_error}")
        self.job_id = job_id
        self.attempts = attempts
        self.last_error = last_error


class InvalidCursorError(MetasyncError, ValueError):
    """Raised when a pagination cursor cannot be decoded or targets another bucket."""

    def __init__(self, message: str = "Invalid cursor", *, bucket: str | None = None) -> None:
        super().__init__(message, bucket=bucket)


class JobNotFoundError(MetasyncError):
    """Raised when a retry job id is unknown to the executor."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Retry job not found: {job_id}")
        self.job_id = job_id
