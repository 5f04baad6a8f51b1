"""Object storage error types.

Backends raise these; the sync layer translates them into the metasync
taxonomy (ObjectNotFoundError -> NotFoundError on sync paths, backend errors
-> TransientStoreError on the physical-deletion path).
"""

from __future__ import annotations


class ObjectStorageError(Exception):
    """Base exception for object storage operations.

    Subclasses only set ``default_message``; every error carries the same
    bucket/key context and an optional underlying ``cause``.
    """

    default_message = "Object storage error"

    def __init__(
        self,
        message: str | None = None,
        *,
        bucket: str | None = None,
        key: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.message = message or self.default_message
        self.bucket = bucket
        self.key = key
        self.cause = cause
        super().__init__(self.message)

    def __str__(self) -> str:
        context = ", ".join(
            f"{name}={value}" for name, value in (("bucket", self.bucket), ("key", self.key)) if value
        )
        return f"{self.message} ({context})" if context else self.message


class ObjectNotFoundError(ObjectStorageError):
    """The object does not exist in the bucket."""

    default_message = "Object not found"


class PathTraversalError(ObjectStorageError):
    """A key or bucket would escape the filesystem backend's base directory."""

    default_message = "Invalid key: path traversal detected"


class StorageBackendError(ObjectStorageError):
    """The backend itself failed (network, credentials, disk)."""

    default_message = "Storage backend error"
