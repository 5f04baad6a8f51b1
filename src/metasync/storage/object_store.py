"""Object store interface.

The object store is an external collaborator: metasync only needs HEAD, PUT,
GET, an idempotent DELETE and signed URL issuance against (bucket, key).
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from metasync.storage.models import ObjectHead, SignedUrlOperation


class ObjectStore(ABC):
    """Abstract base class for object storage backends.

    Implementations:
    - S3ObjectStore: S3-compatible stores via boto3 (production)
    - FilesystemObjectStore: Local filesystem (dev)
    - InMemoryObjectStore: Process-local fake (tests)
    """

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Return the backend identifier for observability (e.g. "s3")."""
        ...

    @abstractmethod
    def head_object(self, bucket: str, key: str) -> ObjectHead:
        """Fetch authoritative object attributes without the body.

        Raises:
            ObjectNotFoundError: If the object does not exist.
            StorageBackendError: If the backend cannot complete the request.
        """
        ...

    @abstractmethod
    def put_object(
        self,
        bucket: str,
        key: str,
        data: bytes,
        *,
        content_type: str | None = None,
    ) -> ObjectHead:
        """Store an object, replacing any previous content under the key.

        Returns:
            ObjectHead describing the stored object.

        Raises:
            StorageBackendError: If the backend cannot complete the write.
        """
        ...

    @abstractmethod
    def get_object(self, bucket: str, key: str) -> bytes:
        """Read an object's content.

        Raises:
            ObjectNotFoundError: If the object does not exist.
            StorageBackendError: If the backend cannot complete the read.
        """
        ...

    @abstractmethod
    def delete_object(self, bucket: str, key: str) -> None:
        """Delete an object. Deleting a missing object is not an error.

        Raises:
            StorageBackendError: If the backend cannot complete the deletion.
        """
        ...

    @abstractmethod
    def signed_url(
        self,
        bucket: str,
        key: str,
        operation: SignedUrlOperation,
        ttl_seconds: int,
        *,
        sha256: str | None = None,
    ) -> str:
        """Issue a time-limited URL authorizing one GET or PUT of the object.

        Signing is local; the object need not exist. For a PUT, sha256 (hex)
        binds the upload to that content so the store records and reports
        the checksum.
        """
        ...
