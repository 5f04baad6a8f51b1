"""In-memory object store for tests and single-process development."""

from __future__ import annotations

import hashlib
import threading
from collections.abc import Callable
from datetime import UTC, datetime
from urllib.parse import quote, urlencode

from metasync.storage.errors import ObjectNotFoundError
from metasync.storage.models import ObjectHead, SignedUrlOperation
from metasync.storage.object_store import ObjectStore
from metasync.storage.tracing import traced_storage_operation


class InMemoryObjectStore(ObjectStore):
    """Dict-backed ObjectStore.

    Signed URLs use the memory:// scheme and are not verifiable; they exist so
    callers get a distinct, well-formed URL per (bucket, key, operation).
    """

    def __init__(
        self,
        *,
        track_checksums: bool = True,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize an empty store.

        Args:
            track_checksums: When False, HEAD reports sha256=None, like stores
                that do not record checksums.
            clock: Source of last_modified timestamps (default: UTC now).
        """
        self._objects: dict[tuple[str, str], tuple[bytes, ObjectHead]] = {}
        self._lock = threading.Lock()
        self._track_checksums = track_checksums
        self._clock = clock or (lambda: datetime.now(UTC))

    @property
    def backend_name(self) -> str:
        """Return the backend identifier."""
        return "memory"

    def __contains__(self, item: tuple[str, str]) -> bool:
        return item in self._objects

    @traced_storage_operation("head")
    def head_object(self, bucket: str, key: str) -> ObjectHead:
        """Return the stored head."""
        with self._lock:
            entry = self._objects.get((bucket, key))
        if entry is None:
            raise ObjectNotFoundError(bucket=bucket, key=key)
        return entry[1]

    @traced_storage_operation("put")
    def put_object(
        self,
        bucket: str,
        key: str,
        data: bytes,
        *,
        content_type: str | None = None,
    ) -> ObjectHead:
        """Store bytes under (bucket, key)."""
        head = ObjectHead(
            bucket=bucket,
            key=key,
            content_type=content_type,
            size=len(data),
            sha256=hashlib.sha256(data).hexdigest() if self._track_checksums else None,
            last_modified=self._clock(),
        )
        with self._lock:
            self._objects[(bucket, key)] = (bytes(data), head)
        return head

    @traced_storage_operation("get")
    def get_object(self, bucket: str, key: str) -> bytes:
        """Return stored bytes."""
        with self._lock:
            entry = self._objects.get((bucket, key))
        if entry is None:
            raise ObjectNotFoundError(bucket=bucket, key=key)
        return entry[0]

    @traced_storage_operation("delete")
    def delete_object(self, bucket: str, key: str) -> None:
        """Remove the object if present."""
        with self._lock:
            self._objects.pop((bucket, key), None)

    def signed_url(
        self,
        bucket: str,
        key: str,
        operation: SignedUrlOperation,
        ttl_seconds: int,
        *,
        sha256: str | None = None,
    ) -> str:
        """Return a memory:// URL naming the object, operation and ttl."""
        params: dict[str, str | int] = {"operation": str(operation), "ttl": max(1, ttl_seconds)}
        if sha256 is not None and operation == SignedUrlOperation.PUT:
            params["sha256"] = sha256
        query = urlencode(params)
        return f"memory://{bucket}/{quote(key, safe='')}?{query}"
