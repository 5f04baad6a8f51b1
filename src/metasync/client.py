"""Client-facing operations with permission enforcement.

ObjectClient is the surface applications call. Every operation runs its
permission hooks before any side effect, then delegates to the SyncEngine,
the metadata index, or the object store's URL signer.

Typical upload flow:
    target = client.generate_upload_url()
    # caller PUTs bytes to target.url
    client.sync_metadata(target.key)
    client.get_metadata(target.key)
"""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass

import httpx

from metasync.config import DEFAULT_SIGNED_URL_TTL_SECONDS
from metasync.errors import DuplicateKeyError, TransientStoreError
from metasync.metadata.models import MetadataRecord, Page
from metasync.metadata.store import DEFAULT_PAGE_LIMIT, MetadataStore
from metasync.permissions import PermissionGate
from metasync.retry.executor import RetryExecutor
from metasync.retry.models import RetryJob
from metasync.storage.models import SignedUrlOperation
from metasync.storage.object_store import ObjectStore
from metasync.sync import SyncEngine

logger = logging.getLogger(__name__)

DEFAULT_FETCH_TIMEOUT_SECONDS = 30.0

_SHA256_HEX = re.compile(r"[0-9a-fA-F]{64}")


@dataclass(frozen=True)
class UploadTarget:
    """Key and signed PUT URL for a direct-to-store upload."""

    key: str
    url: str


class ObjectClient:
    """Permission-gated object metadata client bound to a default bucket."""

    def __init__(
        self,
        engine: SyncEngine,
        *,
        bucket: str,
        gate: PermissionGate | None = None,
        signed_url_ttl_seconds: int = DEFAULT_SIGNED_URL_TTL_SECONDS,
        http_client: httpx.Client | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            engine: Sync engine over the object store and metadata index.
            bucket: Default bucket for uploads, syncs, deletes and listings.
            gate: Permission gate (default: allow everything).
            signed_url_ttl_seconds: Lifetime of issued signed URLs.
            http_client: Client used by store_from_url (default: a new
                httpx.Client per call).
        """
        if not bucket:
            raise ValueError("bucket must be non-empty")
        self.engine = engine
        self.bucket = bucket
        self.gate = gate or PermissionGate()
        self.signed_url_ttl_seconds = signed_url_ttl_seconds
        self._http_client = http_client

    @property
    def object_store(self) -> ObjectStore:
        return self.engine.object_store

    @property
    def metadata_store(self) -> MetadataStore:
        return self.engine.metadata_store

    @property
    def executor(self) -> RetryExecutor:
        return self.engine.executor

    def _sign(
        self, bucket: str, key: str, operation: SignedUrlOperation, sha256: str | None = None
    ) -> str:
        return self.object_store.signed_url(
            bucket, key, operation, self.signed_url_ttl_seconds, sha256=sha256
        )

    def _ensure_new_key(self, bucket: str, key: str) -> None:
        if self.metadata_store.get_by_bucket_key(bucket, key) is not None:
            raise DuplicateKeyError(bucket=bucket, key=key)

    def generate_upload_url(
        self, key: str | None = None, *, sha256: str | None = None
    ) -> UploadTarget:
        """Issue a signed PUT URL for a new object.

        Args:
            key: Caller-chosen key. Must not already be indexed. A random
                UUID key is generated when omitted.
            sha256: Hex SHA-256 of the content to be uploaded. Signed into
                the URL so the store verifies the upload and records the
                checksum that sync_metadata later compares.

        Raises:
            ValueError: If sha256 is not 64 hex characters.
            PermissionDenied: If check_upload rejects.
            DuplicateKeyError: If key is already indexed.
        """
        if sha256 is not None and not _SHA256_HEX.fullmatch(sha256):
            raise ValueError("sha256 must be 64 hex characters")
        bucket = self.bucket
        self.gate.check_upload(bucket)
        if key is None:
            key = str(uuid.uuid4())
        else:
            self._ensure_new_key(bucket, key)
        url = self._sign(bucket, key, SignedUrlOperation.PUT, sha256.lower() if sha256 else None)
        logger.debug("Issued upload URL bucket=%s key=%s", bucket, key)
        return UploadTarget(key=key, url=url)

    def sync_metadata(self, key: str, *, expected_sha256: str | None = None) -> None:
        """Index an object the caller has uploaded.

        expected_sha256 is only verified when the store reports a checksum.
        An S3 store reports one only if the upload sent it, i.e. the upload
        URL was issued with sha256; otherwise the comparison is skipped.

        Raises:
            PermissionDenied: If check_upload or on_upload rejects.
            NotFoundError: If the object does not exist.
            ChecksumMismatchError: If expected_sha256 disagrees with the store.
        """
        bucket = self.bucket
        self.gate.check_upload(bucket)
        self.gate.on_upload(bucket, key)
        record = self.engine.confirm_upload(bucket, key, expected_sha256=expected_sha256)
        self.gate.on_sync_metadata(record)

    def get_metadata(self, key: str, *, bucket: str | None = None) -> MetadataRecord | None:
        """Return the indexed record with a fresh signed GET URL, or None."""
        bucket = bucket or self.bucket
        self.gate.check_read_key(bucket, key)
        record = self.metadata_store.get_by_bucket_key(bucket, key)
        if record is None:
            return None
        return record.with_url(self._sign(bucket, key, SignedUrlOperation.GET))

    def list_metadata(
        self, bucket: str | None = None, limit: int | None = None
    ) -> list[MetadataRecord]:
        """Return the first limit records of the bucket in scan order.

        Follows continue cursors internally when limit exceeds the page
        read budget.
        """
        bucket = bucket or self.bucket
        self.gate.check_read_bucket(bucket)
        wanted = DEFAULT_PAGE_LIMIT if limit is None else max(1, limit)

        records: list[MetadataRecord] = []
        cursor: str | None = None
        while len(records) < wanted:
            page = self.metadata_store.scan(bucket, cursor, wanted - len(records))
            records.extend(page.page)
            if page.is_done:
                break
            cursor = page.continue_cursor
        return records

    def page_metadata(
        self,
        bucket: str | None = None,
        cursor: str | None = None,
        limit: int | None = None,
    ) -> Page:
        """Return one page of the bucket in scan order.

        Raises:
            PermissionDenied: If check_read_bucket rejects.
            InvalidCursorError: If cursor is malformed or for another bucket.
        """
        bucket = bucket or self.bucket
        self.gate.check_read_bucket(bucket)
        return self.metadata_store.scan(bucket, cursor, limit)

    def delete_object(self, key: str) -> str:
        """Remove the record now and delete the object eventually.

        Returns:
            Id of the retry job performing the physical deletion.

        Raises:
            PermissionDenied: If check_delete or on_delete rejects; nothing
                is removed in that case.
        """
        bucket = self.bucket
        self.gate.check_delete(bucket, key)
        self.gate.on_delete(bucket, key)
        return self.engine.delete_key(bucket, key)

    def get_url(self, key: str) -> str:
        """Return a signed GET URL for key. The object need not exist."""
        bucket = self.bucket
        self.gate.check_read_key(bucket, key)
        return self._sign(bucket, key, SignedUrlOperation.GET)

    def store(
        self,
        data: bytes,
        *,
        content_type: str | None = None,
        key: str | None = None,
    ) -> str:
        """Write bytes server-side and index them.

        Returns:
            The object key.
        """
        bucket = self.bucket
        key = self._authorize_store(bucket, key)
        return self._ingest(bucket, key, data, content_type)

    def store_from_url(self, url: str, *, key: str | None = None) -> str:
        """Fetch url and store its body; the response Content-Type is kept.

        Raises:
            TransientStoreError: If the fetch fails or returns an error status.
        """
        bucket = self.bucket
        key = self._authorize_store(bucket, key)
        try:
            if self._http_client is not None:
                response = self._http_client.get(url, follow_redirects=True)
            else:
                with httpx.Client(timeout=DEFAULT_FETCH_TIMEOUT_SECONDS) as http:
                    response = http.get(url, follow_redirects=True)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise TransientStoreError(
                f"Failed to fetch {url}: {e}", bucket=bucket, key=key, cause=e
            ) from e

        content_type = response.headers.get("content-type")
        return self._ingest(bucket, key, response.content, content_type)

    def _authorize_store(self, bucket: str, key: str | None) -> str:
        self.gate.check_upload(bucket)
        if key is None:
            key = str(uuid.uuid4())
        else:
            self._ensure_new_key(bucket, key)
        self.gate.on_upload(bucket, key)
        return key

    def _ingest(self, bucket: str, key: str, data: bytes, content_type: str | None) -> str:
        record = self.engine.ingest(bucket, key, data, content_type=content_type)
        self.gate.on_sync_metadata(record)
        return key

    def job_status(self, job_id: str) -> RetryJob:
        """Return a retry job (e.g. one returned by delete_object)."""
        return self.executor.status(job_id)

    def cancel_job(self, job_id: str) -> bool:
        """Cancel an in-progress retry job; False if it already finished."""
        return self.executor.cancel(job_id)
