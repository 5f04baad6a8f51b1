"""Sync engine: keeps the metadata index consistent with the object store.

Protocols:
- confirm_upload: HEAD the object, verify the checksum, upsert the record.
- delete_key: remove the record synchronously, then schedule the physical
  deletion as a retry job. Readers never see a record for a deleted key,
  even while the object still exists.
- ingest: PUT bytes then confirm, compensating by deleting the object when
  the metadata write fails.

Permission checks are the caller's concern (see metasync.client).
"""

from __future__ import annotations

import hashlib
import logging
import uuid

from metasync.errors import ChecksumMismatchError, NotFoundError, TransientStoreError
from metasync.metadata.models import MetadataRecord
from metasync.metadata.store import MetadataStore
from metasync.retry.backoff import BackoffPolicy
from metasync.retry.executor import RetryExecutor
from metasync.retry.registry import ActionRegistry
from metasync.saga import SagaExecutor
from metasync.storage.errors import ObjectNotFoundError, StorageBackendError
from metasync.storage.models import ObjectHead
from metasync.storage.object_store import ObjectStore

logger = logging.getLogger(__name__)

DELETE_OBJECT_ACTION = "metasync.delete_object"


class SyncEngine:
    """Applies sync and delete protocols against an object store and index."""

    def __init__(
        self,
        object_store: ObjectStore,
        metadata_store: MetadataStore,
        executor: RetryExecutor,
        *,
        registry: ActionRegistry | None = None,
        delete_policy: BackoffPolicy | None = None,
        on_delete_complete: str | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            object_store: Source of truth for object bytes and attributes.
            metadata_store: Metadata index kept in sync with the store.
            executor: Executor for physical deletion jobs.
            registry: Registry to add the delete action to. Defaults to the
                executor's registry when it has one.
            delete_policy: Backoff policy for deletion jobs (executor default
                if None).
            on_delete_complete: Registered callback name invoked when a
                deletion job reaches a terminal state.
        """
        self.object_store = object_store
        self.metadata_store = metadata_store
        self.executor = executor
        self._delete_policy = delete_policy
        self._on_delete_complete = on_delete_complete

        registry = registry or getattr(executor, "registry", None)
        if registry is not None:
            registry.register_action(DELETE_OBJECT_ACTION, self._physical_delete)

    def confirm_upload(
        self,
        bucket: str,
        key: str,
        *,
        expected_sha256: str | None = None,
    ) -> MetadataRecord:
        """Mirror the stored object's attributes into the index.

        Idempotent: confirming twice against unchanged store state yields
        identical records.

        Args:
            bucket: Bucket holding the object.
            key: Object key.
            expected_sha256: Hex SHA-256 the client computed, if any.

        Returns:
            The stored MetadataRecord.

        Raises:
            NotFoundError: If the object does not exist.
            ChecksumMismatchError: If the store's checksum differs from
                expected_sha256. No record is written.
            TransientStoreError: If the store or index cannot be reached.
        """
        head = self._head(bucket, key)

        if (
            expected_sha256 is not None
            and head.sha256 is not None
            and head.sha256.lower() != expected_sha256.lower()
        ):
            raise ChecksumMismatchError(
                expected=expected_sha256, actual=head.sha256, bucket=bucket, key=key
            )

        record = self.metadata_store.upsert(MetadataRecord.from_head(head))
        logger.info("Synced metadata for bucket=%s key=%s size=%s", bucket, key, record.size)
        return record

    def delete_key(self, bucket: str, key: str) -> str:
        """Remove the record and schedule physical deletion.

        Metadata removal happens first and is not undone if scheduling
        fails; the scheduling error propagates to the caller.

        Returns:
            Id of the retry job deleting the object.
        """
        removed = self.metadata_store.delete_by_bucket_key(bucket, key)
        job_id = self.executor.submit(
            DELETE_OBJECT_ACTION,
            {"bucket": bucket, "key": key},
            policy=self._delete_policy,
            on_complete=self._on_delete_complete,
        )
        logger.info(
            "Scheduled deletion bucket=%s key=%s job_id=%s (metadata %s)",
            bucket,
            key,
            job_id,
            "removed" if removed else "absent",
        )
        return job_id

    def ingest(
        self,
        bucket: str,
        key: str,
        data: bytes,
        *,
        content_type: str | None = None,
    ) -> MetadataRecord:
        """Write bytes to the store and index them.

        If indexing fails the object is deleted again; the indexing error is
        re-raised. If that deletion also fails, SagaConsistencyError is raised.
        """
        expected_sha256 = hashlib.sha256(data).hexdigest()
        saga = (
            SagaExecutor(f"ingest-{uuid.uuid4()}")
            .add_step(
                "object_put",
                lambda ctx: self._put(bucket, key, data, content_type),
                lambda ctx, head: self._compensate_put(bucket, key),
            )
            # Final step: no later step can fail, so it is never compensated.
            .add_step(
                "metadata_write",
                lambda ctx: self.confirm_upload(bucket, key, expected_sha256=expected_sha256),
                lambda ctx, record: None,
            )
        )
        result = saga.execute()
        result.raise_for_status()
        record: MetadataRecord = result.step_results[-1].result
        return record

    def _head(self, bucket: str, key: str) -> ObjectHead:
        try:
            return self.object_store.head_object(bucket, key)
        except ObjectNotFoundError as e:
            raise NotFoundError(bucket=bucket, key=key) from e
        except StorageBackendError as e:
            raise TransientStoreError(str(e), bucket=bucket, key=key, cause=e) from e

    def _put(self, bucket: str, key: str, data: bytes, content_type: str | None) -> ObjectHead:
        try:
            return self.object_store.put_object(bucket, key, data, content_type=content_type)
        except StorageBackendError as e:
            raise TransientStoreError(str(e), bucket=bucket, key=key, cause=e) from e

    def _compensate_put(self, bucket: str, key: str) -> None:
        self.object_store.delete_object(bucket, key)

    def _physical_delete(self, bucket: str, key: str) -> None:
        """Retry action: delete the object. Missing objects count as deleted."""
        try:
            self.object_store.delete_object(bucket, key)
        except StorageBackendError as e:
            raise TransientStoreError(str(e), bucket=bucket, key=key, cause=e) from e
        logger.info("Deleted object bucket=%s key=%s", bucket, key)
