"""Tests for the permission-gated ObjectClient.

Covers the end-to-end upload flow and the client-level guarantees:
- Gate failures abort before any side effect
- Delete-then-get returns None regardless of the deletion job's state
- Re-sync is idempotent
- Custom keys must be new
"""

from __future__ import annotations

import hashlib
from typing import Any

import httpx
import pytest

from metasync.client import ObjectClient
from metasync.errors import (
    ChecksumMismatchError,
    DuplicateKeyError,
    InvalidCursorError,
    NotFoundError,
    PermissionDenied,
    TransientStoreError,
)
from metasync.metadata.models import MetadataRecord, PageStatus
from metasync.permissions import CallbackPermissionGate
from metasync.retry.executor import DurableRetryExecutor
from metasync.retry.models import JobStatus
from metasync.storage.memory_store import InMemoryObjectStore
from metasync.sync import SyncEngine

BUCKET = "media"


def _sha(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _deny(*args: Any) -> None:
    raise PermissionDenied()


def _gated(engine: SyncEngine, **hooks: Any) -> ObjectClient:
    return ObjectClient(engine, bucket=BUCKET, gate=CallbackPermissionGate(**hooks))


class TestUploadFlow:
    """Tests for generate_upload_url -> PUT -> sync_metadata -> get_metadata."""

    def test_photo_upload_end_to_end(
        self, client: ObjectClient, object_store: InMemoryObjectStore
    ) -> None:
        data = b"\xff\xd8\xff" + b"\x00" * 2045
        target = client.generate_upload_url("photos/abc123")
        assert target.key == "photos/abc123"
        assert "operation=put" in target.url

        # The caller PUTs the bytes to target.url.
        object_store.put_object(BUCKET, target.key, data, content_type="image/jpeg")
        client.sync_metadata(target.key, expected_sha256=_sha(data))

        record = client.get_metadata("photos/abc123")
        assert record is not None
        assert record.bucket == BUCKET
        assert record.content_type == "image/jpeg"
        assert record.size == 2048
        assert record.sha256 == _sha(data)
        assert record.url is not None
        assert "operation=get" in record.url

    def test_upload_url_binds_content_checksum(self, client: ObjectClient) -> None:
        digest = _sha(b"jpeg")

        target = client.generate_upload_url("photos/abc123", sha256=digest.upper())

        assert f"sha256={digest}" in target.url

    @pytest.mark.parametrize("sha256", ["abc", "zz" * 32, _sha(b"x") + "0"])
    def test_upload_url_rejects_malformed_checksum(
        self, client: ObjectClient, sha256: str
    ) -> None:
        with pytest.raises(ValueError, match="64 hex"):
            client.generate_upload_url("photos/abc123", sha256=sha256)

    def test_random_key_when_omitted(self, client: ObjectClient) -> None:
        first = client.generate_upload_url()
        second = client.generate_upload_url()

        assert first.key != second.key

    def test_custom_key_collision(
        self, client: ObjectClient, object_store: InMemoryObjectStore
    ) -> None:
        object_store.put_object(BUCKET, "photos/abc123", b"data")
        client.sync_metadata("photos/abc123")

        with pytest.raises(DuplicateKeyError) as exc_info:
            client.generate_upload_url("photos/abc123")
        assert exc_info.value.key == "photos/abc123"

    def test_checksum_mismatch_writes_nothing(
        self, client: ObjectClient, object_store: InMemoryObjectStore
    ) -> None:
        object_store.put_object(BUCKET, "k", b"actual")

        with pytest.raises(ChecksumMismatchError):
            client.sync_metadata("k", expected_sha256=_sha(b"other"))

        assert client.get_metadata("k") is None

    def test_sync_missing_object(self, client: ObjectClient) -> None:
        with pytest.raises(NotFoundError):
            client.sync_metadata("never-uploaded")

    def test_resync_is_idempotent(
        self, client: ObjectClient, object_store: InMemoryObjectStore
    ) -> None:
        object_store.put_object(BUCKET, "k", b"data", content_type="text/plain")

        client.sync_metadata("k")
        first = client.get_metadata("k")
        client.sync_metadata("k")
        second = client.get_metadata("k")

        assert first == second
        assert len(client.list_metadata()) == 1

    def test_resync_after_overwrite_is_last_write_wins(
        self, client: ObjectClient, object_store: InMemoryObjectStore
    ) -> None:
        object_store.put_object(BUCKET, "k", b"v1")
        client.sync_metadata("k")
        object_store.put_object(BUCKET, "k", b"version two")
        client.sync_metadata("k")

        record = client.get_metadata("k")
        assert record is not None
        assert record.size == len(b"version two")

    def test_get_metadata_absent_returns_none(self, client: ObjectClient) -> None:
        assert client.get_metadata("missing") is None

    def test_get_metadata_other_bucket(
        self, client: ObjectClient, object_store: InMemoryObjectStore
    ) -> None:
        object_store.put_object("archive", "k", b"old")
        client.engine.confirm_upload("archive", "k")

        record = client.get_metadata("k", bucket="archive")

        assert record is not None
        assert record.bucket == "archive"
        assert client.get_metadata("k") is None


class TestGates:
    """Tests for gate ordering and side-effect freedom."""

    def test_failing_check_delete_leaves_record_and_object(
        self,
        engine: SyncEngine,
        object_store: InMemoryObjectStore,
        executor: DurableRetryExecutor,
    ) -> None:
        object_store.put_object(BUCKET, "k", b"data")
        engine.confirm_upload(BUCKET, "k")
        client = _gated(engine, check_delete=_deny)

        with pytest.raises(PermissionDenied):
            client.delete_object("k")

        assert client.get_metadata("k") is not None
        assert (BUCKET, "k") in object_store
        assert executor.run_due() == 0

    def test_failing_on_delete_leaves_record(
        self, engine: SyncEngine, object_store: InMemoryObjectStore
    ) -> None:
        object_store.put_object(BUCKET, "k", b"data")
        engine.confirm_upload(BUCKET, "k")
        client = _gated(engine, on_delete=_deny)

        with pytest.raises(PermissionDenied):
            client.delete_object("k")

        assert client.get_metadata("k") is not None

    def test_failing_on_upload_writes_no_record(
        self, engine: SyncEngine, object_store: InMemoryObjectStore
    ) -> None:
        object_store.put_object(BUCKET, "k", b"data")
        client = _gated(engine, on_upload=_deny)

        with pytest.raises(PermissionDenied):
            client.sync_metadata("k")

        assert engine.metadata_store.get_by_bucket_key(BUCKET, "k") is None

    def test_check_upload_runs_before_on_upload(
        self, engine: SyncEngine, object_store: InMemoryObjectStore
    ) -> None:
        calls: list[str] = []
        client = _gated(
            engine,
            check_upload=lambda b: calls.append("check_upload"),
            on_upload=lambda b, k: calls.append("on_upload"),
            on_sync_metadata=lambda r: calls.append(f"on_sync_metadata:{r.key}"),
        )
        object_store.put_object(BUCKET, "k", b"data")

        client.sync_metadata("k")

        assert calls == ["check_upload", "on_upload", "on_sync_metadata:k"]

    def test_failing_check_upload_issues_no_url(self, engine: SyncEngine) -> None:
        client = _gated(engine, check_upload=_deny)

        with pytest.raises(PermissionDenied):
            client.generate_upload_url()

    def test_read_gates(self, engine: SyncEngine) -> None:
        client = _gated(engine, check_read_key=_deny, check_read_bucket=_deny)

        with pytest.raises(PermissionDenied):
            client.get_metadata("k")
        with pytest.raises(PermissionDenied):
            client.get_url("k")
        with pytest.raises(PermissionDenied):
            client.list_metadata()
        with pytest.raises(PermissionDenied):
            client.page_metadata()

    def test_failing_on_sync_metadata_propagates_after_write(
        self, engine: SyncEngine, object_store: InMemoryObjectStore
    ) -> None:
        """on_sync_metadata runs after the record is written."""
        object_store.put_object(BUCKET, "k", b"data")
        client = _gated(engine, on_sync_metadata=_deny)

        with pytest.raises(PermissionDenied):
            client.sync_metadata("k")

        assert engine.metadata_store.get_by_bucket_key(BUCKET, "k") is not None


class TestDelete:
    """Tests for delete_object and job observation."""

    def test_delete_then_get_returns_none(
        self,
        client: ObjectClient,
        object_store: InMemoryObjectStore,
        executor: DurableRetryExecutor,
    ) -> None:
        object_store.put_object(BUCKET, "photos/abc123", b"data")
        client.sync_metadata("photos/abc123")

        job_id = client.delete_object("photos/abc123")

        # Before the job has run.
        assert client.get_metadata("photos/abc123") is None
        assert client.job_status(job_id).status == JobStatus.IN_PROGRESS

        executor.run_due()

        assert client.get_metadata("photos/abc123") is None
        assert client.job_status(job_id).status == JobStatus.SUCCEEDED
        assert (BUCKET, "photos/abc123") not in object_store

    def test_cancel_pending_delete(
        self,
        client: ObjectClient,
        object_store: InMemoryObjectStore,
        executor: DurableRetryExecutor,
    ) -> None:
        """Canceling keeps the object but never restores the metadata."""
        object_store.put_object(BUCKET, "k", b"data")
        client.sync_metadata("k")
        job_id = client.delete_object("k")

        assert client.cancel_job(job_id) is True
        executor.run_due()

        assert client.job_status(job_id).status == JobStatus.CANCELED
        assert (BUCKET, "k") in object_store
        assert client.get_metadata("k") is None
        assert client.cancel_job(job_id) is False


class TestListing:
    """Tests for list_metadata and page_metadata."""

    def _sync_many(
        self, client: ObjectClient, object_store: InMemoryObjectStore, count: int
    ) -> list[str]:
        keys = [f"item-{i:02d}" for i in range(count)]
        for key in keys:
            object_store.put_object(BUCKET, key, key.encode())
            client.sync_metadata(key)
        return keys

    def test_list_follows_cursors_past_budget(
        self, client: ObjectClient, object_store: InMemoryObjectStore
    ) -> None:
        """The fixture index has a budget of 8 records per page."""
        keys = self._sync_many(client, object_store, 20)

        records = client.list_metadata(limit=15)

        assert [r.key for r in records] == keys[:15]
        assert all(isinstance(r, MetadataRecord) for r in records)

    def test_list_default_returns_everything_small(
        self, client: ObjectClient, object_store: InMemoryObjectStore
    ) -> None:
        keys = self._sync_many(client, object_store, 3)

        assert [r.key for r in client.list_metadata()] == keys

    def test_page_traversal_is_complete(
        self, client: ObjectClient, object_store: InMemoryObjectStore
    ) -> None:
        keys = self._sync_many(client, object_store, 10)

        seen: list[str] = []
        cursor = None
        while True:
            page = client.page_metadata(cursor=cursor, limit=4)
            seen.extend(r.key for r in page.page)
            cursor = page.continue_cursor
            if page.is_done:
                break

        assert seen == keys

    def test_page_over_budget_signals_split(
        self, client: ObjectClient, object_store: InMemoryObjectStore
    ) -> None:
        self._sync_many(client, object_store, 12)

        page = client.page_metadata(limit=100)

        assert page.page_status == PageStatus.SPLIT_REQUIRED
        assert len(page.page) == 8

    def test_page_invalid_cursor(self, client: ObjectClient) -> None:
        with pytest.raises(InvalidCursorError):
            client.page_metadata(cursor="garbage")


class TestServerSideStore:
    """Tests for store and store_from_url."""

    def test_store_indexes_bytes(
        self, client: ObjectClient, object_store: InMemoryObjectStore
    ) -> None:
        key = client.store(b"hello", content_type="text/plain", key="notes/hello.txt")

        assert key == "notes/hello.txt"
        assert object_store.get_object(BUCKET, key) == b"hello"
        record = client.get_metadata(key)
        assert record is not None
        assert record.sha256 == _sha(b"hello")

    def test_store_rejects_existing_key(self, client: ObjectClient) -> None:
        client.store(b"one", key="k")

        with pytest.raises(DuplicateKeyError):
            client.store(b"two", key="k")

    def test_store_denied_writes_nothing(
        self, engine: SyncEngine, object_store: InMemoryObjectStore
    ) -> None:
        client = _gated(engine, on_upload=_deny)

        with pytest.raises(PermissionDenied):
            client.store(b"data", key="k")

        assert (BUCKET, "k") not in object_store

    def test_store_from_url(
        self, engine: SyncEngine, object_store: InMemoryObjectStore
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert str(request.url) == "https://example.com/cat.png"
            return httpx.Response(200, content=b"png", headers={"content-type": "image/png"})

        http = httpx.Client(transport=httpx.MockTransport(handler))
        client = ObjectClient(engine, bucket=BUCKET, http_client=http)

        key = client.store_from_url("https://example.com/cat.png", key="cats/1.png")

        assert object_store.get_object(BUCKET, key) == b"png"
        record = client.get_metadata(key)
        assert record is not None
        assert record.content_type == "image/png"

    def test_store_from_url_error_status_is_transient(
        self, engine: SyncEngine, object_store: InMemoryObjectStore
    ) -> None:
        http = httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(502)))
        client = ObjectClient(engine, bucket=BUCKET, http_client=http)

        with pytest.raises(TransientStoreError):
            client.store_from_url("https://example.com/broken", key="k")

        assert (BUCKET, "k") not in object_store


class TestConstruction:
    """Tests for client construction."""

    def test_bucket_required(self, engine: SyncEngine) -> None:
        with pytest.raises(ValueError):
            ObjectClient(engine, bucket="")

    def test_get_url_does_not_require_object(self, client: ObjectClient) -> None:
        url = client.get_url("not/there")

        assert url.startswith("memory://media/")
