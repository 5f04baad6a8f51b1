"""Tests for the filesystem object store.

- Roundtrip: put then get returns identical bytes; sha256 matches
- Bucket isolation: an object in bucket A is invisible from bucket B
- Idempotent delete: deleting a missing object is not an error
- Path traversal prevention: keys like "../x", "..\\x", "/abs" are rejected
- OTel spans: with tracing enabled, spans carry only safe attributes
"""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Any

import pytest

from metasync.storage.errors import ObjectNotFoundError, PathTraversalError
from metasync.storage.filesystem_store import FilesystemObjectStore
from metasync.storage.models import SignedUrlOperation


@pytest.fixture
def store(tmp_path: Path) -> FilesystemObjectStore:
    """Create a FilesystemObjectStore in a temp directory."""
    return FilesystemObjectStore(base_dir=tmp_path)


class TestRoundtrip:
    """Tests for basic put/get/head roundtrip functionality."""

    def test_put_then_get_returns_identical_bytes(self, store: FilesystemObjectStore) -> None:
        """Put then get should return identical bytes."""
        data = b"Hello, World! This is test content."

        store.put_object("media", "test/document.pdf", data, content_type="application/pdf")

        assert store.get_object("media", "test/document.pdf") == data

    def test_head_reports_sha256_size_and_content_type(self, store: FilesystemObjectStore) -> None:
        """HEAD should report the attributes recorded at write time."""
        data = b"Content for hash verification test"

        put_head = store.put_object("media", "test/hash.bin", data, content_type="text/plain")
        head = store.head_object("media", "test/hash.bin")

        assert head == put_head
        assert head.sha256 == hashlib.sha256(data).hexdigest()
        assert head.size == len(data)
        assert head.content_type == "text/plain"
        assert head.last_modified.tzinfo is not None

    def test_empty_content(self, store: FilesystemObjectStore) -> None:
        """Should handle empty content correctly."""
        head = store.put_object("media", "test/empty.bin", b"")

        assert head.size == 0
        assert head.sha256 == hashlib.sha256(b"").hexdigest()
        assert store.get_object("media", "test/empty.bin") == b""

    def test_overwrite_replaces_content(self, store: FilesystemObjectStore) -> None:
        """A second put under the same key replaces the first."""
        store.put_object("media", "test/overwrite.txt", b"first")
        store.put_object("media", "test/overwrite.txt", b"second")

        assert store.get_object("media", "test/overwrite.txt") == b"second"
        assert store.head_object("media", "test/overwrite.txt").size == 6

    def test_binary_content(self, store: FilesystemObjectStore) -> None:
        """Should handle binary content with all byte values."""
        data = bytes(range(256))
        store.put_object("media", "test/binary.bin", data)

        assert store.get_object("media", "test/binary.bin") == data


class TestBucketIsolation:
    """Tests for bucket isolation."""

    def test_same_key_different_buckets_independent(self, store: FilesystemObjectStore) -> None:
        """Same key in different buckets should store independent data."""
        store.put_object("bucket-a", "config/settings.json", b"A")
        store.put_object("bucket-b", "config/settings.json", b"B")

        assert store.get_object("bucket-a", "config/settings.json") == b"A"
        assert store.get_object("bucket-b", "config/settings.json") == b"B"

    def test_head_respects_bucket_isolation(self, store: FilesystemObjectStore) -> None:
        """HEAD in another bucket should not find the object."""
        store.put_object("bucket-a", "test/head.txt", b"data")

        with pytest.raises(ObjectNotFoundError):
            store.head_object("bucket-b", "test/head.txt")

    def test_delete_does_not_affect_other_bucket(self, store: FilesystemObjectStore) -> None:
        """Deleting in bucket A should not affect bucket B."""
        store.put_object("bucket-a", "shared/file.txt", b"A")
        store.put_object("bucket-b", "shared/file.txt", b"B")

        store.delete_object("bucket-a", "shared/file.txt")

        with pytest.raises(ObjectNotFoundError):
            store.get_object("bucket-a", "shared/file.txt")
        assert store.get_object("bucket-b", "shared/file.txt") == b"B"

    def test_invalid_bucket_name_rejected(self, store: FilesystemObjectStore) -> None:
        """Bucket names outside the S3 naming alphabet are rejected."""
        with pytest.raises(PathTraversalError):
            store.put_object("../escape", "key.txt", b"data")


class TestDelete:
    """Tests for idempotent deletion."""

    def test_delete_removes_object(self, store: FilesystemObjectStore) -> None:
        """Deleted objects are no longer readable."""
        store.put_object("media", "test/gone.txt", b"data")

        store.delete_object("media", "test/gone.txt")

        with pytest.raises(ObjectNotFoundError):
            store.head_object("media", "test/gone.txt")

    def test_delete_missing_object_is_noop(self, store: FilesystemObjectStore) -> None:
        """Deleting a missing object should not raise."""
        store.delete_object("media", "never/existed.txt")
        store.delete_object("media", "never/existed.txt")


class TestPathTraversalPrevention:
    """Tests for path traversal attack prevention."""

    @pytest.mark.parametrize(
        "invalid_key",
        [
            "../escape",
            "foo/../bar",
            "..\\escape",
            "foo\\..\\bar",
            "/absolute/path",
            "C:\\windows\\path",
            "D:/drive/path",
            "~/home/escape",
            "foo/../../etc/passwd",
            "key\x00null",
        ],
    )
    def test_put_rejects_traversal_keys(
        self, store: FilesystemObjectStore, invalid_key: str
    ) -> None:
        """Put should reject keys with path traversal sequences."""
        with pytest.raises(PathTraversalError):
            store.put_object("media", invalid_key, b"data")

    @pytest.mark.parametrize("invalid_key", ["../escape", "/absolute/path"])
    def test_head_and_delete_reject_traversal_keys(
        self, store: FilesystemObjectStore, invalid_key: str
    ) -> None:
        """Head and delete should reject keys with path traversal sequences."""
        with pytest.raises(PathTraversalError):
            store.head_object("media", invalid_key)
        with pytest.raises(PathTraversalError):
            store.delete_object("media", invalid_key)

    @pytest.mark.parametrize(
        "valid_key",
        [
            "simple",
            "photos/abc123",
            "deep/nested/path/to/file.pdf",
            "file-with-dashes.txt",
            "file_with_underscores.txt",
            "123/numeric/456",
        ],
    )
    def test_valid_keys_accepted(self, store: FilesystemObjectStore, valid_key: str) -> None:
        """Valid keys should be accepted."""
        head = store.put_object("media", valid_key, b"test data")

        assert head.key == valid_key
        assert store.get_object("media", valid_key) == b"test data"


    def test_traversal_error_names_key(self, store: FilesystemObjectStore) -> None:
        with pytest.raises(PathTraversalError) as exc_info:
            store.get_object("media", "../escape")

        assert exc_info.value.key == "../escape"
        assert "key=../escape" in str(exc_info.value)

    def test_missing_object_uses_default_message(self, store: FilesystemObjectStore) -> None:
        with pytest.raises(ObjectNotFoundError) as exc_info:
            store.head_object("media", "missing.txt")

        assert str(exc_info.value) == "Object not found (bucket=media, key=missing.txt)"
        assert exc_info.value.cause is None


class TestSignedUrl:
    """Tests for local signed URLs."""

    def test_signed_url_names_operation_and_expiry(self, store: FilesystemObjectStore) -> None:
        """The file:// URL carries the operation and an expiry."""
        url = store.signed_url("media", "photos/abc123", SignedUrlOperation.PUT, 60)

        assert url.startswith("file://")
        assert "operation=put" in url
        assert "expires=" in url

    def test_signing_does_not_require_object(self, store: FilesystemObjectStore) -> None:
        """Signing is local; the object need not exist."""
        url = store.signed_url("media", "not/yet/uploaded", SignedUrlOperation.GET, 60)

        assert "operation=get" in url


class TestBackendProperties:
    """Tests for backend-specific properties."""

    def test_backend_name(self, store: FilesystemObjectStore) -> None:
        """Backend name should be 'filesystem'."""
        assert store.backend_name == "filesystem"

    def test_base_dir_property(self, store: FilesystemObjectStore, tmp_path: Path) -> None:
        """Base dir property should return the configured directory."""
        assert store.base_dir == tmp_path.resolve()

    def test_env_var_base_dir(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Should use METASYNC_OBJECT_STORE_BASE_DIR when set."""
        custom_dir = tmp_path / "custom"
        custom_dir.mkdir()
        monkeypatch.setenv("METASYNC_OBJECT_STORE_BASE_DIR", str(custom_dir))

        assert FilesystemObjectStore().base_dir == custom_dir.resolve()


class TestOtelSpans:
    """Tests for OpenTelemetry span emission."""

    def test_put_emits_span_with_safe_attributes(
        self, store: FilesystemObjectStore, span_exporter: Any, tmp_path: Path
    ) -> None:
        """Put emits a span with the hashed key and no raw key or path."""
        key = "test/otel_put.txt"
        store.put_object("media", key, b"test data", content_type="text/plain")

        spans = [
            s
            for s in span_exporter.get_finished_spans()
            if s.name == "metasync.object_store.put"
        ]
        assert len(spans) == 1
        attrs = dict(spans[0].attributes or {})

        assert attrs["metasync.bucket"] == "media"
        assert attrs["metasync.object_key_sha256"] == hashlib.sha256(key.encode()).hexdigest()
        assert attrs["storage.backend"] == "filesystem"
        assert attrs["metasync.object_size_bytes"] == 9
        assert "metasync.object_sha256" in attrs
        for value in attrs.values():
            assert key not in str(value)
            assert str(tmp_path) not in str(value)

    def test_head_get_delete_emit_spans(
        self, store: FilesystemObjectStore, span_exporter: Any
    ) -> None:
        """Each traced operation emits its own span."""
        store.put_object("media", "test/otel.txt", b"data")
        store.head_object("media", "test/otel.txt")
        store.get_object("media", "test/otel.txt")
        store.delete_object("media", "test/otel.txt")

        names = [s.name for s in span_exporter.get_finished_spans()]
        for operation in ("put", "head", "get", "delete"):
            assert f"metasync.object_store.{operation}" in names

    def test_failed_operation_marks_span_error(
        self, store: FilesystemObjectStore, span_exporter: Any
    ) -> None:
        """A raising operation records the error type on its span."""
        with pytest.raises(ObjectNotFoundError):
            store.head_object("media", "missing.txt")

        spans = [
            s
            for s in span_exporter.get_finished_spans()
            if s.name == "metasync.object_store.head"
        ]
        attrs = dict(spans[-1].attributes or {})
        assert attrs["error"] is True
        assert attrs["error.type"] == "ObjectNotFoundError"

    def test_no_spans_when_disabled(
        self, store: FilesystemObjectStore, span_exporter: Any, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """With METASYNC_OTEL_ENABLED unset, no storage spans are emitted."""
        monkeypatch.delenv("METASYNC_OTEL_ENABLED")

        store.put_object("media", "test/quiet.txt", b"data")

        assert span_exporter.get_finished_spans() == ()
