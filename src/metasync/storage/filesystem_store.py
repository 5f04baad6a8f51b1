"""Filesystem object storage backend.

Provides local filesystem storage for development with:
- Bucket isolation via physical directory namespacing
- Path traversal protection
- SHA-256 content hashing recorded at write time

Environment Variables:
    METASYNC_OBJECT_STORE_BASE_DIR: Base directory for storage
        (default: tempfile.gettempdir() / metasync_objects)
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import re
import shutil
import tempfile
import time
import uuid
from datetime import UTC, datetime
from pathlib import Path
from urllib.parse import urlencode

from metasync.config import METASYNC_OBJECT_STORE_BASE_DIR_ENV
from metasync.storage.errors import (
    ObjectNotFoundError,
    PathTraversalError,
    StorageBackendError,
)
from metasync.storage.models import ObjectHead, SignedUrlOperation
from metasync.storage.object_store import ObjectStore
from metasync.storage.tracing import traced_storage_operation

logger = logging.getLogger(__name__)

_BUCKET_PATTERN = re.compile(r"^[a-z0-9][a-z0-9.\-]{1,62}$")

_SAFE_KEY_PATTERN = re.compile(r"^[a-zA-Z0-9_\-./]+$")

_METADATA_FILE = "meta.json"
_CONTENT_FILE = "content.data"


def _is_path_traversal(key: str) -> bool:
    """Check if a key contains path traversal sequences.

    Detects:
    - ".." segments
    - Absolute paths (starting with / or ~, or drive letters like C:)
    - Backslashes and null bytes
    - Characters outside the safe key alphabet
    """
    if not key:
        return True
    if "\x00" in key or "\\" in key:
        return True
    if key.startswith("/") or key.startswith("~"):
        return True
    if len(key) >= 2 and key[1] == ":":
        return True
    if any(segment == ".." for segment in key.split("/")):
        return True
    return not bool(_SAFE_KEY_PATTERN.match(key))


def _compute_sha256(data: bytes) -> str:
    """Compute SHA256 hash of data and return as hex string."""
    return hashlib.sha256(data).hexdigest()


class FilesystemObjectStore(ObjectStore):
    """Filesystem-based object storage implementation.

    Objects are stored in a directory structure:
        {base_dir}/{bucket}/{safe_key}_{key_hash}/
            content.data    # content
            meta.json       # ObjectHead as JSON

    Writes go through a temp file and an atomic rename, so a reader never
    observes a half-written object.
    """

    def __init__(self, base_dir: str | Path | None = None) -> None:
        """Initialize filesystem storage.

        Args:
            base_dir: Base directory for storage. If None, uses
                METASYNC_OBJECT_STORE_BASE_DIR env var or OS temp directory.
        """
        if base_dir is None:
            base_dir = os.environ.get(METASYNC_OBJECT_STORE_BASE_DIR_ENV)

        if base_dir is None:
            base_dir = Path(tempfile.gettempdir()) / "metasync_objects"
        else:
            base_dir = Path(base_dir)

        self._base_dir = base_dir.resolve()
        logger.debug("FilesystemObjectStore initialized with base_dir=%s", self._base_dir)

    @property
    def backend_name(self) -> str:
        """Return the backend identifier."""
        return "filesystem"

    @property
    def base_dir(self) -> Path:
        """Return the base directory path."""
        return self._base_dir

    def _get_object_dir(self, bucket: str, key: str) -> Path:
        """Get the directory for an object, validating inputs.

        Uses a hash of the key to create a safe filesystem path.
        """
        if not _BUCKET_PATTERN.match(bucket):
            raise PathTraversalError(
                message="Invalid bucket name",
                bucket=bucket,
                key=key,
            )
        if _is_path_traversal(key):
            raise PathTraversalError(
                message="Invalid key: path traversal or unsafe characters detected",
                bucket=bucket,
                key=key,
            )

        key_hash = hashlib.sha256(key.encode("utf-8")).hexdigest()[:16]
        safe_key = re.sub(r"[^a-zA-Z0-9_\-]", "_", key)[:64]
        obj_dir = self._base_dir / bucket / f"{safe_key}_{key_hash}"

        resolved = obj_dir.resolve()
        try:
            resolved.relative_to(self._base_dir)
        except ValueError as e:
            raise PathTraversalError(
                message="Path resolves outside storage base directory",
                bucket=bucket,
                key=key,
            ) from e
        return resolved

    def _write_atomic(self, path: Path, data: bytes) -> None:
        tmp_file = path.parent / f"{path.name}.{uuid.uuid4().hex}.tmp"
        try:
            tmp_file.write_bytes(data)
            tmp_file.replace(path)
        except OSError as e:
            tmp_file.unlink(missing_ok=True)
            raise StorageBackendError(
                message=f"Failed to write {path.name}: {e}",
                cause=e,
            ) from e

    def _read_head(self, obj_dir: Path, bucket: str, key: str) -> ObjectHead:
        meta_file = obj_dir / _METADATA_FILE
        if not meta_file.exists():
            raise ObjectNotFoundError(bucket=bucket, key=key)
        try:
            data = json.loads(meta_file.read_text(encoding="utf-8"))
            return ObjectHead.from_dict(data)
        except (OSError, json.JSONDecodeError, KeyError, ValueError) as e:
            raise StorageBackendError(
                message=f"Failed to read object metadata: {e}",
                bucket=bucket,
                key=key,
                cause=e,
            ) from e

    @traced_storage_operation("head")
    def head_object(self, bucket: str, key: str) -> ObjectHead:
        """Get object attributes without reading the content."""
        obj_dir = self._get_object_dir(bucket, key)
        return self._read_head(obj_dir, bucket, key)

    @traced_storage_operation("put")
    def put_object(
        self,
        bucket: str,
        key: str,
        data: bytes,
        *,
        content_type: str | None = None,
    ) -> ObjectHead:
        """Store an object."""
        obj_dir = self._get_object_dir(bucket, key)
        try:
            obj_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to create object directory: {e}",
                bucket=bucket,
                key=key,
                cause=e,
            ) from e

        head = ObjectHead(
            bucket=bucket,
            key=key,
            content_type=content_type,
            size=len(data),
            sha256=_compute_sha256(data),
            last_modified=datetime.now(UTC),
        )

        self._write_atomic(obj_dir / _CONTENT_FILE, data)
        self._write_atomic(
            obj_dir / _METADATA_FILE,
            json.dumps(head.to_dict(), indent=2).encode("utf-8"),
        )

        logger.debug("Stored object: bucket=%s key=%s sha256=%s", bucket, key, head.sha256)
        return head

    @traced_storage_operation("get")
    def get_object(self, bucket: str, key: str) -> bytes:
        """Read an object's content."""
        obj_dir = self._get_object_dir(bucket, key)
        content_file = obj_dir / _CONTENT_FILE
        if not content_file.exists():
            raise ObjectNotFoundError(bucket=bucket, key=key)
        try:
            return content_file.read_bytes()
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to read object content: {e}",
                bucket=bucket,
                key=key,
                cause=e,
            ) from e

    @traced_storage_operation("delete")
    def delete_object(self, bucket: str, key: str) -> None:
        """Delete an object; a missing object is a no-op."""
        obj_dir = self._get_object_dir(bucket, key)
        if not obj_dir.exists():
            logger.debug("Delete of absent object: bucket=%s key=%s", bucket, key)
            return

        try:
            shutil.rmtree(obj_dir)
        except FileNotFoundError:
            return
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to delete object directory: {e}",
                bucket=bucket,
                key=key,
                cause=e,
            ) from e
        logger.debug("Deleted object: bucket=%s key=%s", bucket, key)

    def signed_url(
        self,
        bucket: str,
        key: str,
        operation: SignedUrlOperation,
        ttl_seconds: int,
        *,
        sha256: str | None = None,
    ) -> str:
        """Return a file:// URL with the operation and expiry in the query.

        Local development only: the URL is not cryptographically signed.
        """
        obj_dir = self._get_object_dir(bucket, key)
        expires = int(time.time()) + max(1, ttl_seconds)
        params: dict[str, str | int] = {"operation": str(operation), "expires": expires}
        if sha256 is not None and operation == SignedUrlOperation.PUT:
            params["sha256"] = sha256
        query = urlencode(params)
        return f"{(obj_dir / _CONTENT_FILE).as_uri()}?{query}"
