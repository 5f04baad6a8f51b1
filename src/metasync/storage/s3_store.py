"""S3-compatible object storage backend (AWS S3, Cloudflare R2, MinIO).

The boto3 client is built by a connection factory on first use, from an
explicit StoreConfig. Tests substitute the factory to inject a stub client.

Checksums: uploads send ChecksumSHA256 so the store records it, and a signed
PUT URL issued with sha256 carries it too. HEAD requests ask for it back
with ChecksumMode=ENABLED and convert the base64 digest to hex. Stores that
do not track checksums report sha256=None.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import logging
import threading
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from metasync.config import StoreConfig
from metasync.storage.errors import ObjectNotFoundError, StorageBackendError
from metasync.storage.models import ObjectHead, SignedUrlOperation
from metasync.storage.object_store import ObjectStore
from metasync.storage.tracing import traced_storage_operation

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound", "NoSuchObject"})

ClientFactory = Callable[[StoreConfig], Any]


def create_s3_client(config: StoreConfig) -> Any:
    """Default connection factory: a SigV4 boto3 S3 client for the endpoint."""
    return boto3.client(
        "s3",
        endpoint_url=config.endpoint,
        aws_access_key_id=config.access_key_id,
        aws_secret_access_key=config.secret_access_key,
        region_name="auto",
        config=Config(
            signature_version="s3v4",
            retries={"max_attempts": 3, "mode": "standard"},
        ),
    )


def _error_code(e: ClientError) -> str:
    return str(e.response.get("Error", {}).get("Code", ""))


def _hex_from_b64(value: str | None) -> str | None:
    """Convert a base64 SHA-256 digest (as S3 reports it) to hex."""
    if not value:
        return None
    try:
        return base64.b64decode(value, validate=True).hex()
    except (binascii.Error, ValueError):
        logger.warning("Ignoring malformed ChecksumSHA256 value from store")
        return None


class S3ObjectStore(ObjectStore):
    """ObjectStore backed by an S3-compatible API via boto3."""

    def __init__(
        self,
        config: StoreConfig,
        *,
        client_factory: ClientFactory | None = None,
    ) -> None:
        """Initialize the backend without connecting.

        Args:
            config: Validated store configuration.
            client_factory: Builds the boto3 client on first use.
                Defaults to create_s3_client.
        """
        self._config = config
        self._client_factory = client_factory or create_s3_client
        self._client: Any = None
        self._client_lock = threading.Lock()

    @property
    def backend_name(self) -> str:
        """Return the backend identifier."""
        return "s3"

    @property
    def client(self) -> Any:
        """Return the boto3 client, creating it on first access."""
        if self._client is None:
            with self._client_lock:
                if self._client is None:
                    self._client = self._client_factory(self._config)
                    logger.info("Created S3 client for endpoint %s", self._config.endpoint)
        return self._client

    @traced_storage_operation("head")
    def head_object(self, bucket: str, key: str) -> ObjectHead:
        """HEAD the object and map the response to an ObjectHead."""
        try:
            resp = self.client.head_object(Bucket=bucket, Key=key, ChecksumMode="ENABLED")
        except ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                raise ObjectNotFoundError(bucket=bucket, key=key) from e
            raise StorageBackendError(
                message=f"HEAD failed: {_error_code(e) or e}",
                bucket=bucket,
                key=key,
                cause=e,
            ) from e
        except BotoCoreError as e:
            raise StorageBackendError(
                message=f"HEAD failed: {e}", bucket=bucket, key=key, cause=e
            ) from e

        last_modified = resp.get("LastModified") or datetime.now(UTC)
        size = resp.get("ContentLength")
        return ObjectHead(
            bucket=bucket,
            key=key,
            content_type=resp.get("ContentType") or None,
            size=int(size) if size is not None else None,
            sha256=_hex_from_b64(resp.get("ChecksumSHA256")),
            last_modified=last_modified,
        )

    @traced_storage_operation("put")
    def put_object(
        self,
        bucket: str,
        key: str,
        data: bytes,
        *,
        content_type: str | None = None,
    ) -> ObjectHead:
        """PUT the object with a SHA-256 checksum, then return its head."""
        digest = hashlib.sha256(data).digest()
        kwargs: dict[str, Any] = {
            "Bucket": bucket,
            "Key": key,
            "Body": data,
            "ChecksumSHA256": base64.b64encode(digest).decode("ascii"),
        }
        if content_type:
            kwargs["ContentType"] = content_type

        try:
            self.client.put_object(**kwargs)
        except (ClientError, BotoCoreError) as e:
            raise StorageBackendError(
                message=f"PUT failed: {e}", bucket=bucket, key=key, cause=e
            ) from e

        logger.debug("Stored object: bucket=%s key=%s size=%d", bucket, key, len(data))
        return ObjectHead(
            bucket=bucket,
            key=key,
            content_type=content_type,
            size=len(data),
            sha256=digest.hex(),
            last_modified=datetime.now(UTC),
        )

    @traced_storage_operation("get")
    def get_object(self, bucket: str, key: str) -> bytes:
        """GET the object body."""
        try:
            resp = self.client.get_object(Bucket=bucket, Key=key)
            return resp["Body"].read()
        except ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                raise ObjectNotFoundError(bucket=bucket, key=key) from e
            raise StorageBackendError(
                message=f"GET failed: {_error_code(e) or e}",
                bucket=bucket,
                key=key,
                cause=e,
            ) from e
        except BotoCoreError as e:
            raise StorageBackendError(
                message=f"GET failed: {e}", bucket=bucket, key=key, cause=e
            ) from e

    @traced_storage_operation("delete")
    def delete_object(self, bucket: str, key: str) -> None:
        """DELETE the object; S3 already treats missing keys as success."""
        try:
            self.client.delete_object(Bucket=bucket, Key=key)
        except ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                return
            raise StorageBackendError(
                message=f"DELETE failed: {_error_code(e) or e}",
                bucket=bucket,
                key=key,
                cause=e,
            ) from e
        except BotoCoreError as e:
            raise StorageBackendError(
                message=f"DELETE failed: {e}", bucket=bucket, key=key, cause=e
            ) from e

    def signed_url(
        self,
        bucket: str,
        key: str,
        operation: SignedUrlOperation,
        ttl_seconds: int,
        *,
        sha256: str | None = None,
    ) -> str:
        """Presign a GET or PUT for the object.

        A PUT signed with sha256 carries ChecksumSHA256, so the uploader must
        send that checksum header and the store rejects other content.
        """
        params: dict[str, Any] = {"Bucket": bucket, "Key": key}
        if operation == SignedUrlOperation.PUT:
            client_method = "put_object"
            if sha256 is not None:
                params["ChecksumSHA256"] = base64.b64encode(bytes.fromhex(sha256)).decode("ascii")
        else:
            client_method = "get_object"
        try:
            url: str = self.client.generate_presigned_url(
                ClientMethod=client_method,
                Params=params,
                ExpiresIn=max(1, int(ttl_seconds)),
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageBackendError(
                message=f"Signing failed: {e}", bucket=bucket, key=key, cause=e
            ) from e
        return url
