"""metasync object storage abstraction.

The object store is the source of truth for object bytes and attributes;
metasync mirrors those attributes into the metadata index.

Backends:
- S3ObjectStore: S3-compatible (AWS S3, R2, MinIO) via boto3
- FilesystemObjectStore: Local filesystem (dev)
- InMemoryObjectStore: Process-local (tests)
"""

from metasync.storage.errors import (
    ObjectNotFoundError,
    ObjectStorageError,
    PathTraversalError,
    StorageBackendError,
)
from metasync.storage.models import ObjectHead, SignedUrlOperation
from metasync.storage.object_store import ObjectStore

__all__ = [
    "ObjectHead",
    "ObjectNotFoundError",
    "ObjectStorageError",
    "ObjectStore",
    "PathTraversalError",
    "SignedUrlOperation",
    "StorageBackendError",
]
