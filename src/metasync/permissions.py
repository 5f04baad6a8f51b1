"""Permission gate for client operations.

Check hooks authorize an operation; effect hooks run after authorization and
before (on_upload, on_delete) or after (on_sync_metadata) the operation's
own side effects. Any hook may raise (normally PermissionDenied) to abort the
operation; the exception reaches the caller unchanged.

The default gate allows everything.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from metasync.metadata.models import MetadataRecord

_HOOK_NAMES = frozenset(
    {
        "check_upload",
        "check_read_key",
        "check_read_bucket",
        "check_delete",
        "on_upload",
        "on_sync_metadata",
        "on_delete",
    }
)


class PermissionGate:
    """Allow-all gate; subclass and override the hooks you need."""

    def check_upload(self, bucket: str) -> None:
        """Authorize generating an upload URL, syncing or storing into bucket."""

    def check_read_key(self, bucket: str, key: str) -> None:
        """Authorize reading one object's metadata or URL."""

    def check_read_bucket(self, bucket: str) -> None:
        """Authorize listing a bucket."""

    def check_delete(self, bucket: str, key: str) -> None:
        """Authorize deleting an object."""

    def on_upload(self, bucket: str, key: str) -> None:
        """Run before metadata for an upload is synced."""

    def on_sync_metadata(self, record: MetadataRecord) -> None:
        """Run after a metadata record has been written."""

    def on_delete(self, bucket: str, key: str) -> None:
        """Run before metadata removal and deletion scheduling."""


class CallbackPermissionGate(PermissionGate):
    """Gate built from plain callables.

    Example:
        >>> def only_photos(bucket, key):
        ...     if not key.startswith("photos/"):
        ...         raise PermissionDenied(bucket=bucket, key=key)
        >>> gate = CallbackPermissionGate(check_delete=only_photos)
    """

    def __init__(self, **hooks: Callable[..., Any] | None) -> None:
        unknown = set(hooks) - _HOOK_NAMES
        if unknown:
            raise TypeError(f"Unknown permission hooks: {', '.join(sorted(unknown))}")
        self._hooks = {name: hook for name, hook in hooks.items() if hook is not None}

    def _call(self, name: str, *args: Any) -> None:
        hook = self._hooks.get(name)
        if hook is not None:
            hook(*args)

    def check_upload(self, bucket: str) -> None:
        self._call("check_upload", bucket)

    def check_read_key(self, bucket: str, key: str) -> None:
        self._call("check_read_key", bucket, key)

    def check_read_bucket(self, bucket: str) -> None:
        self._call("check_read_bucket", bucket)

    def check_delete(self, bucket: str, key: str) -> None:
        self._call("check_delete", bucket, key)

    def on_upload(self, bucket: str, key: str) -> None:
        self._call("on_upload", bucket, key)

    def on_sync_metadata(self, record: MetadataRecord) -> None:
        self._call("on_sync_metadata", record)

    def on_delete(self, bucket: str, key: str) -> None:
        self._call("on_delete", bucket, key)
