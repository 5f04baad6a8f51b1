"""Metadata index data models."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

from metasync.storage.models import ObjectHead


class PageStatus(StrEnum):
    """Signals that a scanned range is too large to read in one page."""

    SPLIT_RECOMMENDED = "SplitRecommended"
    SPLIT_REQUIRED = "SplitRequired"


@dataclass(frozen=True)
class MetadataRecord:
    """Mirror of an object's attributes in the metadata index.

    A record for (bucket, key) exists iff the sync protocol completed for
    that key. Records are only ever replaced wholesale by a re-sync.

    Attributes:
        bucket: Bucket holding the object.
        key: Object key, unique per bucket.
        content_type: MIME type, if known.
        size: Content length in bytes, if known.
        sha256: Hex SHA-256 of the content, if the store reported one.
        last_modified: Store-reported modification time.
        created_at: Store-assigned time the record was first written.
        url: Derived signed download URL; only populated on read paths.
    """

    bucket: str
    key: str
    content_type: str | None
    size: int | None
    sha256: str | None
    last_modified: datetime
    created_at: datetime | None = None
    url: str | None = field(default=None, compare=False)

    @classmethod
    def from_head(cls, head: ObjectHead) -> MetadataRecord:
        """Build an unsaved record from an object-store HEAD result."""
        return cls(
            bucket=head.bucket,
            key=head.key,
            content_type=head.content_type,
            size=head.size,
            sha256=head.sha256,
            last_modified=head.last_modified,
        )

    def with_url(self, url: str) -> MetadataRecord:
        """Return a copy carrying a derived signed URL."""
        return dataclasses.replace(self, url=url)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "bucket": self.bucket,
            "key": self.key,
            "content_type": self.content_type,
            "size": self.size,
            "sha256": self.sha256,
            "last_modified": self.last_modified.isoformat(),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "url": self.url,
        }


@dataclass(frozen=True)
class Page:
    """One page of a bucket-scoped scan.

    Attributes:
        page: Records in scan order.
        is_done: True when no records exist past this page.
        continue_cursor: Resume position; pass it back to read the next page.
        split_cursor: Midpoint of this page's range when page_status is set.
        page_status: Split signal when the range is too large for one page.
    """

    page: list[MetadataRecord]
    is_done: bool
    continue_cursor: str
    split_cursor: str | None = None
    page_status: PageStatus | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "page": [record.to_dict() for record in self.page],
            "is_done": self.is_done,
            "continue_cursor": self.continue_cursor,
            "split_cursor": self.split_cursor,
            "page_status": self.page_status.value if self.page_status else None,
        }
