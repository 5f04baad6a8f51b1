"""Metadata index interface and shared pagination logic."""

from __future__ import annotations

from abc import ABC, abstractmethod

from metasync.config import DEFAULT_MAX_PAGE_SIZE
from metasync.metadata.cursor import decode_cursor, encode_cursor
from metasync.metadata.models import MetadataRecord, Page, PageStatus

DEFAULT_PAGE_LIMIT = 100


class MetadataStore(ABC):
    """Keyed, indexed table of MetadataRecords.

    Unique on (bucket, key); scannable per bucket in insertion order with
    resumable cursors. Subclasses implement storage primitives; scan() is
    shared so every backend signals page splits the same way.
    """

    def __init__(self, *, max_page_size: int = DEFAULT_MAX_PAGE_SIZE) -> None:
        """Initialize the store.

        Args:
            max_page_size: Most records a single scan page may read. Larger
                requests are cut and flagged SPLIT_REQUIRED.
        """
        self.max_page_size = max(1, int(max_page_size))

    @abstractmethod
    def upsert(self, record: MetadataRecord) -> MetadataRecord:
        """Insert or fully replace the record for (record.bucket, record.key).

        A replaced record keeps its created_at and scan position.

        Returns:
            The stored record, with created_at assigned.
        """
        ...

    @abstractmethod
    def get_by_bucket_key(self, bucket: str, key: str) -> MetadataRecord | None:
        """Return the record for (bucket, key), or None if absent."""
        ...

    @abstractmethod
    def delete_by_bucket_key(self, bucket: str, key: str) -> bool:
        """Delete the record for (bucket, key).

        Returns:
            True if a record was deleted, False if none existed.
        """
        ...

    @abstractmethod
    def _fetch_after(
        self, bucket: str, after_seq: int, count: int
    ) -> list[tuple[int, MetadataRecord]]:
        """Return up to count (seq, record) pairs with seq > after_seq, ascending."""
        ...

    def scan(self, bucket: str, cursor: str | None = None, limit: int | None = None) -> Page:
        """Read one page of the bucket in insertion order.

        Args:
            bucket: Bucket to scan.
            cursor: continue_cursor (or split_cursor) from a previous page.
            limit: Requested page size (default DEFAULT_PAGE_LIMIT, min 1).

        Returns:
            Page of records with cursor state.

        Raises:
            InvalidCursorError: If the cursor is malformed or for another bucket.
        """
        after_seq = decode_cursor(cursor, bucket)
        requested = DEFAULT_PAGE_LIMIT if limit is None else max(1, int(limit))
        effective = min(requested, self.max_page_size)

        rows = self._fetch_after(bucket, after_seq, effective + 1)
        page_rows = rows[:effective]
        has_more = len(rows) > effective

        last_seq = page_rows[-1][0] if page_rows else after_seq

        page_status: PageStatus | None = None
        if requested > self.max_page_size and has_more:
            page_status = PageStatus.SPLIT_REQUIRED
        elif len(page_rows) > self.max_page_size // 2:
            page_status = PageStatus.SPLIT_RECOMMENDED

        split_cursor: str | None = None
        if page_status is not None and len(page_rows) >= 2:
            split_cursor = encode_cursor(bucket, page_rows[len(page_rows) // 2 - 1][0])

        return Page(
            page=[record for _, record in page_rows],
            is_done=not has_more,
            continue_cursor=encode_cursor(bucket, last_seq),
            split_cursor=split_cursor,
            page_status=page_status,
        )
