"""In-memory metadata index for tests and single-process development."""

from __future__ import annotations

import dataclasses
import itertools
import threading
from collections.abc import Callable
from datetime import UTC, datetime

from metasync.config import DEFAULT_MAX_PAGE_SIZE
from metasync.metadata.models import MetadataRecord
from metasync.metadata.store import MetadataStore


class InMemoryMetadataStore(MetadataStore):
    """Dict-backed MetadataStore with a monotonically increasing sequence."""

    def __init__(
        self,
        *,
        max_page_size: int = DEFAULT_MAX_PAGE_SIZE,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        super().__init__(max_page_size=max_page_size)
        self._records: dict[tuple[str, str], tuple[int, MetadataRecord]] = {}
        self._seq = itertools.count(1)
        self._lock = threading.Lock()
        self._clock = clock or (lambda: datetime.now(UTC))

    def upsert(self, record: MetadataRecord) -> MetadataRecord:
        """Insert or replace, keeping the original seq and created_at."""
        ident = (record.bucket, record.key)
        with self._lock:
            existing = self._records.get(ident)
            if existing is None:
                seq = next(self._seq)
                created_at = self._clock()
            else:
                seq, previous = existing
                created_at = previous.created_at or self._clock()
            stored = dataclasses.replace(record, created_at=created_at, url=None)
            self._records[ident] = (seq, stored)
        return stored

    def get_by_bucket_key(self, bucket: str, key: str) -> MetadataRecord | None:
        """Return the record or None."""
        with self._lock:
            entry = self._records.get((bucket, key))
        return entry[1] if entry else None

    def delete_by_bucket_key(self, bucket: str, key: str) -> bool:
        """Delete the record if present."""
        with self._lock:
            return self._records.pop((bucket, key), None) is not None

    def _fetch_after(
        self, bucket: str, after_seq: int, count: int
    ) -> list[tuple[int, MetadataRecord]]:
        with self._lock:
            rows = [
                (seq, record)
                for (rec_bucket, _), (seq, record) in self._records.items()
                if rec_bucket == bucket and seq > after_seq
            ]
        rows.sort(key=lambda row: row[0])
        return rows[:count]

    def clear(self) -> None:
        """Remove every record. For testing only."""
        with self._lock:
            self._records.clear()
