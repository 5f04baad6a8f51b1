"""SQLAlchemy-backed metadata index.

Scan order is the autoincrement seq column, which the (bucket, seq) index
serves directly. SQLite tables use AUTOINCREMENT so a seq is never reused
after deletion.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import and_, delete, insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from metasync.config import DEFAULT_MAX_PAGE_SIZE
from metasync.db import begin, object_metadata_table
from metasync.errors import TransientStoreError
from metasync.metadata.models import MetadataRecord
from metasync.metadata.store import MetadataStore

if TYPE_CHECKING:
    from sqlalchemy import Connection, Engine

logger = logging.getLogger(__name__)

_t = object_metadata_table


def _to_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.isoformat()


def _from_iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _row_to_record(row: Any) -> MetadataRecord:
    return MetadataRecord(
        bucket=row.bucket,
        key=row.key,
        content_type=row.content_type,
        size=row.size,
        sha256=row.sha256,
        last_modified=_from_iso(row.last_modified),
        created_at=_from_iso(row.created_at),
    )


class SqlMetadataStore(MetadataStore):
    """MetadataStore over an SQLAlchemy engine."""

    def __init__(
        self,
        engine: Engine,
        *,
        max_page_size: int = DEFAULT_MAX_PAGE_SIZE,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            engine: Engine whose database has the object_metadata table
                (see metasync.db.create_db_engine).
            max_page_size: Per-page read budget.
            clock: Source of created_at timestamps (default: UTC now).
        """
        super().__init__(max_page_size=max_page_size)
        self._engine = engine
        self._clock = clock or (lambda: datetime.now(UTC))

    def _select_one(self, conn: Connection, bucket: str, key: str) -> Any:
        return conn.execute(
            select(_t).where(and_(_t.c.bucket == bucket, _t.c.key == key))
        ).first()

    def upsert(self, record: MetadataRecord) -> MetadataRecord:
        """Insert or replace the record, keeping seq and created_at on replace."""
        values = {
            "content_type": record.content_type,
            "size": record.size,
            "sha256": record.sha256,
            "last_modified": _to_iso(record.last_modified),
        }
        try:
            try:
                with begin(self._engine) as conn:
                    stored = self._upsert_in(conn, record, values)
            except IntegrityError:
                # A concurrent insert won the unique key; replace its row instead.
                logger.debug("Upsert raced on bucket=%s key=%s; retrying as update", record.bucket, record.key)
                with begin(self._engine) as conn:
                    stored = self._upsert_in(conn, record, values)
        except SQLAlchemyError as e:
            raise TransientStoreError(
                f"Metadata upsert failed: {e}", bucket=record.bucket, key=record.key, cause=e
            ) from e
        return stored

    def _upsert_in(
        self, conn: Connection, record: MetadataRecord, values: dict[str, Any]
    ) -> MetadataRecord:
        existing = self._select_one(conn, record.bucket, record.key)
        if existing is None:
            conn.execute(
                insert(_t).values(
                    bucket=record.bucket,
                    key=record.key,
                    created_at=_to_iso(self._clock()),
                    **values,
                )
            )
        else:
            conn.execute(update(_t).where(_t.c.seq == existing.seq).values(**values))
        return _row_to_record(self._select_one(conn, record.bucket, record.key))

    def get_by_bucket_key(self, bucket: str, key: str) -> MetadataRecord | None:
        """Return the record or None."""
        try:
            with self._engine.connect() as conn:
                row = self._select_one(conn, bucket, key)
        except SQLAlchemyError as e:
            raise TransientStoreError(
                f"Metadata read failed: {e}", bucket=bucket, key=key, cause=e
            ) from e
        return _row_to_record(row) if row is not None else None

    def delete_by_bucket_key(self, bucket: str, key: str) -> bool:
        """Delete the record if present."""
        try:
            with begin(self._engine) as conn:
                result = conn.execute(
                    delete(_t).where(and_(_t.c.bucket == bucket, _t.c.key == key))
                )
        except SQLAlchemyError as e:
            raise TransientStoreError(
                f"Metadata delete failed: {e}", bucket=bucket, key=key, cause=e
            ) from e
        return bool(result.rowcount)

    def _fetch_after(
        self, bucket: str, after_seq: int, count: int
    ) -> list[tuple[int, MetadataRecord]]:
        try:
            with self._engine.connect() as conn:
                rows = conn.execute(
                    select(_t)
                    .where(and_(_t.c.bucket == bucket, _t.c.seq > after_seq))
                    .order_by(_t.c.seq)
                    .limit(count)
                ).all()
        except SQLAlchemyError as e:
            raise TransientStoreError(
                f"Metadata scan failed: {e}", bucket=bucket, cause=e
            ) from e
        return [(row.seq, _row_to_record(row)) for row in rows]
