"""metasync metadata index.

Backends:
- SqlMetadataStore: SQLAlchemy (SQLite, Postgres)
- InMemoryMetadataStore: Process-local (tests)
"""

from metasync.metadata.cursor import decode_cursor, encode_cursor
from metasync.metadata.models import MetadataRecord, Page, PageStatus
from metasync.metadata.store import DEFAULT_PAGE_LIMIT, MetadataStore

__all__ = [
    "DEFAULT_PAGE_LIMIT",
    "MetadataRecord",
    "MetadataStore",
    "Page",
    "PageStatus",
    "decode_cursor",
    "encode_cursor",
]
