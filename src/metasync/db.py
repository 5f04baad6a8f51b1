"""Database connectivity and schema for the metadata index and retry jobs.

Both tables live in one SQLAlchemy database so a single URL configures the
whole service. SQLite is the default; any SQLAlchemy URL (e.g. Postgres)
works.

Environment Variables:
    METASYNC_DATABASE_URL: SQLAlchemy URL
        (default: sqlite:///./var/metasync/metasync.sqlite3)
"""

from __future__ import annotations

import logging
import os
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

from sqlalchemy import (
    BigInteger,
    Column,
    Float,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.engine import make_url
from sqlalchemy.pool import StaticPool

from metasync.config import DEFAULT_DATABASE_URL, METASYNC_DATABASE_URL_ENV

if TYPE_CHECKING:
    from sqlalchemy import Connection, Engine

logger = logging.getLogger(__name__)

metadata = MetaData()

object_metadata_table = Table(
    "object_metadata",
    metadata,
    Column("seq", Integer, primary_key=True, autoincrement=True),
    Column("bucket", String(255), nullable=False),
    Column("key", String(1024), nullable=False),
    Column("content_type", String(255), nullable=True),
    Column("size", BigInteger, nullable=True),
    Column("sha256", String(64), nullable=True),
    Column("last_modified", String(64), nullable=False),
    Column("created_at", String(64), nullable=False),
    UniqueConstraint("bucket", "key", name="uq_object_metadata_bucket_key"),
    Index("ix_object_metadata_bucket_seq", "bucket", "seq"),
    sqlite_autoincrement=True,
)

retry_jobs_table = Table(
    "retry_jobs",
    metadata,
    Column("job_id", String(64), primary_key=True),
    Column("action", String(255), nullable=False),
    Column("arguments", Text, nullable=False),
    Column("policy", Text, nullable=False),
    Column("status", String(32), nullable=False),
    Column("attempts", Integer, nullable=False, default=0),
    Column("next_attempt_at", Float, nullable=True),
    Column("last_error", Text, nullable=True),
    Column("on_complete", String(255), nullable=True),
    Column("result", Text, nullable=True),
    Column("created_at", String(64), nullable=False),
    Column("updated_at", String(64), nullable=False),
    Index("ix_retry_jobs_status_next", "status", "next_attempt_at"),
)


def get_database_url() -> str:
    """Return METASYNC_DATABASE_URL or the SQLite default."""
    return os.environ.get(METASYNC_DATABASE_URL_ENV, "").strip() or DEFAULT_DATABASE_URL


def create_db_engine(url: str | None = None, *, create_schema: bool = True) -> Engine:
    """Create an engine and, by default, the tables it needs.

    File-based SQLite URLs get their parent directory created. In-memory
    SQLite URLs share one connection so every session sees the same data.

    Args:
        url: SQLAlchemy URL. If None, uses get_database_url().
        create_schema: Create missing tables.

    Returns:
        SQLAlchemy Engine.
    """
    url = url or get_database_url()
    parsed = make_url(url)

    if parsed.get_backend_name() == "sqlite":
        database = parsed.database or ""
        if database and database != ":memory:":
            Path(database).parent.mkdir(parents=True, exist_ok=True)
            engine = create_engine(url, connect_args={"check_same_thread": False})
        else:
            engine = create_engine(
                url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
    else:
        engine = create_engine(url, pool_size=5, max_overflow=10, pool_pre_ping=True)

    if create_schema:
        metadata.create_all(engine)
        logger.info("Initialized metasync schema on %s", parsed.render_as_string(hide_password=True))

    return engine


@contextmanager
def begin(engine: Engine) -> Generator[Connection, None, None]:
    """Open a connection with a transaction; commit on success, roll back on error."""
    with engine.connect() as conn, conn.begin():
        yield conn
