"""Configuration loading for metasync.

Object store credentials come from explicit options first, then the
environment. Validation is eager: every missing field is reported at once.

Environment Variables:
    R2_BUCKET, R2_ENDPOINT, R2_ACCESS_KEY_ID, R2_SECRET_ACCESS_KEY:
        Object store connection fields.
    METASYNC_DATABASE_URL: SQLAlchemy URL of the metadata/job database
        (default: sqlite:///./var/metasync/metasync.sqlite3)
    METASYNC_OBJECT_STORE_BACKEND: "s3" or "filesystem" (default: "s3")
    METASYNC_OBJECT_STORE_BASE_DIR: Base directory for the filesystem backend
    METASYNC_SIGNED_URL_TTL_SECONDS: Signed URL lifetime (default: 900)
    METASYNC_MAX_PAGE_SIZE: Per-page read budget (default: 1024)
    METASYNC_RETRY_BASE, METASYNC_RETRY_INITIAL_DELAY_SECONDS,
    METASYNC_RETRY_MAX_DELAY_SECONDS, METASYNC_RETRY_MAX_FAILURES:
        Backoff policy for physical deletion jobs.
    METASYNC_WORKER_POLL_SECONDS: Retry worker poll interval (default: 5)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any

from metasync.errors import ConfigurationError

R2_BUCKET_ENV = "R2_BUCKET"
R2_ENDPOINT_ENV = "R2_ENDPOINT"
R2_ACCESS_KEY_ID_ENV = "R2_ACCESS_KEY_ID"
R2_SECRET_ACCESS_KEY_ENV = "R2_SECRET_ACCESS_KEY"

METASYNC_DATABASE_URL_ENV = "METASYNC_DATABASE_URL"
METASYNC_OBJECT_STORE_BACKEND_ENV = "METASYNC_OBJECT_STORE_BACKEND"
METASYNC_OBJECT_STORE_BASE_DIR_ENV = "METASYNC_OBJECT_STORE_BASE_DIR"
METASYNC_SIGNED_URL_TTL_ENV = "METASYNC_SIGNED_URL_TTL_SECONDS"
METASYNC_MAX_PAGE_SIZE_ENV = "METASYNC_MAX_PAGE_SIZE"
METASYNC_RETRY_BASE_ENV = "METASYNC_RETRY_BASE"
METASYNC_RETRY_INITIAL_DELAY_ENV = "METASYNC_RETRY_INITIAL_DELAY_SECONDS"
METASYNC_RETRY_MAX_DELAY_ENV = "METASYNC_RETRY_MAX_DELAY_SECONDS"
METASYNC_RETRY_MAX_FAILURES_ENV = "METASYNC_RETRY_MAX_FAILURES"
METASYNC_WORKER_POLL_ENV = "METASYNC_WORKER_POLL_SECONDS"

DEFAULT_DATABASE_URL = "sqlite:///./var/metasync/metasync.sqlite3"
DEFAULT_SIGNED_URL_TTL_SECONDS = 900
DEFAULT_MAX_PAGE_SIZE = 1024
DEFAULT_WORKER_POLL_SECONDS = 5.0

_STORE_FIELDS: tuple[tuple[str, str], ...] = (
    ("bucket", R2_BUCKET_ENV),
    ("endpoint", R2_ENDPOINT_ENV),
    ("access_key_id", R2_ACCESS_KEY_ID_ENV),
    ("secret_access_key", R2_SECRET_ACCESS_KEY_ENV),
)


@dataclass(frozen=True)
class StoreConfig:
    """Flat object store connection record.

    Attributes:
        bucket: Default bucket for uploads, syncs and deletes.
        endpoint: S3-compatible endpoint URL.
        access_key_id: Access key id.
        secret_access_key: Secret access key (never logged).
    """

    bucket: str
    endpoint: str
    access_key_id: str
    secret_access_key: str = field(repr=False)

    @classmethod
    def resolve(cls, **options: str | None) -> StoreConfig:
        """Build a config from explicit options, falling back to the environment.

        Args:
            **options: Any of bucket, endpoint, access_key_id, secret_access_key.

        Returns:
            Validated StoreConfig.

        Raises:
            ConfigurationError: Listing every field that resolved empty.
        """
        unknown = set(options) - {name for name, _ in _STORE_FIELDS}
        if unknown:
            raise ConfigurationError(f"Unknown configuration options: {', '.join(sorted(unknown))}")

        values: dict[str, str] = {}
        missing: list[str] = []
        for name, env_var in _STORE_FIELDS:
            value = options.get(name) or os.environ.get(env_var, "")
            value = value.strip()
            if not value:
                missing.append(name)
            values[name] = value

        if missing:
            raise ConfigurationError(missing_fields=missing)

        return cls(**values)


def load_store_config(**options: str | None) -> StoreConfig:
    """Factory alias for StoreConfig.resolve."""
    return StoreConfig.resolve(**options)


def _env_number(name: str, default: float, cast: Any) -> Any:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return cast(default)
    try:
        return cast(raw)
    except ValueError as e:
        raise ConfigurationError(f"Invalid value for {name}: {raw!r}") from e


@dataclass(frozen=True)
class Settings:
    """Runtime settings outside the object store credentials."""

    database_url: str = DEFAULT_DATABASE_URL
    object_store_backend: str = "s3"
    object_store_base_dir: str | None = None
    signed_url_ttl_seconds: int = DEFAULT_SIGNED_URL_TTL_SECONDS
    max_page_size: int = DEFAULT_MAX_PAGE_SIZE
    retry_base: float = 2.0
    retry_initial_delay_seconds: float = 1.0
    retry_max_delay_seconds: float = 3600.0
    retry_max_failures: int = 8
    worker_poll_seconds: float = DEFAULT_WORKER_POLL_SECONDS


def load_settings() -> Settings:
    """Load Settings from the environment.

    Raises:
        ConfigurationError: If a numeric variable is malformed or the backend
            name is unknown.
    """
    backend = os.environ.get(METASYNC_OBJECT_STORE_BACKEND_ENV, "s3").strip().lower() or "s3"
    if backend not in ("s3", "filesystem"):
        raise ConfigurationError(f"Unknown object store backend: {backend}")

    return Settings(
        database_url=os.environ.get(METASYNC_DATABASE_URL_ENV, "").strip() or DEFAULT_DATABASE_URL,
        object_store_backend=backend,
        object_store_base_dir=os.environ.get(METASYNC_OBJECT_STORE_BASE_DIR_ENV) or None,
        signed_url_ttl_seconds=max(
            1, _env_number(METASYNC_SIGNED_URL_TTL_ENV, DEFAULT_SIGNED_URL_TTL_SECONDS, int)
        ),
        max_page_size=max(1, _env_number(METASYNC_MAX_PAGE_SIZE_ENV, DEFAULT_MAX_PAGE_SIZE, int)),
        retry_base=_env_number(METASYNC_RETRY_BASE_ENV, 2.0, float),
        retry_initial_delay_seconds=_env_number(METASYNC_RETRY_INITIAL_DELAY_ENV, 1.0, float),
        retry_max_delay_seconds=_env_number(METASYNC_RETRY_MAX_DELAY_ENV, 3600.0, float),
        retry_max_failures=max(1, _env_number(METASYNC_RETRY_MAX_FAILURES_ENV, 8, int)),
        worker_poll_seconds=_env_number(
            METASYNC_WORKER_POLL_ENV, DEFAULT_WORKER_POLL_SECONDS, float
        ),
    )
