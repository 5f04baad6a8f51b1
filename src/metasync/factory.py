"""Wiring of metasync components from configuration.

build_runtime() assembles the object store, metadata index, retry executor,
sync engine and client from Settings and StoreConfig, so the API, CLI and
worker share one construction path.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from metasync.client import ObjectClient
from metasync.config import (
    R2_BUCKET_ENV,
    Settings,
    StoreConfig,
    load_settings,
)
from metasync.db import create_db_engine
from metasync.errors import ConfigurationError
from metasync.metadata.sql_store import SqlMetadataStore
from metasync.permissions import PermissionGate
from metasync.retry.backoff import BackoffPolicy
from metasync.retry.executor import DurableRetryExecutor
from metasync.retry.job_store import SqlJobStore
from metasync.retry.registry import ActionRegistry
from metasync.storage.object_store import ObjectStore
from metasync.sync import SyncEngine

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    """Fully wired metasync components."""

    settings: Settings
    client: ObjectClient
    executor: DurableRetryExecutor
    registry: ActionRegistry


def backoff_policy_from_settings(settings: Settings) -> BackoffPolicy:
    """Build the deletion backoff policy from settings."""
    return BackoffPolicy(
        base=settings.retry_base,
        initial_delay_seconds=settings.retry_initial_delay_seconds,
        max_delay_seconds=settings.retry_max_delay_seconds,
        max_failures=settings.retry_max_failures,
    )


def create_object_store(
    settings: Settings, store_config: StoreConfig | None = None
) -> tuple[ObjectStore, str]:
    """Create the configured object store backend.

    Returns:
        (object store, default bucket)

    Raises:
        ConfigurationError: If required configuration is missing.
    """
    if settings.object_store_backend == "filesystem":
        from metasync.storage.filesystem_store import FilesystemObjectStore

        bucket = store_config.bucket if store_config else os.environ.get(R2_BUCKET_ENV, "").strip()
        if not bucket:
            raise ConfigurationError(missing_fields=["bucket"])
        return FilesystemObjectStore(settings.object_store_base_dir), bucket

    from metasync.storage.s3_store import S3ObjectStore

    config = store_config or StoreConfig.resolve()
    return S3ObjectStore(config), config.bucket


def build_runtime(
    settings: Settings | None = None,
    store_config: StoreConfig | None = None,
    *,
    gate: PermissionGate | None = None,
) -> Runtime:
    """Build every component from settings (default: load_settings()).

    Raises:
        ConfigurationError: If required configuration is missing or malformed.
    """
    settings = settings or load_settings()
    object_store, bucket = create_object_store(settings, store_config)

    db_engine = create_db_engine(settings.database_url)
    metadata_store = SqlMetadataStore(db_engine, max_page_size=settings.max_page_size)

    registry = ActionRegistry()
    executor = DurableRetryExecutor(
        SqlJobStore(db_engine),
        registry,
        default_policy=backoff_policy_from_settings(settings),
    )
    engine = SyncEngine(object_store, metadata_store, executor, registry=registry)
    client = ObjectClient(
        engine,
        bucket=bucket,
        gate=gate,
        signed_url_ttl_seconds=settings.signed_url_ttl_seconds,
    )
    logger.info(
        "metasync runtime ready: backend=%s bucket=%s", object_store.backend_name, bucket
    )
    return Runtime(settings=settings, client=client, executor=executor, registry=registry)
