"""Pytest configuration and fixtures for metasync tests.

This module provides common fixtures and configuration for all tests.
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import UTC, datetime

import pytest
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from metasync.client import ObjectClient
from metasync.config import (
    METASYNC_DATABASE_URL_ENV,
    METASYNC_OBJECT_STORE_BACKEND_ENV,
    METASYNC_OBJECT_STORE_BASE_DIR_ENV,
    R2_ACCESS_KEY_ID_ENV,
    R2_BUCKET_ENV,
    R2_ENDPOINT_ENV,
    R2_SECRET_ACCESS_KEY_ENV,
)
from metasync.metadata.memory_store import InMemoryMetadataStore
from metasync.permissions import PermissionGate
from metasync.retry.backoff import BackoffPolicy
from metasync.retry.executor import DurableRetryExecutor
from metasync.retry.job_store import InMemoryJobStore
from metasync.retry.registry import ActionRegistry
from metasync.storage.memory_store import InMemoryObjectStore
from metasync.storage.tracing import METASYNC_OTEL_ENABLED_ENV
from metasync.sync import SyncEngine

TEST_BUCKET = "media"

_SPAN_EXPORTER = InMemorySpanExporter()
_PROVIDER_INSTALLED = False


class FakeClock:
    """Manually advanced epoch-seconds clock."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove metasync configuration from the environment for every test."""
    for name in (
        R2_BUCKET_ENV,
        R2_ENDPOINT_ENV,
        R2_ACCESS_KEY_ID_ENV,
        R2_SECRET_ACCESS_KEY_ENV,
        METASYNC_DATABASE_URL_ENV,
        METASYNC_OBJECT_STORE_BACKEND_ENV,
        METASYNC_OBJECT_STORE_BASE_DIR_ENV,
        METASYNC_OTEL_ENABLED_ENV,
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def clock() -> FakeClock:
    """Deterministic clock for retry tests."""
    return FakeClock()


@pytest.fixture
def object_store() -> InMemoryObjectStore:
    """In-memory object store with checksum tracking."""
    return InMemoryObjectStore(clock=lambda: datetime(2024, 5, 1, 12, 0, tzinfo=UTC))


@pytest.fixture
def metadata_store() -> InMemoryMetadataStore:
    """In-memory metadata index."""
    return InMemoryMetadataStore(max_page_size=8)


@pytest.fixture
def registry() -> ActionRegistry:
    return ActionRegistry()


@pytest.fixture
def executor(registry: ActionRegistry, clock: FakeClock) -> DurableRetryExecutor:
    """Retry executor over an in-memory job store with a fast policy."""
    return DurableRetryExecutor(
        InMemoryJobStore(),
        registry,
        default_policy=BackoffPolicy(initial_delay_seconds=1.0, max_failures=3),
        clock=clock,
    )


@pytest.fixture
def engine(
    object_store: InMemoryObjectStore,
    metadata_store: InMemoryMetadataStore,
    executor: DurableRetryExecutor,
) -> SyncEngine:
    return SyncEngine(object_store, metadata_store, executor)


@pytest.fixture
def client(engine: SyncEngine) -> ObjectClient:
    """ObjectClient bound to TEST_BUCKET with an allow-all gate."""
    return ObjectClient(engine, bucket=TEST_BUCKET, gate=PermissionGate())


@pytest.fixture
def span_exporter(monkeypatch: pytest.MonkeyPatch) -> Iterator[InMemorySpanExporter]:
    """Enable storage tracing and capture finished spans in memory.

    The global tracer provider can only be set once per process, so it is
    installed on first use and shared.
    """
    global _PROVIDER_INSTALLED
    if not _PROVIDER_INSTALLED:
        provider = TracerProvider()
        provider.add_span_processor(SimpleSpanProcessor(_SPAN_EXPORTER))
        trace.set_tracer_provider(provider)
        _PROVIDER_INSTALLED = True

    monkeypatch.setenv(METASYNC_OTEL_ENABLED_ENV, "1")
    _SPAN_EXPORTER.clear()
    yield _SPAN_EXPORTER
    _SPAN_EXPORTER.clear()

