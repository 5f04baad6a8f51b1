"""OpenTelemetry tracing for object store operations.

Spans carry only safe attributes: the bucket, a SHA-256 of the key, the
backend name and result sizes. Raw keys, signed URLs, filesystem paths and
credentials are never exported.

Environment Variables:
    METASYNC_OTEL_ENABLED: Set to "1" to emit spans (default: disabled)
"""

from __future__ import annotations

import functools
import hashlib
import logging
import os
from collections.abc import Callable
from typing import Any, TypeVar, cast

from opentelemetry import trace

from metasync.storage.models import ObjectHead

logger = logging.getLogger(__name__)

METASYNC_OTEL_ENABLED_ENV = "METASYNC_OTEL_ENABLED"

F = TypeVar("F", bound=Callable[..., Any])


def _get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean from environment variable."""
    val = os.environ.get(key, "").strip().lower()
    if val in ("1", "true", "yes"):
        return True
    if val in ("0", "false", "no", ""):
        return default
    return default


def is_otel_enabled() -> bool:
    """Check if OpenTelemetry tracing is enabled."""
    return _get_env_bool(METASYNC_OTEL_ENABLED_ENV, False)


def hash_key(key: str) -> str:
    """Return the SHA-256 hex digest of an object key for span correlation."""
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


def traced_storage_operation(operation: str) -> Callable[[F], F]:
    """Decorator to trace an ObjectStore method taking (bucket, key, ...).

    Args:
        operation: Operation name (e.g., "head", "put", "delete").

    Returns:
        Decorated function that emits a span when tracing is enabled.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(self: Any, bucket: str, key: str, *args: Any, **kwargs: Any) -> Any:
            if not is_otel_enabled():
                return func(self, bucket, key, *args, **kwargs)

            tracer = trace.get_tracer("metasync.object_store")
            with tracer.start_as_current_span(f"metasync.object_store.{operation}") as span:
                span.set_attribute("metasync.bucket", bucket)
                span.set_attribute("metasync.object_key_sha256", hash_key(key))
                span.set_attribute("storage.backend", getattr(self, "backend_name", "unknown"))

                try:
                    result = func(self, bucket, key, *args, **kwargs)
                except Exception as e:
                    span.set_attribute("error", True)
                    span.set_attribute("error.type", type(e).__name__)
                    raise

                if isinstance(result, ObjectHead):
                    _add_head_attributes(span, result)
                return result

        return cast(F, wrapper)

    return decorator


def _add_head_attributes(span: Any, head: ObjectHead) -> None:
    """Add result attributes from an ObjectHead (never the signed URL or key)."""
    if head.size is not None:
        span.set_attribute("metasync.object_size_bytes", head.size)
    if head.sha256:
        span.set_attribute("metasync.object_sha256", head.sha256)
    if head.content_type:
        span.set_attribute("metasync.object_content_type", head.content_type)
