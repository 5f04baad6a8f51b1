"""metasync FastAPI application factory."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException

from metasync import __version__
from metasync.api.errors import (
    generic_exception_handler,
    http_exception_handler,
    metasync_error_handler,
    request_validation_error_handler,
)
from metasync.api.middleware.request_id import RequestIdMiddleware
from metasync.api.routes.health import router as health_router
from metasync.api.routes.jobs import router as jobs_router
from metasync.api.routes.objects import router as objects_router
from metasync.client import ObjectClient
from metasync.errors import MetasyncError
from metasync.retry.worker import RetryWorker
from metasync.storage.errors import ObjectStorageError


def create_app(
    client: ObjectClient | None = None,
    *,
    worker: RetryWorker | None = None,
) -> FastAPI:
    """Create and configure the metasync FastAPI application.

    Args:
        client: Client to serve. If None, one is built from the environment
            with metasync.factory.build_runtime().
        worker: Retry worker started and stopped with the app. When client is
            None, a worker over the built executor is used.

    Returns:
        Configured FastAPI application instance.
    """
    if client is None:
        from metasync.factory import build_runtime

        runtime = build_runtime()
        client = runtime.client
        worker = worker or RetryWorker(
            runtime.executor, poll_interval=runtime.settings.worker_poll_seconds
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if worker is not None:
            await worker.start()
        try:
            yield
        finally:
            if worker is not None:
                await worker.stop()

    app = FastAPI(
        title="metasync",
        description="Object metadata index kept in sync with an object store",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.client = client
    app.state.worker = worker

    app.add_middleware(RequestIdMiddleware)

    app.add_exception_handler(MetasyncError, metasync_error_handler)
    app.add_exception_handler(ObjectStorageError, metasync_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.include_router(health_router)
    app.include_router(objects_router)
    app.include_router(jobs_router)

    return app

