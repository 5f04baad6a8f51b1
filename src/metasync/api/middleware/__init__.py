"""metasync API middleware package."""

from metasync.api.middleware.request_id import RequestIdMiddleware

__all__ = ["RequestIdMiddleware"]
