"""API middleware package."""

from myousic.api.middleware.request_context import RequestContextMiddleware

__all__ = ["RequestContextMiddleware"]
