"""
Middleware components for request processing.
"""

from parcelhub.middleware.request_context import RequestContextMiddleware

__all__ = ["RequestContextMiddleware"]
