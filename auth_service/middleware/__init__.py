"""Middleware modules"""

from auth_service.middleware.logging import StructuredLoggingMiddleware

__all__ = ["StructuredLoggingMiddleware"]
