"""
Middleware components for request processing.

This package contains middleware for:
- Request context (request ID, client IP bound into structlog context)
- CORS for the dashboard UI origin
"""

from app.middleware.cors import CORSMiddleware
from app.middleware.request_context import RequestContextMiddleware

__all__ = [
    "CORSMiddleware",
    "RequestContextMiddleware",
]
