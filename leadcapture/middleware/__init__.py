# leadcapture/middleware/__init__.py
"""
Starlette middleware for request ids and request/response logging.
"""

from leadcapture.middleware.logging import LoggingMiddleware
from leadcapture.middleware.request_id import RequestIdMiddleware

__all__ = ["LoggingMiddleware", "RequestIdMiddleware"]
