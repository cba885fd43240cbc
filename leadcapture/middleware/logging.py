# leadcapture/middleware/logging.py
from __future__ import annotations

import time
from typing import Dict, Mapping

from fastapi import Request
from fastapi.responses import Response
from starlette.middleware.base import BaseHTTPMiddleware

from leadcapture.core.logging import get_structlog_logger

logger = get_structlog_logger(__name__)

QUIET_PATHS = frozenset({"/health", "/metrics"})

SENSITIVE_HEADERS = (
    "authorization",
    "cookie",
    "set-cookie",
    "x-api-key",
    "x-secret",
    "password",
    "token",
    "secret",
)


def filter_headers(headers: Mapping[str, str]) -> Dict[str, str]:
    """Redact sensitive headers before they reach the logs."""
    filtered = {}
    for key, value in headers.items():
        key_lower = key.lower()
        if any(sensitive in key_lower for sensitive in SENSITIVE_HEADERS):
            filtered[key] = "[REDACTED]"
        else:
            filtered[key] = value
    return filtered


class LoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for request/response logging."""

    async def dispatch(self, request: Request, call_next):
        start_time = time.perf_counter()
        quiet = request.url.path.endswith(tuple(QUIET_PATHS))

        if not quiet:
            logger.info(
                "request.received",
                method=request.method,
                path=request.url.path,
                client_ip=request.client.host if request.client else "unknown",
                user_agent=request.headers.get("user-agent", "unknown"),
                content_length=request.headers.get("content-length", "0"),
                headers=filter_headers(request.headers),
            )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "request.exception",
                method=request.method,
                path=request.url.path,
                response_time_ms=(time.perf_counter() - start_time) * 1000,
                exception_type=type(e).__name__,
                exception_message=str(e),
            )
            raise

        response_time = time.perf_counter() - start_time
        response.headers["X-Response-Time"] = f"{response_time:.3f}"

        if not quiet:
            self._log_response(request, response, response_time)
        return response

    def _log_response(self, request: Request, response: Response, response_time: float) -> None:
        status_code = response.status_code
        log_data = {
            "method": request.method,
            "path": request.url.path,
            "status_code": status_code,
            "response_time_ms": response_time * 1000,
        }
        if 400 <= status_code < 500:
            log_data["error_type"] = "client_error"
            logger.warning("response.sent", **log_data)
        elif status_code >= 500:
            log_data["error_type"] = "server_error"
            logger.warning("response.sent", **log_data)
        else:
            logger.info("response.sent", **log_data)
