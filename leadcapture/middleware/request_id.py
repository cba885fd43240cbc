# leadcapture/middleware/request_id.py
from __future__ import annotations

import uuid
from typing import Mapping

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from leadcapture.core.logging import set_request_id

REQUEST_ID_HEADER = "X-Request-ID"


def resolve_request_id(headers: Mapping[str, str]) -> str:
    """Reuse a caller-supplied correlation id, or mint a new one.

    Checked in order: ``X-Request-ID``, ``X-Correlation-ID``, then the trace id
    of a W3C ``traceparent`` header (``00-<32 hex>-...``).
    """
    for header in (REQUEST_ID_HEADER, "X-Correlation-ID"):
        value = headers.get(header)
        if value:
            return value

    traceparent = headers.get("traceparent")
    if traceparent and traceparent.startswith("00-") and len(traceparent) >= 35:
        return traceparent[3:35]

    return str(uuid.uuid4())


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tags every request, its log lines and its response with one id."""

    async def dispatch(self, request: Request, call_next):
        request_id = resolve_request_id(request.headers)

        # Drop whatever the previous request on this task left bound
        set_request_id(None)
        set_request_id(request_id)
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
