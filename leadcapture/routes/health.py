# leadcapture/routes/health.py
from __future__ import annotations

import asyncio
from typing import Dict

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from leadcapture.core.logging import get_structlog_logger
from leadcapture.schemas.lead import HealthResponse
from leadcapture.services.redis import health_check as redis_health_check
from leadcapture.utils.timestamps import format_timestamp, utc_now

logger = get_structlog_logger(__name__)

router = APIRouter(tags=["health"])


async def check_store(request: Request) -> str:
    try:
        await request.app.state.lead_store.ping()
        return "healthy"
    except Exception as e:
        logger.error("health.store_unreachable", error=str(e))
        return "unhealthy"


async def check_redis(request: Request) -> str:
    result = await redis_health_check(
        request.app.state.redis,
        timeout=request.app.state.rate_limiter.timeout_seconds,
    )
    return result["status"]


@router.get("/health", response_model=HealthResponse, responses={503: {"model": HealthResponse}})
async def health_check(request: Request):
    """Store reachability check.

    Redis is reported but does not affect the overall status, since the rate
    limiter fails open without it.
    """
    store_status, redis_status = await asyncio.gather(check_store(request), check_redis(request))
    checks: Dict[str, str] = {"database": store_status, "redis": redis_status}

    response = HealthResponse(
        status=store_status,
        timestamp=format_timestamp(utc_now()),
        checks=checks,
    )
    if store_status != "healthy":
        logger.warning("health.check", status=store_status, checks=checks)
        return JSONResponse(status_code=503, content=response.model_dump())
    return response
