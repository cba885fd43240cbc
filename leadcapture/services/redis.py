# leadcapture/services/redis.py
from __future__ import annotations

import asyncio
from typing import Any, Dict

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff

from leadcapture.core.config import Settings
from leadcapture.core.logging import get_structlog_logger

logger = get_structlog_logger(__name__)


def create_redis_client(settings: Settings) -> redis.Redis:
    """Build a pooled Redis client.

    Connections are opened lazily, so an unreachable Redis does not stop the
    service from starting; the rate limiter applies its failure policy instead.
    Retries stay short because every call sits on the submission path.
    """
    retry = Retry(
        backoff=ExponentialBackoff(cap=0.25, base=0.05),
        retries=settings.redis_retries,
    )

    pool = ConnectionPool.from_url(
        settings.redis_url,
        max_connections=settings.redis_max_connections,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_socket_connect_timeout,
        retry=retry,
        retry_on_error=[redis.ConnectionError, redis.TimeoutError],
        health_check_interval=30,
        decode_responses=True,
        encoding="utf-8",
    )

    logger.info(
        "redis.pool_created",
        url=settings.redis_url,
        max_connections=settings.redis_max_connections,
    )
    return redis.Redis(connection_pool=pool)


async def close_redis_client(client: redis.Redis) -> None:
    await client.aclose()
    logger.info("redis.connections_closed")


async def health_check(client: redis.Redis, timeout: float = 1.0) -> Dict[str, Any]:
    """Check Redis health within ``timeout`` seconds."""
    try:
        await asyncio.wait_for(client.ping(), timeout=timeout)
        return {"status": "healthy"}
    except Exception as e:
        logger.warning("redis.health_check_failed", error=str(e))
        return {"status": "unhealthy", "error": str(e) or type(e).__name__}
