# leadcapture/services/rate_limiter.py
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from redis.asyncio import Redis

from leadcapture.core.logging import get_structlog_logger

logger = get_structlog_logger(__name__)

WINDOW_SECONDS = 3600
# Counters live for two windows after their window opens
COUNTER_LIFETIME_WINDOWS = 2
DEFAULT_TIMEOUT_SECONDS = 0.5


class RateLimitFailurePolicy(Enum):
    """What ``check`` answers when the counter store cannot be reached."""
    ALLOW = "allow"
    DENY = "deny"


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    current_count: int
    max_per_hour: int
    reset_minutes: int


@dataclass(frozen=True)
class RateLimitCounter:
    key: str
    count: int
    expires_at: int


class RateLimiter:
    """Fixed one-hour window request counter backed by Redis.

    Every Redis round trip is bounded by ``timeout_seconds``; a slow or
    unreachable Redis is handled like any other counter store error.
    """

    def __init__(
        self,
        redis_client: Redis,
        on_store_error: RateLimitFailurePolicy = RateLimitFailurePolicy.ALLOW,
        clock: Callable[[], float] = time.time,
        prefix: str = "ratelimit",
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self.redis = redis_client
        self.on_store_error = on_store_error
        self.clock = clock
        self.prefix = prefix
        self.timeout_seconds = timeout_seconds

    def _window(self, now: float) -> int:
        return int(now // WINDOW_SECONDS)

    def _key(self, client_id: str, window: int) -> str:
        return f"{self.prefix}:{client_id}:{window}"

    @staticmethod
    def _reset_minutes(now: float) -> int:
        return 60 - (int(now // 60) % 60)

    async def check(self, client_id: str, max_per_hour: int) -> RateLimitDecision:
        now = self.clock()
        key = self._key(client_id, self._window(now))
        reset_minutes = self._reset_minutes(now)

        try:
            value = await asyncio.wait_for(self.redis.get(key), timeout=self.timeout_seconds)
        except Exception as e:
            allowed = self.on_store_error is RateLimitFailurePolicy.ALLOW
            logger.error(
                "rate_limit.check_error",
                error=str(e) or type(e).__name__,
                client_id=client_id[:50],
                policy=self.on_store_error.value,
                allowed=allowed,
            )
            return RateLimitDecision(
                allowed=allowed,
                current_count=0,
                max_per_hour=max_per_hour,
                reset_minutes=reset_minutes,
            )

        current_count = int(value) if value else 0
        return RateLimitDecision(
            allowed=current_count < max_per_hour,
            current_count=current_count,
            max_per_hour=max_per_hour,
            reset_minutes=reset_minutes,
        )

    async def record(self, client_id: str) -> Optional[int]:
        """Count one accepted request; failures are logged and swallowed."""
        now = self.clock()
        window = self._window(now)
        key = self._key(client_id, window)
        expires_at = (window + COUNTER_LIFETIME_WINDOWS) * WINDOW_SECONDS

        async def _increment() -> int:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.incr(key)
                pipe.expireat(key, expires_at)
                results = await pipe.execute()
            return int(results[0])

        try:
            return await asyncio.wait_for(_increment(), timeout=self.timeout_seconds)
        except Exception as e:
            logger.error(
                "rate_limit.record_error",
                error=str(e) or type(e).__name__,
                client_id=client_id[:50],
            )
            return None

    async def get_counter(self, client_id: str) -> Optional[RateLimitCounter]:
        """Return the counter for the current window, if one exists."""
        window = self._window(self.clock())
        key = self._key(client_id, window)
        value = await self.redis.get(key)
        if value is None:
            return None
        return RateLimitCounter(
            key=key,
            count=int(value),
            expires_at=(window + COUNTER_LIFETIME_WINDOWS) * WINDOW_SECONDS,
        )
