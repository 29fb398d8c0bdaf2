"""Fixed-window request rate limiting backed by Redis counters.

Each client gets one counter per scope and window. The first hit in a window
creates the key and sets its TTL; once the counter passes the limit every
further request in the window is rejected with RateLimitExceededError.
"""

from __future__ import annotations

import structlog
from fastapi import Depends, Request

from app.core.exceptions import RateLimitExceededError
from app.db.redis import RedisClient, get_redis

logger = structlog.get_logger(__name__)


def client_key(request: Request) -> str:
    """Identify the caller by the first X-Forwarded-For hop or the peer address."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client is not None:
        return request.client.host
    return "unknown"


class RateLimiter:
    """Callable FastAPI dependency enforcing `limit` requests per window."""

    def __init__(self, scope: str, limit: int, window_seconds: int) -> None:
        self.scope = scope
        self.limit = limit
        self.window_seconds = window_seconds

    async def hit(self, redis: RedisClient, client: str) -> int:
        """Count one request for the client. Raises once over the limit."""
        key = f"ratelimit:{self.scope}:{client}"
        count = await redis.increment(key)
        if count == 1:
            await redis.expire(key, self.window_seconds)

        if count > self.limit:
            logger.warning(
                "rate_limit_exceeded",
                scope=self.scope,
                client=client,
                count=count,
                limit=self.limit,
            )
            raise RateLimitExceededError()
        return count

    async def __call__(
        self,
        request: Request,
        redis: RedisClient = Depends(get_redis),
    ) -> None:
        await self.hit(redis, client_key(request))
