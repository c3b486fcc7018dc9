"""Rate limiting implementation."""

import logging
import math
import time
import uuid
from typing import Optional

import redis.asyncio as redis

from city_dashboard.config import (
    REDIS_URL,
    RATE_LIMIT_REQUESTS_PER_SECOND,
    RATE_LIMIT_REDIS_KEY_PREFIX
)

logger = logging.getLogger(__name__)


class RateLimiter:
    """Sliding-window rate limiter backed by a Redis sorted set.

    Each admitted search is stored with its timestamp as score. Requests are
    allowed while the window holds no more than ``max_requests`` entries.
    Allows requests if Redis is unavailable.
    """

    def __init__(
        self,
        redis_client: Optional[redis.Redis] = None,
        max_requests: int = RATE_LIMIT_REQUESTS_PER_SECOND,
        window_size: float = 1.0
    ):
        """Initialize rate limiter.

        Args:
            redis_client: Optional Redis client. If None, creates new client.
            max_requests: Searches allowed per window
            window_size: Window length in seconds
        """
        self.redis_client = redis_client or redis.from_url(REDIS_URL)
        self.max_requests = max_requests
        self.window_size = window_size
        self.sorted_set_key = f"{RATE_LIMIT_REDIS_KEY_PREFIX}:searches"

    async def is_allowed(self) -> tuple[bool, int]:
        """Check if a request is allowed under the rate limit.

        Returns:
            Tuple of (is_allowed, retry_after_seconds)
            - is_allowed: True if request should be allowed
            - retry_after_seconds: Seconds to wait before retrying (0 if allowed)
        """
        try:
            now = time.time()
            window_start = now - self.window_size
            # Unique member so concurrent requests in the same microsecond both count
            member = f"{now:.6f}:{uuid.uuid4().hex[:8]}"

            pipe = self.redis_client.pipeline()
            pipe.zremrangebyscore(self.sorted_set_key, 0, window_start)
            pipe.zadd(self.sorted_set_key, {member: now})
            pipe.zcard(self.sorted_set_key)
            pipe.zrange(self.sorted_set_key, 0, 0, withscores=True)
            pipe.expire(self.sorted_set_key, math.ceil(self.window_size * 2))
            _, _, request_count, oldest, _ = await pipe.execute()

            if request_count <= self.max_requests:
                logger.debug(f"Not rate limited: count={request_count}, max={self.max_requests}")
                return True, 0

            # Rejected requests do not use up the window
            await self.redis_client.zrem(self.sorted_set_key, member)
            oldest_score = oldest[0][1] if oldest else now
            retry_after = max(1, math.ceil(oldest_score + self.window_size - now))
            logger.debug(f"Rate limited: count={request_count}, max={self.max_requests}, retry_after={retry_after}")
            return False, retry_after

        except Exception as e:
            # Allow request if Redis is down
            logger.error(f"Rate limiter error: {e}")
            return True, 0

    async def close(self):
        """Close Redis connection."""
        if self.redis_client:
            await self.redis_client.aclose()
