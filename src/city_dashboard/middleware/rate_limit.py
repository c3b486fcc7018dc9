"""Rate limiting middleware."""

import logging
from typing import Callable, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from city_dashboard.config import RATE_LIMIT_ENABLED, RATE_LIMIT_REQUESTS_PER_SECOND
from city_dashboard.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """FastAPI middleware that limits dashboard searches.

    Every search fans out to several metered provider APIs, so only search
    requests count against the limit. Returns HTTP 429 when it is exceeded.
    """

    # Paths that trigger provider calls
    LIMITED_PATHS = {"/dashboard/search"}

    def __init__(
        self,
        app,
        calls: int = RATE_LIMIT_REQUESTS_PER_SECOND,
        enabled: bool = RATE_LIMIT_ENABLED,
        rate_limiter: Optional[RateLimiter] = None
    ):
        """Initialize rate limit middleware.

        Args:
            app: FastAPI application instance
            calls: Maximum searches per second
            enabled: Whether limiting is active
            rate_limiter: Optional limiter instance (creates one if None)
        """
        super().__init__(app)
        self.enabled = enabled
        self.rate_limiter = rate_limiter or RateLimiter(max_requests=calls)
        logger.info(f"Rate limit enabled: {self.enabled}, limit: {calls} searches/sec")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request through rate limiting check.

        Args:
            request: Incoming HTTP request
            call_next: Next middleware/endpoint in chain

        Returns:
            HTTP response (either rate limit error or continued response)
        """
        if not self.enabled or request.url.path not in self.LIMITED_PATHS:
            return await call_next(request)

        is_allowed, retry_after = await self.rate_limiter.is_allowed()

        if not is_allowed:
            request_host = request.client.host if request.client else "unknown"
            logger.warning(f"Search rate limit exceeded for {request_host}")

            return JSONResponse(
                status_code=429,
                content={
                    "detail": "Too many searches. Please try again later.",
                    "retry_after": retry_after
                },
                headers={"Retry-After": str(retry_after)}
            )

        response = await call_next(request)

        # Add rate limit headers to response for transparency
        response.headers["X-RateLimit-Limit"] = str(self.rate_limiter.max_requests)
        response.headers["X-RateLimit-Window"] = str(self.rate_limiter.window_size)

        return response
