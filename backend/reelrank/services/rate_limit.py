"""
rate_limit.py

Redis-based AsyncLimiter for TMDB quota protection with exponential backoff.
Honours Retry-After on 429 responses.
"""
import time
import asyncio
import logging
from typing import Optional, Dict, Any

import httpx

from reelrank.core.redis_client import get_redis

logger = logging.getLogger(__name__)

# Rate limit configurations
RATE_LIMITS = {
    "tmdb_api": {"limit": 40, "window": 10},      # 40 requests per 10 seconds
}

MAX_DELAY_SECONDS = 30


class RateLimitExceeded(Exception):
    """Exception raised when rate limit is exceeded."""

    def __init__(self, message: str, service: str = None, status: Dict = None):
        super().__init__(message)
        self.service = service
        self.status = status or {}


class AsyncLimiter:
    """Redis-based rate limiter with sliding window."""

    def __init__(self, service: str, scope: str = "global"):
        self.service = service
        self.scope = scope
        self.redis = get_redis()
        self.config = RATE_LIMITS.get(service, {"limit": 10, "window": 60})

    @property
    def key(self) -> str:
        return f"rate_limit:{self.service}:{self.scope}"

    async def acquire(self) -> bool:
        """Attempt to acquire a token. Returns True if allowed, False if rate limited."""
        now = time.time()
        window = self.config["window"]
        limit = self.config["limit"]

        pipe = self.redis.pipeline()
        pipe.zremrangebyscore(self.key, 0, now - window)
        pipe.zadd(self.key, {f"{now:.6f}": now})
        pipe.zcard(self.key)
        pipe.expire(self.key, window)

        results = await pipe.execute()
        current_count = results[2]

        if current_count > limit:
            logger.warning(f"Rate limit exceeded for {self.service}: {current_count}/{limit}")
            return False
        return True

    async def get_status(self) -> Dict[str, Any]:
        """Get current quota status."""
        limit = self.config["limit"]
        current_count = await self.redis.zcard(self.key)
        return {
            "service": self.service,
            "limit": limit,
            "remaining": max(0, limit - current_count),
            "reset_time": int(time.time()) + self.config["window"],
            "current_count": current_count,
        }


async def check_rate_limit(service: str) -> None:
    """Check rate limit and raise RateLimitExceeded if exceeded."""
    limiter = AsyncLimiter(service)
    if not await limiter.acquire():
        raise RateLimitExceeded(
            f"Rate limit exceeded for {service}",
            service=service,
            status=await limiter.get_status(),
        )


def _retry_after(exc: httpx.HTTPStatusError) -> Optional[float]:
    value = exc.response.headers.get("Retry-After")
    try:
        return float(value) if value is not None else None
    except ValueError:
        return None


async def with_backoff(func, *args, max_retries: int = 5, service: str = None, **kwargs):
    """Execute function with exponential backoff on rate limit errors.

    With ``service`` set the shared Redis limiter is consulted before each
    attempt. Errors other than rate limiting propagate immediately.
    """
    delay = 1.0
    last_exception = None

    for attempt in range(max_retries):
        try:
            if service:
                await check_rate_limit(service)
            return await func(*args, **kwargs)

        except RateLimitExceeded as e:
            last_exception = e
            logger.warning(f"Rate limited on attempt {attempt + 1}/{max_retries}, sleeping {delay}s")

        except httpx.HTTPStatusError as e:
            if e.response.status_code != 429:
                raise
            last_exception = e
            delay = _retry_after(e) or delay
            logger.warning(f"API rate limit response on attempt {attempt + 1}/{max_retries}, sleeping {delay}s")

        if attempt + 1 < max_retries:
            await asyncio.sleep(min(delay, MAX_DELAY_SECONDS))
            delay = min(delay * 2, MAX_DELAY_SECONDS)

    raise last_exception or RateLimitExceeded(f"Max retries ({max_retries}) exceeded", service=service)
