"""
Rate limiting for DNS-triggering endpoints

Redis sliding-window limiter. Every "Verify" click fans out to the public
DoH resolver, so verification requests are capped per user.
"""
import logging
import time
from typing import Optional, Tuple
from uuid import UUID

import redis
from fastapi import Depends, HTTPException, status

from app.api import deps
from app.config import settings

logger = logging.getLogger("linkbio.ratelimit")


class RateLimiter:
    """Redis sliding-window limiter."""

    def __init__(self, redis_url: Optional[str] = None):
        self._redis_url = redis_url or settings.RATE_LIMIT_REDIS_URL
        self._redis: Optional[redis.Redis] = None

    @property
    def r(self) -> redis.Redis:
        if self._redis is None:
            client = redis.Redis.from_url(
                self._redis_url,
                decode_responses=True,
                socket_connect_timeout=2,
                socket_timeout=2,
            )
            client.ping()
            self._redis = client
        return self._redis

    def is_allowed(
        self,
        key: str,
        max_requests: int,
        window_seconds: int,
    ) -> Tuple[bool, int, int]:
        """
        Sliding-window check.
        Returns (allowed, remaining, retry_after_seconds).
        """
        try:
            now = time.time()
            window_start = now - window_seconds
            pipe = self.r.pipeline(transaction=True)
            pipe.zremrangebyscore(key, 0, window_start)
            pipe.zcard(key)
            pipe.zadd(key, {str(now): now})
            pipe.expire(key, window_seconds + 10)
            results = pipe.execute()
            current_count = results[1]

            if current_count >= max_requests:
                # Over the limit, undo the entry just added
                self.r.zrem(key, str(now))
                oldest = self.r.zrange(key, 0, 0, withscores=True)
                retry_after = int(window_seconds - (now - oldest[0][1])) if oldest else window_seconds
                return False, 0, max(retry_after, 1)

            remaining = max_requests - current_count - 1
            return True, max(remaining, 0), 0

        except redis.RedisError as e:
            logger.warning("Rate limiter Redis error: %s, allowing request", e)
            return True, max_requests, 0  # fail open when Redis is down


_limiter = RateLimiter()


def get_rate_limiter() -> RateLimiter:
    return _limiter


def limit_verify_requests(
    user_id: UUID = Depends(deps.get_current_user_id),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> None:
    """Dependency: cap on-demand DNS verifications per user."""
    if not settings.RATE_LIMIT_ENABLED:
        return
    allowed, _, retry_after = limiter.is_allowed(
        f"rl:verify:{user_id}",
        settings.RATE_LIMIT_VERIFY_PER_USER,
        60,
    )
    if not allowed:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many verification attempts, please try again shortly.",
            headers={"Retry-After": str(retry_after)},
        )
