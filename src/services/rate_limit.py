"""Redis sliding window rate limiting"""
import logging
import math
import time
from typing import Callable
from uuid import uuid4

from src.cache.redis_client import RATE_LIMIT_NAMESPACE, RedisCache
from src.exceptions import RateLimitExceededError, TransientError

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Allows ``max_requests`` in any ``window_seconds`` span for each identifier.

    Accepted requests are recorded by time in a sorted set at
    ``rate_limit:<identifier>``; refused ones are not recorded. If Redis is
    unavailable requests are allowed.
    """

    def __init__(
        self,
        cache: RedisCache,
        max_requests: int = 10,
        window_seconds: int = 60,
        clock: Callable[[], float] = time.time
    ):
        self.cache = cache
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.clock = clock

    @staticmethod
    def _key(identifier: str) -> str:
        return f"{RATE_LIMIT_NAMESPACE}{identifier}"

    async def check(self, identifier: str) -> bool:
        """Count one request; True if it is within the limit"""
        key = self._key(identifier)
        member = uuid4().hex
        try:
            count = await self.cache.window_add(key, member, self.clock(), self.window_seconds)
            if count > self.max_requests:
                await self.cache.window_remove(key, member)
        except TransientError as e:
            logger.warning(f"Rate limiter unavailable, allowing {identifier}: {e.message}")
            return True

        allowed = count <= self.max_requests
        if not allowed:
            logger.info(f"Rate limit hit for {identifier}: {count}/{self.max_requests}")
        return allowed

    async def enforce(self, identifier: str) -> None:
        """
        Raises:
            RateLimitExceededError: with the seconds until the oldest request
                leaves the window
        """
        if await self.check(identifier):
            return

        try:
            oldest = await self.cache.window_oldest(self._key(identifier))
        except TransientError:
            oldest = None
        if oldest is None:
            retry_after = self.window_seconds
        else:
            retry_after = math.ceil(oldest + self.window_seconds - self.clock())
        raise RateLimitExceededError(identifier=identifier, retry_after=max(retry_after, 0))

    async def remaining(self, identifier: str) -> int:
        used = await self.cache.window_count(self._key(identifier), self.clock(), self.window_seconds)
        return max(self.max_requests - used, 0)

    async def reset(self, identifier: str) -> None:
        await self.cache.delete(self._key(identifier))
