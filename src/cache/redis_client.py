"""
Redis client for transient bot state.

Provides async Redis operations with:
- Key namespacing under the configured prefix
- Automatic JSON serialization helpers
- TTL-based storage
- Sorted-set sliding windows for rate limiting

Unlike a pure cache, conversation state lives here, so failures are not
swallowed: every Redis error surfaces as a TransientError.
"""

import json
import logging
from typing import Any, AsyncIterator, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from src.exceptions import TransientError, wrap_external_exception

logger = logging.getLogger(__name__)

# Namespaces below the prefix
CONTEXT_NAMESPACE = "context:"
CAS_NAMESPACE = "cas:check:"
RATE_LIMIT_NAMESPACE = "rate_limit:"
QUERY_NAMESPACE = "query:"
USER_STATE_NAMESPACE = "user_state:"


class RedisCache:
    """
    Async Redis client bound to a key prefix.

    All public methods take keys *without* the prefix; ``keys()`` returns
    keys with the prefix stripped again.
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379",
        prefix: str = "swingbuddy:",
        default_ttl: int = 3600,
        client: Optional[Any] = None
    ):
        """
        Initialize Redis client.

        Args:
            redis_url: Redis connection URL
            prefix: Prepended to every key
            default_ttl: TTL used by callers that do not pass one
            client: Pre-built client (tests inject an in-memory double)
        """
        self.redis_url = redis_url
        self.prefix = prefix
        self.default_ttl = default_ttl
        self._client: Optional[Any] = client

    def full_key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def _strip(self, full_key: str) -> str:
        return full_key[len(self.prefix):] if full_key.startswith(self.prefix) else full_key

    def _require_client(self) -> Any:
        if self._client is None:
            raise TransientError(
                message="Redis client is not connected",
                service="redis",
                operation="redis",
            )
        return self._client

    def _error(self, e: Exception, operation: str, key: Optional[str] = None) -> Exception:
        return wrap_external_exception(e, operation=operation, context={"key": key})

    async def connect(self) -> None:
        """Establish Redis connection and verify it with PING."""
        if self._client is None:
            self._client = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                max_connections=20,
            )
        await self.ping()
        logger.info(f"✅ Redis connected: {self.redis_url} (prefix '{self.prefix}')")

    async def close(self) -> None:
        """Close Redis connection."""
        if self._client:
            try:
                await self._client.aclose()
                logger.info("Redis connection closed")
            except RedisError as e:
                logger.error(f"Error closing Redis connection: {e}")
            finally:
                self._client = None

    async def ping(self) -> bool:
        client = self._require_client()
        try:
            return bool(await client.ping())
        except RedisError as e:
            raise self._error(e, "redis_ping")

    # ------------------------------------------------------------------
    # Raw string values
    # ------------------------------------------------------------------

    async def get(self, key: str) -> Optional[str]:
        """
        Get raw value.

        Returns:
            Stored string or None if not found
        """
        client = self._require_client()
        try:
            value = await client.get(self.full_key(key))
        except RedisError as e:
            raise self._error(e, "redis_get", key)

        if value is None:
            logger.debug(f"Cache MISS: {key}")
            return None

        logger.debug(f"Cache HIT: {key}")
        return value

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        """
        Store raw value.

        Args:
            key: Key below the prefix
            value: String to store
            ttl: Time to live in seconds (None = default TTL, 0 = no expiration)
        """
        client = self._require_client()
        ttl = self.default_ttl if ttl is None else ttl
        try:
            if ttl > 0:
                await client.setex(self.full_key(key), ttl, value)
            else:
                await client.set(self.full_key(key), value)
        except RedisError as e:
            raise self._error(e, "redis_set", key)

        logger.debug(f"Cache SET: {key} (TTL: {ttl}s)")

    async def delete(self, *keys: str) -> int:
        """
        Delete keys.

        Returns:
            Number of keys that existed
        """
        if not keys:
            return 0
        client = self._require_client()
        try:
            deleted = await client.delete(*(self.full_key(key) for key in keys))
        except RedisError as e:
            raise self._error(e, "redis_delete", ",".join(keys))

        logger.debug(f"Cache DELETE: {', '.join(keys)} ({deleted} removed)")
        return deleted

    async def exists(self, key: str) -> bool:
        client = self._require_client()
        try:
            return await client.exists(self.full_key(key)) > 0
        except RedisError as e:
            raise self._error(e, "redis_exists", key)

    async def expire(self, key: str, ttl: int) -> bool:
        """Set expiration time for existing key."""
        client = self._require_client()
        try:
            return bool(await client.expire(self.full_key(key), ttl))
        except RedisError as e:
            raise self._error(e, "redis_expire", key)

    async def ttl(self, key: str) -> int:
        """
        Get remaining TTL for a key.

        Returns:
            TTL in seconds, -1 if no expiration, -2 if key doesn't exist
        """
        client = self._require_client()
        try:
            return await client.ttl(self.full_key(key))
        except RedisError as e:
            raise self._error(e, "redis_ttl", key)

    async def scan(self, pattern: str) -> AsyncIterator[str]:
        """Iterate keys matching ``pattern`` (below the prefix), prefix stripped."""
        client = self._require_client()
        try:
            async for full_key in client.scan_iter(match=self.full_key(pattern)):
                yield self._strip(full_key)
        except RedisError as e:
            raise self._error(e, "redis_scan", pattern)

    async def keys(self, pattern: str) -> list[str]:
        return [key async for key in self.scan(pattern)]

    async def delete_pattern(self, pattern: str) -> int:
        """
        Delete all keys matching a pattern.

        Args:
            pattern: Key pattern below the prefix (e.g., "cas:check:*")

        Returns:
            Number of keys deleted
        """
        keys = await self.keys(pattern)
        if not keys:
            return 0
        deleted = await self.delete(*keys)
        logger.debug(f"Cache DELETE pattern '{pattern}': {deleted} keys")
        return deleted

    # ------------------------------------------------------------------
    # Sliding windows
    # ------------------------------------------------------------------

    async def window_add(self, key: str, member: str, now: float, window: int) -> int:
        """
        Record ``member`` at time ``now`` in a sorted-set window.

        Entries ``window`` seconds old or older are dropped first, and the key
        expires once the window has been idle for ``window`` seconds.

        Returns:
            Entries in the window, the new one included
        """
        client = self._require_client()
        full_key = self.full_key(key)
        try:
            async with client.pipeline(transaction=True) as pipe:
                pipe.zremrangebyscore(full_key, "-inf", now - window)
                pipe.zadd(full_key, {member: now})
                pipe.zcard(full_key)
                pipe.expire(full_key, window)
                _, _, count, _ = await pipe.execute()
        except RedisError as e:
            raise self._error(e, "redis_window_add", key)
        return count

    async def window_remove(self, key: str, member: str) -> None:
        client = self._require_client()
        try:
            await client.zrem(self.full_key(key), member)
        except RedisError as e:
            raise self._error(e, "redis_window_remove", key)

    async def window_count(self, key: str, now: float, window: int) -> int:
        client = self._require_client()
        full_key = self.full_key(key)
        try:
            await client.zremrangebyscore(full_key, "-inf", now - window)
            return await client.zcard(full_key)
        except RedisError as e:
            raise self._error(e, "redis_window_count", key)

    async def window_oldest(self, key: str) -> Optional[float]:
        """Time of the oldest entry still in the window"""
        client = self._require_client()
        try:
            oldest = await client.zrange(self.full_key(key), 0, 0, withscores=True)
        except RedisError as e:
            raise self._error(e, "redis_window_oldest", key)
        return oldest[0][1] if oldest else None

    # ------------------------------------------------------------------
    # JSON helpers
    # ------------------------------------------------------------------

    async def get_json(self, key: str) -> Optional[Any]:
        """
        Get and deserialize a JSON value.

        Undecodable entries are deleted and reported as missing.
        """
        raw = await self.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Deleting undecodable JSON under '{key}': {e}")
            await self.delete(key)
            return None

    async def set_json(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        await self.set(key, json.dumps(value, default=str), ttl=ttl)

    async def cache_query_result(self, query_key: str, result: Any, ttl: Optional[int] = None) -> None:
        await self.set_json(f"{QUERY_NAMESPACE}{query_key}", result, ttl=ttl)

    async def get_query_result(self, query_key: str) -> Optional[Any]:
        return await self.get_json(f"{QUERY_NAMESPACE}{query_key}")

    async def cache_user_state(self, user_id: int, state: Any, ttl: Optional[int] = None) -> None:
        await self.set_json(f"{USER_STATE_NAMESPACE}{user_id}", state, ttl=ttl)

    async def get_user_state(self, user_id: int) -> Optional[Any]:
        return await self.get_json(f"{USER_STATE_NAMESPACE}{user_id}")

    async def clear_user_state(self, user_id: int) -> bool:
        return await self.delete(f"{USER_STATE_NAMESPACE}{user_id}") > 0


# Global cache instance (initialized in main.py)
cache: Optional[RedisCache] = None


async def init_cache(redis_url: str, prefix: str, default_ttl: int) -> RedisCache:
    """
    Initialize global Redis client.

    Raises:
        TransientError: if Redis is unreachable
    """
    global cache

    cache = RedisCache(redis_url=redis_url, prefix=prefix, default_ttl=default_ttl)
    await cache.connect()

    return cache


async def close_cache() -> None:
    """Close global cache connection."""
    global cache

    if cache:
        await cache.close()
        cache = None
