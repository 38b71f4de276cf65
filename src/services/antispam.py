"""
CAS (Combot Anti-Spam) lookups

Wraps the CAS HTTP oracle with:
1. A Redis cache of verdicts (``cas:check:<user_id>``), one TTL window per user
2. Single-flight: concurrent lookups for one user share a single request
3. Fail-open semantics: timeouts and malformed answers raise TransientError /
   ProtocolError, which callers treat as "no verdict" rather than "banned"
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Iterable, Optional

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from src.cache.redis_client import CAS_NAMESPACE, RedisCache
from src.exceptions import ProtocolError, TransientError, wrap_external_exception
from src.models.antispam import AntiSpamVerdict, OracleResponse
from src.models.context import utcnow

logger = logging.getLogger(__name__)

USER_AGENT = "SwingBuddy-Bot/1.0"
BATCH_CHUNK_SIZE = 10
BATCH_SPACING_SECONDS = 0.1
STATS_SAMPLE_SIZE = 100


class CasCacheStats(BaseModel):
    total_cached: int = 0
    sampled: int = 0
    banned_in_sample: int = 0
    in_flight: int = 0


class AntiSpamChecker:
    """
    CAS verdicts with caching and request coalescing.

    Example:
        checker = AntiSpamChecker(cache, api_url="https://api.cas.chat")
        verdict = await checker.check(123456)
        if verdict.is_banned and checker.auto_ban_enabled:
            ...
    """

    def __init__(
        self,
        cache: RedisCache,
        api_url: str = "https://api.cas.chat",
        timeout_seconds: float = 5.0,
        cache_ttl: int = 3600,
        enabled: bool = True,
        auto_ban: bool = True,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self.cache = cache
        self.api_url = api_url.rstrip("/")
        self.cache_ttl = cache_ttl
        self.enabled = enabled
        self._auto_ban = auto_ban
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds),
            headers={"User-Agent": USER_AGENT},
        )
        self._pending: dict[int, asyncio.Task] = {}
        self.requests_sent = 0

    @classmethod
    def from_settings(cls, settings, cache: RedisCache) -> "AntiSpamChecker":
        return cls(
            cache=cache,
            api_url=settings.cas.api_url,
            timeout_seconds=settings.cas.timeout_seconds,
            cache_ttl=settings.redis.ttl_seconds,
            enabled=settings.features.cas_protection,
            auto_ban=settings.cas.auto_ban,
        )

    @property
    def auto_ban_enabled(self) -> bool:
        return self.enabled and self._auto_ban

    async def close(self) -> None:
        await self._client.aclose()

    @staticmethod
    def _key(user_id: int) -> str:
        return f"{CAS_NAMESPACE}{user_id}"

    def _fresh(self, verdict: AntiSpamVerdict, now: Optional[datetime] = None) -> bool:
        return verdict.checked_at + timedelta(seconds=self.cache_ttl) > (now or utcnow())

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def check(self, user_id: int) -> AntiSpamVerdict:
        """
        Verdict for ``user_id``, from cache when fresh.

        Raises:
            TransientError: oracle unreachable, timed out or returned non-2xx
            ProtocolError: oracle answered with something we cannot read
        """
        cached = await self._get_cached(user_id)
        if cached is not None:
            logger.debug(f"CAS cache hit for {user_id}")
            return cached
        return await self._coalesced(user_id)

    async def force_check(self, user_id: int) -> AntiSpamVerdict:
        """Ask the oracle regardless of the cache and refresh the entry"""
        return await self._coalesced(user_id)

    async def check_batch(self, user_ids: Iterable[int]) -> dict[int, AntiSpamVerdict]:
        """
        Check many users, ten at a time with 100 ms between requests.

        Users whose lookup fails are logged and left out of the result.
        """
        ids = list(user_ids)
        results: dict[int, AntiSpamVerdict] = {}

        for start in range(0, len(ids), BATCH_CHUNK_SIZE):
            chunk = ids[start:start + BATCH_CHUNK_SIZE]
            for index, user_id in enumerate(chunk):
                if index:
                    await asyncio.sleep(BATCH_SPACING_SECONDS)
                try:
                    results[user_id] = await self.check(user_id)
                except (TransientError, ProtocolError) as e:
                    logger.warning(f"CAS batch check skipped user {user_id}: {e.message}")

        logger.info(f"CAS batch check: {len(results)}/{len(ids)} users checked")
        return results

    async def _coalesced(self, user_id: int) -> AntiSpamVerdict:
        task = self._pending.get(user_id)
        if task is None:
            task = asyncio.create_task(self._fetch(user_id))
            self._pending[user_id] = task

            def _forget(done: asyncio.Task, user_id: int = user_id) -> None:
                if self._pending.get(user_id) is done:
                    del self._pending[user_id]

            task.add_done_callback(_forget)
        else:
            logger.debug(f"CAS lookup for {user_id} already in flight, waiting")

        # A cancelled waiter must not cancel the lookup other waiters share
        return await asyncio.shield(task)

    async def _fetch(self, user_id: int) -> AntiSpamVerdict:
        url = f"{self.api_url}/check"
        self.requests_sent += 1
        try:
            response = await self._client.get(url, params={"user_id": user_id})
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise wrap_external_exception(e, operation="cas_check", user_id=user_id)

        try:
            body = OracleResponse.model_validate_json(response.content)
        except PydanticValidationError as e:
            raise ProtocolError(
                message=f"Unreadable CAS response: {e.error_count()} errors",
                service="cas",
                status_code=response.status_code,
                user_id=user_id,
                operation="cas_check",
            )

        if not body.ok:
            raise ProtocolError(
                message=f"CAS API returned ok: false ({body.description or 'no description'})",
                service="cas",
                status_code=response.status_code,
                user_id=user_id,
                operation="cas_check",
            )

        verdict = AntiSpamVerdict.from_oracle(user_id, body)
        if verdict.is_banned:
            logger.warning(f"🚫 CAS: user {user_id} is banned ({verdict.offenses} offenses)")
        else:
            logger.debug(f"CAS: user {user_id} is clean")

        await self._store(verdict)
        return verdict

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    async def _get_cached(self, user_id: int) -> Optional[AntiSpamVerdict]:
        key = self._key(user_id)
        try:
            raw = await self.cache.get(key)
        except TransientError:
            # Redis trouble should not stop the oracle lookup
            return None
        if raw is None:
            return None

        try:
            verdict = AntiSpamVerdict.model_validate_json(raw)
        except PydanticValidationError:
            logger.warning(f"Deleting undecodable CAS cache entry for {user_id}")
            await self.cache.delete(key)
            return None

        return verdict if self._fresh(verdict) else None

    async def _store(self, verdict: AntiSpamVerdict) -> None:
        try:
            await self.cache.set(self._key(verdict.user_id), verdict.model_dump_json(), ttl=self.cache_ttl)
        except TransientError as e:
            logger.warning(f"Could not cache CAS verdict for {verdict.user_id}: {e.message}")

    async def clear_user(self, user_id: int) -> bool:
        return await self.cache.delete(self._key(user_id)) > 0

    async def clear_all(self) -> int:
        cleared = await self.cache.delete_pattern(f"{CAS_NAMESPACE}*")
        logger.info(f"Cleared {cleared} CAS cache entries")
        return cleared

    async def sweep_cache(self, now: Optional[datetime] = None) -> int:
        """Drop stale or undecodable verdicts; returns how many were removed"""
        now = now or utcnow()
        removed = 0
        for key in await self.cache.keys(f"{CAS_NAMESPACE}*"):
            try:
                raw = await self.cache.get(key)
                if raw is None:
                    continue
                try:
                    verdict = AntiSpamVerdict.model_validate_json(raw)
                    stale = not self._fresh(verdict, now)
                except PydanticValidationError:
                    stale = True
                if stale:
                    removed += await self.cache.delete(key)
            except TransientError as e:
                logger.warning(f"CAS cache sweep failed for '{key}': {e.message}")

        logger.info(f"CAS cache sweep removed {removed} entries")
        return removed

    async def cache_stats(self) -> CasCacheStats:
        stats = CasCacheStats(in_flight=len(self._pending))
        keys = await self.cache.keys(f"{CAS_NAMESPACE}*")
        stats.total_cached = len(keys)

        for key in keys[:STATS_SAMPLE_SIZE]:
            raw = await self.cache.get(key)
            if raw is None:
                continue
            try:
                verdict = AntiSpamVerdict.model_validate_json(raw)
            except PydanticValidationError:
                continue
            stats.sampled += 1
            if verdict.is_banned:
                stats.banned_in_sample += 1

        return stats
