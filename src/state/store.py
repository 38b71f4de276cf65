"""Redis-backed storage of conversation contexts"""
import json
import logging
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from src.cache.redis_client import CONTEXT_NAMESPACE, RedisCache
from src.exceptions import ContextLimitError, TransientError, ValidationError
from src.models.context import (
    MAX_CONTEXT_BYTES,
    MAX_DATA_ENTRIES,
    ConversationContext,
    utcnow,
)

logger = logging.getLogger(__name__)

MIN_TTL_SECONDS = 60


class StorageStats(BaseModel):
    total_contexts: int = 0
    active_contexts: int = 0
    expired_contexts: int = 0
    scenarios: dict[str, int] = Field(default_factory=dict)


class SweepResult(BaseModel):
    scanned: int = 0
    expired: int = 0
    corrupted: int = 0
    errors: int = 0

    @property
    def removed(self) -> int:
        return self.expired + self.corrupted


class ContextStore:
    """
    Persistent map ``user_id -> ConversationContext``.

    Stored under ``<prefix>context:<user_id>``. Expired or undecodable entries
    are deleted when encountered and never returned.
    """

    def __init__(self, cache: RedisCache, default_ttl: Optional[int] = None):
        self.cache = cache
        self.default_ttl = default_ttl or cache.default_ttl

    @staticmethod
    def _key(user_id: int) -> str:
        return f"{CONTEXT_NAMESPACE}{user_id}"

    @staticmethod
    def _user_id_from_key(key: str) -> Optional[int]:
        try:
            return int(key[len(CONTEXT_NAMESPACE):])
        except ValueError:
            return None

    def _decode(self, raw: str, key: str) -> Optional[ConversationContext]:
        try:
            return ConversationContext.from_json(raw)
        except PydanticValidationError as e:
            logger.warning(f"Malformed context under '{key}': {e.error_count()} errors")
            return None

    def _ttl_for(self, ctx: ConversationContext, now: datetime) -> int:
        remaining = ctx.ttl_seconds(now)
        if remaining is None:
            return self.default_ttl
        return max(MIN_TTL_SECONDS, remaining)

    async def save(self, ctx: ConversationContext, now: Optional[datetime] = None) -> None:
        """
        Store ``ctx``.

        Raises:
            ContextLimitError: context exceeds entry or size limits
            TransientError: Redis unavailable
        """
        now = now or utcnow()
        if len(ctx.data) > MAX_DATA_ENTRIES:
            raise ContextLimitError(
                message=f"Context for {ctx.user_id} holds {len(ctx.data)} entries",
                limit="entries",
                user_id=ctx.user_id,
                operation="save_context",
            )

        payload = ctx.to_json()
        size = len(payload.encode("utf-8"))
        if size > MAX_CONTEXT_BYTES:
            raise ContextLimitError(
                message=f"Context for {ctx.user_id} is {size} bytes",
                limit="total_size",
                user_id=ctx.user_id,
                operation="save_context",
            )

        ttl = self._ttl_for(ctx, now)
        await self.cache.set(self._key(ctx.user_id), payload, ttl=ttl)
        logger.debug(f"Saved context {ctx.summary()} (ttl {ttl}s)")

    async def load(self, user_id: int, now: Optional[datetime] = None) -> Optional[ConversationContext]:
        key = self._key(user_id)
        raw = await self.cache.get(key)
        if raw is None:
            return None

        ctx = self._decode(raw, key)
        if ctx is None or ctx.user_id != user_id:
            await self.cache.delete(key)
            return None

        if ctx.is_expired(now):
            logger.debug(f"Context for user {user_id} expired at {ctx.expires_at}")
            await self.cache.delete(key)
            return None

        return ctx

    async def delete(self, user_id: int) -> bool:
        deleted = await self.cache.delete(self._key(user_id))
        if deleted:
            logger.debug(f"Deleted context for user {user_id}")
        return deleted > 0

    async def exists(self, user_id: int) -> bool:
        return await self.cache.exists(self._key(user_id))

    async def extend_ttl(self, user_id: int, seconds: int, now: Optional[datetime] = None) -> bool:
        """Push the context's expiry ``seconds`` further out and refresh the stored TTL"""
        ctx = await self.load(user_id, now=now)
        if ctx is None:
            return False
        ctx.extend_expiry(seconds, now=now)
        await self.save(ctx, now=now)
        return True

    async def active_users(self) -> list[int]:
        users = []
        async for key in self.cache.scan(f"{CONTEXT_NAMESPACE}*"):
            user_id = self._user_id_from_key(key)
            if user_id is not None:
                users.append(user_id)
        return users

    async def sweep(self, now: Optional[datetime] = None) -> SweepResult:
        """Delete expired and undecodable contexts, continuing past per-key failures"""
        now = now or utcnow()
        result = SweepResult()

        for key in await self.cache.keys(f"{CONTEXT_NAMESPACE}*"):
            result.scanned += 1
            try:
                raw = await self.cache.get(key)
                if raw is None:
                    continue
                ctx = self._decode(raw, key)
                if ctx is None:
                    await self.cache.delete(key)
                    result.corrupted += 1
                elif ctx.is_expired(now):
                    await self.cache.delete(key)
                    result.expired += 1
            except TransientError as e:
                result.errors += 1
                logger.warning(f"Context sweep failed for '{key}': {e.message}")

        logger.info(
            f"Context sweep: scanned={result.scanned} expired={result.expired} "
            f"corrupted={result.corrupted} errors={result.errors}"
        )
        return result

    async def _all_contexts(self) -> list[ConversationContext]:
        contexts = []
        for key in await self.cache.keys(f"{CONTEXT_NAMESPACE}*"):
            raw = await self.cache.get(key)
            if raw is None:
                continue
            ctx = self._decode(raw, key)
            if ctx is not None:
                contexts.append(ctx)
        return contexts

    async def stats(self, now: Optional[datetime] = None) -> StorageStats:
        now = now or utcnow()
        stats = StorageStats()
        for ctx in await self._all_contexts():
            stats.total_contexts += 1
            if ctx.is_expired(now):
                stats.expired_contexts += 1
                continue
            stats.active_contexts += 1
            if ctx.scenario:
                stats.scenarios[ctx.scenario] = stats.scenarios.get(ctx.scenario, 0) + 1
        return stats

    async def snapshot(self, now: Optional[datetime] = None) -> str:
        """Export every non-expired context as one JSON document"""
        now = now or utcnow()
        contexts = [
            ctx.model_dump(mode="json")
            for ctx in await self._all_contexts()
            if not ctx.is_expired(now)
        ]
        logger.info(f"Context snapshot: {len(contexts)} contexts")
        return json.dumps(contexts)

    async def restore(self, blob: str, now: Optional[datetime] = None) -> int:
        """
        Re-ingest a snapshot. Expired and malformed entries are skipped.

        Returns:
            Number of contexts written

        Raises:
            ValidationError: if the snapshot is not a JSON list
        """
        try:
            items = json.loads(blob)
        except (json.JSONDecodeError, TypeError) as e:
            raise ValidationError(
                f"Snapshot is not valid JSON: {e}", field="snapshot", operation="restore_contexts"
            ) from e
        if not isinstance(items, list):
            raise ValidationError(
                "Snapshot must be a JSON list of contexts", field="snapshot", operation="restore_contexts"
            )

        now = now or utcnow()
        restored = 0
        for item in items:
            try:
                ctx = ConversationContext.model_validate(item)
            except PydanticValidationError as e:
                logger.warning(f"Skipping malformed context in snapshot: {e.error_count()} errors")
                continue
            if ctx.is_expired(now):
                continue
            await self.save(ctx, now=now)
            restored += 1

        logger.info(f"Context restore: {restored} contexts written")
        return restored

    async def ping(self) -> bool:
        return await self.cache.ping()
