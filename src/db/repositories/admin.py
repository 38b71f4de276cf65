"""Admin settings, durable user state, CAS audit log and system statistics"""
import logging
from typing import Any, Optional

from psycopg.types.json import Jsonb

from src.cache.redis_client import RedisCache
from src.db.connection import Database
from src.db.repositories.base import BaseRepository
from src.exceptions import TransientError
from src.models.admin import AdminSetting, CasCheck, SystemStats, UserState

logger = logging.getLogger(__name__)

STATS_CACHE_KEY = "system_stats"
STATS_CACHE_TTL = 60


class AdminRepository(BaseRepository):

    def __init__(self, db: Database, cache: Optional[RedisCache] = None):
        super().__init__(db)
        self.cache = cache

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    async def get_setting(self, key: str) -> Optional[AdminSetting]:
        row = await self._fetchone(
            "SELECT * FROM admin_settings WHERE key = %s",
            (key,),
            operation="get_setting",
        )
        return AdminSetting.model_validate(row) if row else None

    async def set_setting(self, key: str, value: Any, updated_by: Optional[int] = None) -> AdminSetting:
        row = await self._fetchone(
            """
            INSERT INTO admin_settings (key, value, updated_by)
            VALUES (%s, %s, %s)
            ON CONFLICT (key) DO UPDATE SET
                value = EXCLUDED.value,
                updated_by = EXCLUDED.updated_by,
                updated_at = NOW()
            RETURNING *
            """,
            (key, Jsonb(value), updated_by),
            operation="set_setting",
            commit=True,
        )
        logger.info(f"Admin setting '{key}' updated by {updated_by}")
        return AdminSetting.model_validate(row)

    async def list_settings(self) -> list[AdminSetting]:
        rows = await self._fetchall("SELECT * FROM admin_settings ORDER BY key", operation="list_settings")
        return [AdminSetting.model_validate(row) for row in rows]

    async def delete_setting(self, key: str) -> bool:
        return await self._execute(
            "DELETE FROM admin_settings WHERE key = %s", (key,), operation="delete_setting"
        ) > 0

    # ------------------------------------------------------------------
    # Durable user state
    # ------------------------------------------------------------------

    async def upsert_user_state(self, state: UserState) -> UserState:
        row = await self._fetchone(
            """
            INSERT INTO user_states (user_id, scenario, step, data, expires_at)
            VALUES (%s, %s, %s, %s, %s)
            ON CONFLICT (user_id) DO UPDATE SET
                scenario = EXCLUDED.scenario,
                step = EXCLUDED.step,
                data = EXCLUDED.data,
                expires_at = EXCLUDED.expires_at,
                updated_at = NOW()
            RETURNING *
            """,
            (state.user_id, state.scenario, state.step, Jsonb(state.data), state.expires_at),
            operation="upsert_user_state",
            commit=True,
        )
        saved = UserState.model_validate(row)
        if self.cache is not None:
            try:
                await self.cache.cache_user_state(saved.user_id, saved.model_dump(mode="json"))
            except TransientError as e:
                logger.warning(f"Could not cache state for user {saved.user_id}: {e.message}")
        return saved

    async def get_user_state(self, user_id: int) -> Optional[UserState]:
        if self.cache is not None:
            try:
                cached = await self.cache.get_user_state(user_id)
            except TransientError:
                cached = None
            if cached is not None:
                return UserState.model_validate(cached)

        row = await self._fetchone(
            "SELECT * FROM user_states WHERE user_id = %s AND (expires_at IS NULL OR expires_at > NOW())",
            (user_id,),
            operation="get_user_state",
        )
        return UserState.model_validate(row) if row else None

    async def delete_user_state(self, user_id: int) -> bool:
        if self.cache is not None:
            try:
                await self.cache.clear_user_state(user_id)
            except TransientError as e:
                logger.warning(f"Could not clear cached state for user {user_id}: {e.message}")
        return await self._execute(
            "DELETE FROM user_states WHERE user_id = %s", (user_id,), operation="delete_user_state"
        ) > 0

    async def clean_expired_states(self) -> int:
        removed = await self._execute(
            "DELETE FROM user_states WHERE expires_at IS NOT NULL AND expires_at <= NOW()",
            operation="clean_expired_states",
        )
        if removed:
            logger.info(f"Removed {removed} expired user states")
        return removed

    # ------------------------------------------------------------------
    # CAS audit log
    # ------------------------------------------------------------------

    async def create_cas_check(
        self,
        telegram_id: int,
        is_banned: bool,
        ban_reason: Optional[str] = None,
        user_id: Optional[int] = None
    ) -> CasCheck:
        row = await self._fetchone(
            """
            INSERT INTO cas_checks (user_id, telegram_id, is_banned, ban_reason)
            VALUES (%s, %s, %s, %s)
            RETURNING *
            """,
            (user_id, telegram_id, is_banned, ban_reason),
            operation="create_cas_check",
            commit=True,
        )
        return CasCheck.model_validate(row)

    async def get_latest_cas_check(self, telegram_id: int) -> Optional[CasCheck]:
        row = await self._fetchone(
            "SELECT * FROM cas_checks WHERE telegram_id = %s ORDER BY checked_at DESC LIMIT 1",
            (telegram_id,),
            operation="get_latest_cas_check",
        )
        return CasCheck.model_validate(row) if row else None

    async def cleanup_old_cas_checks(self, days: int) -> int:
        """Delete CAS log rows older than ``days`` days"""
        removed = await self._execute(
            "DELETE FROM cas_checks WHERE checked_at < NOW() - make_interval(days => %s)",
            (days,),
            operation="cleanup_cas_checks",
        )
        if removed:
            logger.info(f"Removed {removed} CAS log rows older than {days} days")
        return removed

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    async def system_stats(self) -> SystemStats:
        """Counts for the admin panel, cached for a minute"""
        if self.cache is not None:
            try:
                cached = await self.cache.get_query_result(STATS_CACHE_KEY)
            except TransientError:
                cached = None
            if cached is not None:
                return SystemStats.model_validate(cached)

        row = await self._fetchone(
            """
            SELECT
                (SELECT COUNT(*) FROM users) AS total_users,
                (SELECT COUNT(*) FROM users WHERE is_banned) AS banned_users,
                (SELECT COUNT(*) FROM groups) AS total_groups,
                (SELECT COUNT(*) FROM groups WHERE is_active) AS active_groups,
                (SELECT COUNT(*) FROM events) AS total_events,
                (SELECT COUNT(*) FROM events WHERE is_active AND event_date > NOW()) AS upcoming_events,
                (SELECT COUNT(*) FROM cas_checks WHERE checked_at >= CURRENT_DATE) AS cas_checks_today,
                (SELECT COUNT(*) FROM cas_checks WHERE is_banned) AS cas_bans_total
            """,
            operation="system_stats",
        )
        stats = SystemStats.model_validate(row or {})

        if self.cache is not None:
            try:
                await self.cache.cache_query_result(STATS_CACHE_KEY, stats.model_dump(), ttl=STATS_CACHE_TTL)
            except TransientError as e:
                logger.warning(f"Could not cache system stats: {e.message}")
        return stats
