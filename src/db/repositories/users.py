"""User repository"""
import logging
from typing import Optional

from src.db.repositories.base import BaseRepository, escape_like
from src.exceptions import RecordNotFoundError
from src.models.user import CreateUserRequest, UpdateUserRequest, User

logger = logging.getLogger(__name__)


class UserRepository(BaseRepository):
    """Users, addressed by Telegram id unless stated otherwise"""

    async def create(self, request: CreateUserRequest) -> User:
        """
        Create a user (idempotent).

        An existing row for the same Telegram id is returned unchanged.
        """
        row = await self._fetchone(
            """
            INSERT INTO users (telegram_id, username, first_name, last_name, language_code, location)
            VALUES (%s, %s, %s, %s, %s, %s)
            ON CONFLICT (telegram_id) DO UPDATE SET
                telegram_id = EXCLUDED.telegram_id
            RETURNING *
            """,
            (
                request.telegram_id,
                request.username,
                request.first_name,
                request.last_name,
                request.language_code,
                request.location,
            ),
            operation="create_user",
            commit=True,
        )
        logger.info(f"Ensured user exists: {request.telegram_id}")
        return User.model_validate(row)

    async def find_by_id(self, user_id: int) -> Optional[User]:
        row = await self._fetchone(
            "SELECT * FROM users WHERE id = %s",
            (user_id,),
            operation="find_user_by_id",
        )
        return User.model_validate(row) if row else None

    async def find_by_telegram_id(self, telegram_id: int) -> Optional[User]:
        row = await self._fetchone(
            "SELECT * FROM users WHERE telegram_id = %s",
            (telegram_id,),
            operation="find_user_by_telegram_id",
        )
        return User.model_validate(row) if row else None

    async def update(self, telegram_id: int, request: UpdateUserRequest) -> User:
        """
        Partial update: fields left as None keep their stored value.

        Raises:
            RecordNotFoundError: no user with this Telegram id
        """
        row = await self._fetchone(
            """
            UPDATE users SET
                username = COALESCE(%s, username),
                first_name = COALESCE(%s, first_name),
                last_name = COALESCE(%s, last_name),
                language_code = COALESCE(%s, language_code),
                location = COALESCE(%s, location),
                is_banned = COALESCE(%s, is_banned),
                updated_at = NOW()
            WHERE telegram_id = %s
            RETURNING *
            """,
            (
                request.username,
                request.first_name,
                request.last_name,
                request.language_code,
                request.location,
                request.is_banned,
                telegram_id,
            ),
            operation="update_user",
            commit=True,
        )
        if row is None:
            raise RecordNotFoundError(
                message=f"User {telegram_id} not found",
                record_type="user",
                record_id=telegram_id,
            )
        return User.model_validate(row)

    async def delete(self, telegram_id: int) -> bool:
        deleted = await self._execute(
            "DELETE FROM users WHERE telegram_id = %s",
            (telegram_id,),
            operation="delete_user",
        )
        return deleted > 0

    async def set_ban(self, telegram_id: int, is_banned: bool) -> User:
        user = await self.update(telegram_id, UpdateUserRequest(is_banned=is_banned))
        logger.info(f"User {telegram_id} {'banned' if is_banned else 'unbanned'}")
        return user

    async def list_all(self, limit: int = 20, offset: int = 0) -> list[User]:
        rows = await self._fetchall(
            "SELECT * FROM users ORDER BY created_at DESC LIMIT %s OFFSET %s",
            (limit, offset),
            operation="list_users",
        )
        return [User.model_validate(row) for row in rows]

    async def search_by_username_prefix(self, prefix: str, limit: int = 10) -> list[User]:
        rows = await self._fetchall(
            """
            SELECT * FROM users
            WHERE username ILIKE %s
            ORDER BY username
            LIMIT %s
            """,
            (f"{escape_like(prefix.lstrip('@'))}%", limit),
            operation="search_users",
        )
        return [User.model_validate(row) for row in rows]

    async def get_banned_users(self, limit: int = 20) -> list[User]:
        rows = await self._fetchall(
            "SELECT * FROM users WHERE is_banned = TRUE ORDER BY updated_at DESC LIMIT %s",
            (limit,),
            operation="get_banned_users",
        )
        return [User.model_validate(row) for row in rows]

    async def count(self) -> int:
        return await self._count("SELECT COUNT(*) AS count FROM users", operation="count_users")
