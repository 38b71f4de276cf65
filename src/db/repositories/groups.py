"""Group and group membership repository"""
import logging
from typing import Optional

from psycopg.types.json import Jsonb

from src.db.repositories.base import BaseRepository
from src.exceptions import RecordNotFoundError
from src.models.group import (
    CreateGroupRequest,
    Group,
    GroupMember,
    MemberRole,
    UpdateGroupRequest,
)

logger = logging.getLogger(__name__)


class GroupRepository(BaseRepository):

    async def create(self, request: CreateGroupRequest) -> Group:
        """
        Register a group, re-activating it if the bot was added before.

        The title is refreshed; language and settings of an existing row are kept.
        """
        row = await self._fetchone(
            """
            INSERT INTO groups (telegram_id, title, description, language_code, settings)
            VALUES (%s, %s, %s, %s, %s)
            ON CONFLICT (telegram_id) DO UPDATE SET
                title = EXCLUDED.title,
                is_active = TRUE,
                updated_at = NOW()
            RETURNING *
            """,
            (
                request.telegram_id,
                request.title,
                request.description,
                request.language_code,
                Jsonb(request.settings),
            ),
            operation="create_group",
            commit=True,
        )
        logger.info(f"Registered group {request.telegram_id} ({request.title})")
        return Group.model_validate(row)

    async def find_by_id(self, group_id: int) -> Optional[Group]:
        row = await self._fetchone(
            "SELECT * FROM groups WHERE id = %s",
            (group_id,),
            operation="find_group_by_id",
        )
        return Group.model_validate(row) if row else None

    async def find_by_telegram_id(self, telegram_id: int) -> Optional[Group]:
        row = await self._fetchone(
            "SELECT * FROM groups WHERE telegram_id = %s",
            (telegram_id,),
            operation="find_group_by_telegram_id",
        )
        return Group.model_validate(row) if row else None

    async def update(self, telegram_id: int, request: UpdateGroupRequest) -> Group:
        """
        Partial update keyed by the group's Telegram chat id.

        Raises:
            RecordNotFoundError: the bot has no record of this group
        """
        settings = Jsonb(request.settings) if request.settings is not None else None
        row = await self._fetchone(
            """
            UPDATE groups SET
                title = COALESCE(%s, title),
                description = COALESCE(%s, description),
                language_code = COALESCE(%s, language_code),
                settings = COALESCE(%s, settings),
                is_active = COALESCE(%s, is_active),
                updated_at = NOW()
            WHERE telegram_id = %s
            RETURNING *
            """,
            (
                request.title,
                request.description,
                request.language_code,
                settings,
                request.is_active,
                telegram_id,
            ),
            operation="update_group",
            commit=True,
        )
        if row is None:
            raise RecordNotFoundError(
                message=f"Group {telegram_id} not found",
                record_type="group",
                record_id=telegram_id,
            )
        return Group.model_validate(row)

    async def set_language(self, telegram_id: int, language_code: str) -> Group:
        group = await self.update(telegram_id, UpdateGroupRequest(language_code=language_code))
        logger.info(f"Group {telegram_id} language set to {language_code}")
        return group

    async def deactivate(self, telegram_id: int) -> bool:
        updated = await self._execute(
            "UPDATE groups SET is_active = FALSE, updated_at = NOW() WHERE telegram_id = %s",
            (telegram_id,),
            operation="deactivate_group",
        )
        return updated > 0

    async def delete(self, telegram_id: int) -> bool:
        deleted = await self._execute(
            "DELETE FROM groups WHERE telegram_id = %s",
            (telegram_id,),
            operation="delete_group",
        )
        return deleted > 0

    async def list_all(self, limit: int = 20, offset: int = 0) -> list[Group]:
        rows = await self._fetchall(
            "SELECT * FROM groups ORDER BY created_at DESC LIMIT %s OFFSET %s",
            (limit, offset),
            operation="list_groups",
        )
        return [Group.model_validate(row) for row in rows]

    async def count(self) -> int:
        return await self._count("SELECT COUNT(*) AS count FROM groups", operation="count_groups")

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    async def add_member(
        self,
        group_id: int,
        user_id: int,
        role: MemberRole = MemberRole.MEMBER
    ) -> GroupMember:
        """Add or re-role a member (ids are internal row ids)"""
        row = await self._fetchone(
            """
            INSERT INTO group_members (group_id, user_id, role)
            VALUES (%s, %s, %s)
            ON CONFLICT (group_id, user_id) DO UPDATE SET role = EXCLUDED.role
            RETURNING *
            """,
            (group_id, user_id, role.value),
            operation="add_group_member",
            commit=True,
        )
        return GroupMember.model_validate(row)

    async def remove_member(self, group_id: int, user_id: int) -> bool:
        deleted = await self._execute(
            "DELETE FROM group_members WHERE group_id = %s AND user_id = %s",
            (group_id, user_id),
            operation="remove_group_member",
        )
        return deleted > 0

    async def is_member(self, group_id: int, user_id: int) -> bool:
        row = await self._fetchone(
            "SELECT 1 AS found FROM group_members WHERE group_id = %s AND user_id = %s",
            (group_id, user_id),
            operation="is_group_member",
        )
        return row is not None

    async def get_members(self, group_id: int) -> list[GroupMember]:
        rows = await self._fetchall(
            "SELECT * FROM group_members WHERE group_id = %s ORDER BY joined_at",
            (group_id,),
            operation="get_group_members",
        )
        return [GroupMember.model_validate(row) for row in rows]

    async def update_member_role(self, group_id: int, user_id: int, role: MemberRole) -> bool:
        updated = await self._execute(
            "UPDATE group_members SET role = %s WHERE group_id = %s AND user_id = %s",
            (role.value, group_id, user_id),
            operation="update_member_role",
        )
        return updated > 0

    async def user_groups(self, user_id: int) -> list[Group]:
        """Active groups the user (internal id) belongs to"""
        rows = await self._fetchall(
            """
            SELECT g.* FROM groups g
            JOIN group_members m ON m.group_id = g.id
            WHERE m.user_id = %s AND g.is_active = TRUE
            ORDER BY g.title
            """,
            (user_id,),
            operation="user_groups",
        )
        return [Group.model_validate(row) for row in rows]

    async def active_groups(self, limit: int = 50) -> list[Group]:
        rows = await self._fetchall(
            "SELECT * FROM groups WHERE is_active = TRUE ORDER BY created_at DESC LIMIT %s",
            (limit,),
            operation="active_groups",
        )
        return [Group.model_validate(row) for row in rows]
