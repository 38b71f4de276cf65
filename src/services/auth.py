"""Permission checks for bot actions"""
import logging
from enum import IntEnum
from typing import Optional

from src.exceptions import PermissionDeniedError, TransientError

logger = logging.getLogger(__name__)

GROUP_ADMIN_STATUSES = frozenset({"administrator", "creator"})


class Permission(IntEnum):
    """Totally ordered: a higher level implies every lower one"""

    USER = 0
    GROUP_MODERATOR = 1
    GROUP_ADMIN = 2
    BOT_ADMIN = 3
    SUPER_ADMIN = 4


# Permission each protected action requires
ACTION_PERMISSIONS: dict[str, Permission] = {
    "create_event": Permission.GROUP_ADMIN,
    "edit_event": Permission.GROUP_ADMIN,
    "delete_event": Permission.GROUP_ADMIN,
    "ban_user": Permission.BOT_ADMIN,
    "unban_user": Permission.BOT_ADMIN,
    "admin_panel": Permission.BOT_ADMIN,
    "view_stats": Permission.BOT_ADMIN,
    "modify_settings": Permission.SUPER_ADMIN,
}


class AuthService:
    """
    Resolves a user's permission level.

    Bot-level roles come from ``bot.admin_ids`` (the first entry is the super
    admin). Group admin is read from the platform's member status for the
    chat the action happens in.
    """

    def __init__(self, admin_ids: list[int], gateway=None):
        self.admin_ids = list(admin_ids)
        self.gateway = gateway

    def is_bot_admin(self, user_id: int) -> bool:
        return user_id in self.admin_ids

    def is_super_admin(self, user_id: int) -> bool:
        return bool(self.admin_ids) and self.admin_ids[0] == user_id

    async def get_permission(self, user_id: int, chat_id: Optional[int] = None) -> Permission:
        if self.is_super_admin(user_id):
            return Permission.SUPER_ADMIN
        if self.is_bot_admin(user_id):
            return Permission.BOT_ADMIN

        # Private chats have chat_id == user_id and no member status
        if chat_id is None or chat_id == user_id or self.gateway is None:
            return Permission.USER

        try:
            status = await self.gateway.get_member_status(chat_id, user_id)
        except TransientError as e:
            logger.warning(f"Could not read member status of {user_id} in {chat_id}: {e.message}")
            return Permission.USER

        if status in GROUP_ADMIN_STATUSES:
            return Permission.GROUP_ADMIN
        return Permission.USER

    async def has_permission(
        self,
        user_id: int,
        required: Permission,
        chat_id: Optional[int] = None
    ) -> bool:
        return await self.get_permission(user_id, chat_id) >= required

    async def require(
        self,
        user_id: int,
        required: Permission,
        chat_id: Optional[int] = None
    ) -> None:
        """
        Raises:
            PermissionDeniedError: if the user's level is below ``required``
        """
        if not await self.has_permission(user_id, required, chat_id):
            raise PermissionDeniedError(
                message=f"User {user_id} lacks {required.name}",
                required=required.name,
                user_id=user_id,
            )

    async def require_action(self, user_id: int, action: str, chat_id: Optional[int] = None) -> None:
        await self.require(user_id, ACTION_PERMISSIONS[action], chat_id)
