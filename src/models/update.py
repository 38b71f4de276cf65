"""Inbound update models and classification of raw Telegram updates"""
import logging
import time
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, Field
from telegram import Update as TelegramUpdate
from telegram.constants import ChatType

logger = logging.getLogger(__name__)


class ChatKind(str, Enum):
    PRIVATE = "private"
    GROUP = "group"


class BaseUpdate(BaseModel):
    """Fields shared by every update variant"""

    kind: str = "update"
    user_id: int
    chat_id: int
    chat_kind: ChatKind
    received_at: float = Field(default_factory=time.monotonic)
    message_id: Optional[int] = None
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    language_code: Optional[str] = None

    @property
    def is_private(self) -> bool:
        return self.chat_kind == ChatKind.PRIVATE

    @property
    def is_group(self) -> bool:
        return self.chat_kind == ChatKind.GROUP


class CommandUpdate(BaseUpdate):
    kind: str = "command"
    name: str
    args: str = ""


class FreeTextUpdate(BaseUpdate):
    kind: str = "text"
    text: str


class ButtonPressUpdate(BaseUpdate):
    kind: str = "button"
    data: str
    callback_id: str


class MemberJoinedUpdate(BaseUpdate):
    kind: str = "member_joined"
    joined_user_id: int
    joined_user_ids: list[int] = Field(default_factory=list)


class MemberStatusUpdate(BaseUpdate):
    kind: str = "member_status"
    member_user_id: int
    old_status: Optional[str] = None
    new_status: str
    # The member whose status changed is the bot itself
    is_self: bool = False
    chat_title: Optional[str] = None


Update = Union[CommandUpdate, FreeTextUpdate, ButtonPressUpdate, MemberJoinedUpdate, MemberStatusUpdate]


class CallbackData(BaseModel):
    """Parsed button payload ``namespace:action[:arg...]``"""

    namespace: str
    action: str
    args: list[str] = Field(default_factory=list)

    @property
    def arg(self) -> Optional[str]:
        return self.args[0] if self.args else None


def _chat_kind(chat) -> ChatKind:
    return ChatKind.PRIVATE if chat.type == ChatType.PRIVATE else ChatKind.GROUP


def _author_fields(user) -> dict:
    if user is None:
        return {}
    return {
        "username": user.username,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "language_code": user.language_code,
    }


def _split_command(text: str) -> tuple[str, str]:
    """'/Start@SwingBuddyBot foo bar' -> ('start', 'foo bar')"""
    head, _, rest = text.strip().partition(" ")
    name = head.lstrip("/").split("@", 1)[0].lower()
    return name, rest.strip()


def classify_update(update: TelegramUpdate) -> Optional[Update]:
    """
    Turn a raw Telegram update into one of our update variants.

    Returns None for updates the bot does not act on (edited messages,
    channel posts, inline queries, anonymous senders).
    """
    query = update.callback_query
    if query is not None:
        message = query.message
        chat = message.chat if message is not None else None
        return ButtonPressUpdate(
            user_id=query.from_user.id,
            chat_id=chat.id if chat is not None else query.from_user.id,
            chat_kind=_chat_kind(chat) if chat is not None else ChatKind.PRIVATE,
            message_id=message.message_id if message is not None else None,
            data=query.data or "",
            callback_id=query.id,
            **_author_fields(query.from_user),
        )

    member_change = update.my_chat_member or update.chat_member
    if member_change is not None:
        return MemberStatusUpdate(
            user_id=member_change.from_user.id,
            chat_id=member_change.chat.id,
            chat_kind=_chat_kind(member_change.chat),
            member_user_id=member_change.new_chat_member.user.id,
            old_status=member_change.old_chat_member.status if member_change.old_chat_member else None,
            new_status=member_change.new_chat_member.status,
            is_self=update.my_chat_member is not None,
            chat_title=member_change.chat.title,
            **_author_fields(member_change.from_user),
        )

    message = update.message
    if message is None or message.from_user is None:
        logger.debug(f"Ignoring update {update.update_id}: nothing to route")
        return None

    base = {
        "user_id": message.from_user.id,
        "chat_id": message.chat.id,
        "chat_kind": _chat_kind(message.chat),
        "message_id": message.message_id,
        **_author_fields(message.from_user),
    }

    if message.new_chat_members:
        joined = [member.id for member in message.new_chat_members]
        return MemberJoinedUpdate(joined_user_id=joined[0], joined_user_ids=joined, **base)

    text = message.text or message.caption or ""
    if message.text and message.text.startswith("/"):
        name, args = _split_command(message.text)
        if name:
            return CommandUpdate(name=name, args=args, **base)

    return FreeTextUpdate(text=text, **base)
