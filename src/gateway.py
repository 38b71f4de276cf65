"""Outbound calls to the Telegram Bot API"""
import logging
from typing import Optional, Sequence

import telegram
import telegram.error
from telegram import InlineKeyboardButton, InlineKeyboardMarkup

from src.exceptions import wrap_external_exception
from src.resilience.retry import retry_with_backoff

logger = logging.getLogger(__name__)

# Rows of (label, callback_data); a value starting with http(s):// becomes a URL button
Buttons = Sequence[Sequence[tuple[str, str]]]


def build_keyboard(buttons: Optional[Buttons]) -> Optional[InlineKeyboardMarkup]:
    if not buttons:
        return None

    rows = []
    for row in buttons:
        keyboard_row = []
        for text, data in row:
            if data.startswith(("http://", "https://")):
                keyboard_row.append(InlineKeyboardButton(text, url=data))
            else:
                keyboard_row.append(InlineKeyboardButton(text, callback_data=data))
        rows.append(keyboard_row)
    return InlineKeyboardMarkup(rows)


class ChatGateway:
    """
    The bot's only way to talk to the platform.

    Every telegram.error.TelegramError is re-raised as TransientError.
    Reads that are safe to repeat go through retry_with_backoff.
    """

    def __init__(self, bot: telegram.Bot, max_retries: int = 2):
        self.bot = bot
        self.max_retries = max_retries
        self._me: Optional[telegram.User] = None

    async def send_text(
        self,
        chat_id: int,
        text: str,
        buttons: Optional[Buttons] = None
    ) -> int:
        """Send a message, returns its message id"""
        try:
            message = await self.bot.send_message(
                chat_id=chat_id,
                text=text,
                reply_markup=build_keyboard(buttons),
            )
        except telegram.error.TelegramError as e:
            raise wrap_external_exception(e, operation="send_message", context={"chat_id": chat_id})
        return message.message_id

    async def send_keyboard(self, chat_id: int, text: str, buttons: Buttons) -> int:
        return await self.send_text(chat_id, text, buttons=buttons)

    async def edit_text(
        self,
        chat_id: int,
        message_id: int,
        text: str,
        buttons: Optional[Buttons] = None
    ) -> None:
        try:
            await self.bot.edit_message_text(
                text=text,
                chat_id=chat_id,
                message_id=message_id,
                reply_markup=build_keyboard(buttons),
            )
        except telegram.error.BadRequest as e:
            if "not modified" in str(e).lower():
                return
            raise wrap_external_exception(e, operation="edit_message", context={"chat_id": chat_id})
        except telegram.error.TelegramError as e:
            raise wrap_external_exception(e, operation="edit_message", context={"chat_id": chat_id})

    async def answer_button(
        self,
        callback_id: str,
        text: Optional[str] = None,
        show_alert: bool = False
    ) -> None:
        try:
            await self.bot.answer_callback_query(callback_id, text=text, show_alert=show_alert)
        except telegram.error.TelegramError as e:
            raise wrap_external_exception(e, operation="answer_callback_query")

    async def delete_message(self, chat_id: int, message_id: int) -> bool:
        try:
            return await self.bot.delete_message(chat_id=chat_id, message_id=message_id)
        except telegram.error.TelegramError as e:
            raise wrap_external_exception(
                e, operation="delete_message", context={"chat_id": chat_id, "message_id": message_id}
            )

    async def ban_member(self, chat_id: int, user_id: int) -> bool:
        try:
            result = await self.bot.ban_chat_member(chat_id=chat_id, user_id=user_id)
        except telegram.error.TelegramError as e:
            raise wrap_external_exception(
                e, operation="ban_chat_member", user_id=user_id, context={"chat_id": chat_id}
            )
        logger.info(f"🔨 Banned user {user_id} in chat {chat_id}")
        return result

    async def unban_member(self, chat_id: int, user_id: int) -> bool:
        try:
            return await self.bot.unban_chat_member(chat_id=chat_id, user_id=user_id, only_if_banned=True)
        except telegram.error.TelegramError as e:
            raise wrap_external_exception(
                e, operation="unban_chat_member", user_id=user_id, context={"chat_id": chat_id}
            )

    async def get_member_status(self, chat_id: int, user_id: int) -> str:
        """Platform status string: creator, administrator, member, restricted, left, kicked"""
        try:
            member = await retry_with_backoff(
                self.bot.get_chat_member, chat_id, user_id, max_retries=self.max_retries
            )
        except telegram.error.TelegramError as e:
            raise wrap_external_exception(
                e, operation="get_chat_member", user_id=user_id, context={"chat_id": chat_id}
            )
        return str(member.status)

    async def get_me(self) -> telegram.User:
        if self._me is None:
            try:
                self._me = await retry_with_backoff(self.bot.get_me, max_retries=self.max_retries)
            except telegram.error.TelegramError as e:
                raise wrap_external_exception(e, operation="get_me")
        return self._me

    async def is_bot_admin_in(self, chat_id: int) -> bool:
        me = await self.get_me()
        return await self.get_member_status(chat_id, me.id) in ("administrator", "creator")
