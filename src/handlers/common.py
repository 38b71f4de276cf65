"""Helpers shared by update handlers"""
import logging
from typing import Any, Optional

from src.gateway import Buttons
from src.models.update import BaseUpdate

logger = logging.getLogger(__name__)


async def user_language(services, update: BaseUpdate) -> str:
    """
    Stored language preference of the update's author.

    Falls back to the Telegram client language, then to the default language.
    """
    user = await services.users.find_by_telegram_id(update.user_id)
    if user is not None:
        return services.translator.user_language(user)
    return services.translator.resolve_language(update.language_code)


async def group_language(services, chat_id: int) -> str:
    group = await services.groups.find_by_telegram_id(chat_id)
    if group is not None:
        return services.translator.resolve_language(group.language_code)
    return services.translator.default_language


async def reply(
    services,
    update: BaseUpdate,
    key: str,
    lang: Optional[str] = None,
    buttons: Optional[Buttons] = None,
    **params: Any
) -> int:
    """Send the translated ``key`` to the chat the update came from"""
    text = services.translator.t(key, lang, **params)
    return await services.gateway.send_text(update.chat_id, text, buttons=buttons)


def language_buttons(services, prefix: str, suffix: str = "") -> Buttons:
    """One row with a button per supported language: ``<prefix><code><suffix>``"""
    t = services.translator.t
    labels = {
        "en": t("buttons.language.english", "en"),
        "ru": t("buttons.language.russian", "ru"),
    }
    return [[
        (labels.get(code, code), f"{prefix}{code}{suffix}")
        for code in services.translator.supported_languages
    ]]
