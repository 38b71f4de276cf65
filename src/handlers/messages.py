"""Free-text routing and group anti-spam screening"""
import logging
from typing import Optional

from src.exceptions import ProtocolError, TransientError
from src.handlers.common import reply, user_language
from src.models.antispam import AntiSpamVerdict
from src.models.scenario import ValidationRule
from src.models.update import BaseUpdate, FreeTextUpdate, MemberJoinedUpdate
from src.validators import MessageInput, validate

logger = logging.getLogger(__name__)

# Typed on a skippable step, these mean "skip"
SKIP_WORDS = frozenset({"-", "skip", "пропустить"})

DEFAULT_RULE = ValidationRule()


async def handle_free_text(update: FreeTextUpdate, services) -> None:
    """
    Route private text to the handler of the user's current step.

    Validation errors propagate to the dispatcher, which renders them; the
    context is left untouched. Media without a caption carries no input and
    is ignored.
    """
    if not update.text.strip():
        logger.debug(f"Ignoring message without text from user {update.user_id}")
        return

    ctx = await services.store.load(update.user_id)
    if ctx is None or ctx.is_idle:
        await reply(services, update, "messages.use_commands", await user_language(services, update))
        return

    step = services.registry.get_step(ctx.scenario, ctx.step)
    if step is None:
        logger.warning(f"User {update.user_id} stored at unknown step {ctx.current_state}, dropping context")
        await services.store.delete(update.user_id)
        await reply(services, update, "messages.use_commands", await user_language(services, update))
        return

    handler = services.runner.step_handler(ctx.scenario, ctx.step)
    if not step.requires_input or handler is None:
        lang = ctx.get_str("language") or await user_language(services, update)
        await reply(services, update, "messages.use_buttons", lang)
        return

    text = MessageInput(text=update.text).text
    if step.skippable and text.lower() in SKIP_WORDS:
        text = ""

    validate(step.validation or DEFAULT_RULE, text, skippable=step.skippable, field=step.id)
    await handler(update, ctx, text, services)


async def _remove_banned(
    services,
    chat_id: int,
    verdict: AntiSpamVerdict,
    message_id: Optional[int]
) -> None:
    """Ban, delete the offending message and write the audit row; each step is best effort"""
    try:
        await services.gateway.ban_member(chat_id, verdict.user_id)
    except TransientError as e:
        logger.error(f"Failed to ban CAS-listed user {verdict.user_id} in {chat_id}: {e.message}")

    if message_id is not None:
        try:
            await services.gateway.delete_message(chat_id, message_id)
        except TransientError as e:
            logger.warning(f"Failed to delete message {message_id} in {chat_id}: {e.message}")

    try:
        await services.admin.create_cas_check(
            telegram_id=verdict.user_id,
            is_banned=True,
            ban_reason=verdict.ban_reason,
        )
    except TransientError as e:
        logger.warning(f"Failed to log CAS ban of {verdict.user_id}: {e.message}")


async def screen_group_message(update: BaseUpdate, services) -> bool:
    """
    Anti-spam check of a group message author.

    Returns:
        True if the author was banned and the message removed
    """
    antispam = services.antispam
    if not antispam.enabled:
        return False

    try:
        verdict = await antispam.check(update.user_id)
    except (TransientError, ProtocolError) as e:
        logger.warning(f"CAS check unavailable for {update.user_id}, letting message through: {e.message}")
        return False

    if not verdict.is_banned:
        return False
    if not antispam.auto_ban_enabled:
        logger.info(f"CAS-listed user {update.user_id} posted in {update.chat_id}; auto-ban disabled")
        return False

    logger.warning(f"🚫 Removing CAS-listed user {update.user_id} from {update.chat_id}")
    await _remove_banned(services, update.chat_id, verdict, update.message_id)
    return True


async def handle_member_joined(update: MemberJoinedUpdate, services) -> None:
    """Screen every joining user; record the ones allowed to stay"""
    antispam = services.antispam
    bot = await services.gateway.get_me()
    joined = [user_id for user_id in (update.joined_user_ids or [update.joined_user_id]) if user_id != bot.id]

    allowed: list[int] = []
    notice_deleted = False
    for user_id in joined:
        verdict = None
        if antispam.enabled:
            try:
                verdict = await antispam.check(user_id)
            except (TransientError, ProtocolError) as e:
                logger.warning(f"CAS check unavailable for joining user {user_id}: {e.message}")

        if verdict is not None and verdict.is_banned and antispam.auto_ban_enabled:
            logger.warning(f"🚫 CAS-listed user {user_id} joined {update.chat_id}, banning")
            await _remove_banned(
                services, update.chat_id, verdict, None if notice_deleted else update.message_id
            )
            notice_deleted = True
            continue
        allowed.append(user_id)

    if allowed:
        await _record_members(services, update.chat_id, allowed)


async def _record_members(services, chat_id: int, telegram_ids: list[int]) -> None:
    group = await services.groups.find_by_telegram_id(chat_id)
    if group is None:
        logger.debug(f"Group {chat_id} not registered, skipping member records")
        return

    for telegram_id in telegram_ids:
        user = await services.users.find_by_telegram_id(telegram_id)
        if user is not None:
            await services.groups.add_member(group.id, user.id)
