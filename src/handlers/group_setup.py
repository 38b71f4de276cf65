"""Group setup: runs when the bot is added to a group"""
import logging
from typing import Optional

from src.exceptions import InvalidStateTransition, ValidationError
from src.handlers.common import group_language, language_buttons, reply
from src.i18n.translations import DOCUMENTATION_URL, LANGUAGE_NAMES
from src.models.context import ConversationContext
from src.models.group import CreateGroupRequest
from src.models.update import ButtonPressUpdate, CallbackData, MemberStatusUpdate
from src.services.auth import Permission
from src.state.scenarios import GROUP_SETUP

logger = logging.getLogger(__name__)

PRESENT_STATUSES = frozenset({"member", "administrator", "creator", "restricted"})


def _setup_context(ctx: Optional[ConversationContext], chat_id: int) -> Optional[ConversationContext]:
    """The context if it is a group setup for ``chat_id``"""
    if ctx is not None and ctx.in_scenario(GROUP_SETUP) and ctx.get_int("group_chat_id") == chat_id:
        return ctx
    return None


async def handle_member_status(update: MemberStatusUpdate, services) -> None:
    """
    Register the group and start setup when the bot itself is added.

    The person who added the bot owns the setup dialog.
    """
    if not update.is_self or not update.is_group:
        return
    if update.new_status not in ("member", "administrator"):
        if update.new_status in ("left", "kicked"):
            await services.groups.deactivate(update.chat_id)
            logger.info(f"Bot removed from group {update.chat_id}")
        return
    if update.old_status in PRESENT_STATUSES:
        # Promotion or demotion of the bot, not an addition
        return

    await services.groups.create(CreateGroupRequest(
        telegram_id=update.chat_id,
        title=update.chat_title or str(update.chat_id),
        language_code=services.translator.default_language,
    ))
    logger.info(f"🎉 Bot added to group {update.chat_id} by {update.user_id}")

    try:
        await services.runner.start(update.user_id, GROUP_SETUP, data={"group_chat_id": update.chat_id})
    except InvalidStateTransition:
        # The adder is busy with a dialog that cannot be interrupted; setup runs untracked
        logger.info(f"Group setup for {update.chat_id} not tracked for user {update.user_id}")

    await check_permissions(services, update.user_id, update.chat_id)


async def check_permissions(
    services,
    user_id: int,
    chat_id: int,
    message_id: Optional[int] = None
) -> None:
    """
    Show the success screen when the bot is an administrator, otherwise ask
    for the rights. The tracked dialog moves to configuration or
    permission_request accordingly.
    """
    lang = await group_language(services, chat_id)
    t = services.translator.t
    is_admin = await services.gateway.is_bot_admin_in(chat_id)

    if is_admin:
        next_step = "configuration"
        text = t("group.setup.success", lang)
        buttons = [
            [(t("buttons.group.got_it", lang), "group_setup:dismiss")],
            [(t("buttons.group.language", lang), "group_setup:language")],
        ]
    else:
        next_step = "permission_request"
        text = t("group.setup.permission_request", lang)
        buttons = [
            [(t("buttons.group.documentation", lang), DOCUMENTATION_URL)],
            [(t("buttons.group.check_again", lang), "group_setup:check_permissions")],
            [(t("buttons.group.language", lang), "group_setup:language")],
        ]

    async def show(_: Optional[ConversationContext] = None) -> None:
        if message_id is not None:
            await services.gateway.edit_text(chat_id, message_id, text, buttons=buttons)
            shown_id = message_id
        else:
            shown_id = await services.gateway.send_keyboard(chat_id, text, buttons)
        if tracked is not None:
            await services.runner.update_data(user_id, {"setup_message_id": shown_id})

    tracked = _setup_context(await services.store.load(user_id), chat_id)
    if tracked is None or tracked.step == next_step:
        await show()
        return

    if tracked.step == "permission_request":
        await services.runner.advance(user_id, "permission_check")
    if tracked.step in ("permission_check", "permission_request"):
        await services.runner.advance(user_id, next_step, effects=[show])
    else:
        # Already configured; only refresh the screen
        await show()


async def handle_group_setup_callback(update: ButtonPressUpdate, payload: CallbackData, services) -> None:
    """group_setup:check_permissions | language | lang_<code> | dismiss | documentation"""
    action = payload.action
    chat_id = update.chat_id

    if not update.is_group:
        logger.warning(f"group_setup button outside a group from user {update.user_id}")
        return

    if action == "check_permissions":
        await check_permissions(services, update.user_id, chat_id, message_id=update.message_id)
        return

    lang = await group_language(services, chat_id)
    t = services.translator.t

    if action == "documentation":
        await reply(services, update, "group.setup.documentation", lang, url=DOCUMENTATION_URL)
        return

    if action == "language":
        buttons = language_buttons(services, "group_setup:lang_")
        buttons.append([(t("buttons.navigation.back", lang), "group_setup:check_permissions")])
        text = t("group.setup.choose_language", lang)
        if update.message_id is not None:
            await services.gateway.edit_text(chat_id, update.message_id, text, buttons=buttons)
        else:
            await services.gateway.send_keyboard(chat_id, text, buttons)
        return

    if action.startswith("lang_"):
        await set_group_language(update, services, action[len("lang_"):])
        return

    if action == "dismiss":
        await dismiss_setup(update, services)
        return

    logger.warning(f"Unknown group_setup action '{action}' in {chat_id}")


async def set_group_language(update: ButtonPressUpdate, services, language_code: str) -> None:
    await services.auth.require(update.user_id, Permission.GROUP_ADMIN, chat_id=update.chat_id)

    if not services.translator.is_supported(language_code):
        raise ValidationError(
            f"Unsupported group language: {language_code}",
            field="language",
            value=language_code,
            error_key="onboarding.invalid_language",
        )

    await services.groups.set_language(update.chat_id, language_code)

    tracked = _setup_context(await services.store.load(update.user_id), update.chat_id)
    if tracked is not None:
        await services.runner.update_data(update.user_id, {"language": language_code})

    await reply(
        services, update, "group.setup.language_set", language_code,
        language=LANGUAGE_NAMES.get(language_code, language_code),
    )


async def dismiss_setup(update: ButtonPressUpdate, services) -> None:
    """Delete the setup message and finish the dialog"""
    await services.auth.require(update.user_id, Permission.GROUP_ADMIN, chat_id=update.chat_id)

    tracked = _setup_context(await services.store.load(update.user_id), update.chat_id)
    message_id = update.message_id
    if message_id is None and tracked is not None:
        message_id = tracked.get_int("setup_message_id")

    if tracked is not None and tracked.step == "configuration":
        await services.runner.advance(update.user_id, "complete")
        await services.runner.complete(update.user_id)

    if message_id is not None:
        await services.gateway.delete_message(update.chat_id, message_id)
    else:
        logger.info(f"No setup message to delete in {update.chat_id}")
