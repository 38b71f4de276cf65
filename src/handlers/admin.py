"""Admin panel: hub menu, spokes, user moderation and statistics"""
import logging

from src.exceptions import RecordNotFoundError, ValidationError
from src.handlers.common import reply, user_language
from src.models.context import ConversationContext
from src.models.update import ButtonPressUpdate, CallbackData, CommandUpdate, FreeTextUpdate
from src.services.auth import Permission
from src.state.scenarios import ADMIN_PANEL, ADMIN_SPOKES

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 10
LIST_LIMIT = 20


def _flag(enabled: bool) -> str:
    return "✅" if enabled else "❌"


def main_menu_buttons(services, lang: str):
    t = services.translator.t
    return [
        [
            (t("admin.user_management", lang), "admin:user_management"),
            (t("admin.group_management", lang), "admin:group_management"),
        ],
        [
            (t("admin.event_management", lang), "admin:event_management"),
            (t("admin.statistics", lang), "admin:statistics"),
        ],
        [(t("admin.system_settings", lang), "admin:system_settings")],
    ]


def _back(services, lang: str):
    return [(services.translator.t("buttons.navigation.back", lang), "admin:main_menu")]


async def _show(update, services, text: str, buttons) -> None:
    if isinstance(update, ButtonPressUpdate) and update.message_id is not None:
        await services.gateway.edit_text(update.chat_id, update.message_id, text, buttons=buttons)
    else:
        await services.gateway.send_text(update.chat_id, text, buttons=buttons)


# ============================================================================
# COMMANDS
# ============================================================================

async def handle_admin(update: CommandUpdate, services) -> None:
    """/admin - open the admin panel (bot admins only)"""
    lang = await user_language(services, update)
    if not update.is_private:
        await reply(services, update, "errors.invalid_command", lang)
        return
    if not services.settings.features.admin_panel:
        await reply(services, update, "errors.access_denied", lang)
        return

    await services.auth.require_action(update.user_id, "admin_panel")

    async def show_menu(_: ConversationContext) -> None:
        await reply(services, update, "admin.panel_title", lang, buttons=main_menu_buttons(services, lang))

    await services.runner.start(update.user_id, ADMIN_PANEL, effects=[show_menu])
    logger.info(f"Admin {update.user_id} opened the admin panel")


async def handle_stats(update: CommandUpdate, services) -> None:
    """/stats - system statistics (bot admins only)"""
    lang = await user_language(services, update)
    await services.auth.require_action(update.user_id, "view_stats")

    stats = await services.admin.system_stats()
    await reply(services, update, "admin.stats_text", lang, **stats.model_dump())


# ============================================================================
# NAVIGATION
# ============================================================================

async def _enter(update: ButtonPressUpdate, services, step_id: str, effects) -> None:
    """
    Move the admin to ``step_id`` of the panel.

    Spokes only connect to the main menu, so leaving one spoke for another
    passes through main_menu. An expired panel is restarted.
    """
    runner = services.runner
    ctx = await services.store.load(update.user_id)

    if ctx is None or not ctx.in_scenario(ADMIN_PANEL):
        ctx = await runner.start(update.user_id, ADMIN_PANEL)

    if step_id == "main_menu":
        if ctx.step != "main_menu":
            await runner.advance(update.user_id, "main_menu", effects=effects)
        else:
            for effect in effects:
                await effect(ctx)
        return

    if ctx.step != "main_menu":
        await runner.advance(update.user_id, "main_menu")
    await runner.advance(update.user_id, step_id, effects=effects)


async def handle_admin_callback(update: ButtonPressUpdate, payload: CallbackData, services) -> None:
    """
    admin:<spoke> | admin:main_menu | admin:ban:<telegram_id> |
    admin:unban:<telegram_id> | admin:delete_event:<id>
    """
    await services.auth.require_action(update.user_id, "admin_panel")
    lang = await user_language(services, update)
    action = payload.action

    if action == "main_menu":
        async def show_menu(_: ConversationContext) -> None:
            await _show(update, services, services.translator.t("admin.panel_title", lang), main_menu_buttons(services, lang))
        await _enter(update, services, "main_menu", [show_menu])
        return

    if action in ADMIN_SPOKES:
        if action == "system_settings":
            await services.auth.require(update.user_id, Permission.SUPER_ADMIN)

        renderer = SPOKE_RENDERERS[action]

        async def render(_: ConversationContext) -> None:
            await renderer(update, services, lang)
        await _enter(update, services, action, [render])
        return

    if action in ("ban", "unban"):
        await _set_ban(update, services, payload.arg, banned=action == "ban", lang=lang)
        return

    if action == "delete_event":
        await _delete_event(update, services, payload.arg, lang)
        return

    logger.warning(f"Unknown admin action '{action}' from user {update.user_id}")


# ============================================================================
# SPOKES
# ============================================================================

async def show_user_management(update, services, lang: str) -> None:
    stats = await services.admin.system_stats()
    text = services.translator.t(
        "admin.users_text", lang,
        total_users=stats.total_users,
        banned_users=stats.banned_users,
    )
    await _show(update, services, text, [_back(services, lang)])


async def show_group_management(update, services, lang: str) -> None:
    groups = await services.groups.active_groups(limit=LIST_LIMIT)
    listing = "\n".join(f"• {group.title} ({group.telegram_id}, {group.language_code})" for group in groups)
    text = services.translator.t("admin.groups_text", lang, count=len(groups), groups=listing or "-")
    await _show(update, services, text, [_back(services, lang)])


async def show_event_management(update, services, lang: str) -> None:
    t = services.translator.t
    events = await services.events.list_upcoming(limit=LIST_LIMIT)
    buttons = [
        [(f"{t('buttons.admin.delete_event', lang)} {event.title}", f"admin:delete_event:{event.id}")]
        for event in events
    ]
    buttons.append(_back(services, lang))
    await _show(update, services, t("admin.events_text", lang, count=len(events)), buttons)


async def show_statistics(update, services, lang: str) -> None:
    stats = await services.admin.system_stats()
    await _show(update, services, services.translator.t("admin.stats_text", lang, **stats.model_dump()), [_back(services, lang)])


async def show_system_settings(update, services, lang: str) -> None:
    settings = services.settings
    text = services.translator.t(
        "admin.settings_text", lang,
        cas_protection=_flag(settings.features.cas_protection),
        auto_ban=_flag(settings.cas.auto_ban),
        google_calendar=_flag(settings.features.google_calendar),
        max_requests=settings.rate_limit.max_requests,
        window_seconds=settings.rate_limit.window_seconds,
    )
    await _show(update, services, text, [_back(services, lang)])


SPOKE_RENDERERS = {
    "user_management": show_user_management,
    "group_management": show_group_management,
    "event_management": show_event_management,
    "statistics": show_statistics,
    "system_settings": show_system_settings,
}


# ============================================================================
# ACTIONS
# ============================================================================

def _int_arg(value, field: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {field}: {value}", field=field, value=value)


async def _set_ban(update: ButtonPressUpdate, services, raw_id, banned: bool, lang: str) -> None:
    telegram_id = _int_arg(raw_id, "telegram_id")
    await services.auth.require_action(update.user_id, "ban_user" if banned else "unban_user")

    await services.users.set_ban(telegram_id, banned)
    key = "admin.user_banned" if banned else "admin.user_unbanned"
    await reply(services, update, key, lang, telegram_id=telegram_id)
    logger.info(f"Admin {update.user_id} {'banned' if banned else 'unbanned'} user {telegram_id}")


async def _delete_event(update: ButtonPressUpdate, services, raw_id, lang: str) -> None:
    event_id = _int_arg(raw_id, "event_id")
    await services.auth.require_action(update.user_id, "delete_event")

    if not await services.events.delete(event_id):
        raise RecordNotFoundError(
            message=f"Event {event_id} not found",
            record_type="event",
            record_id=event_id,
        )
    await reply(services, update, "admin.event_deleted", lang, event_id=event_id)


async def handle_user_search(update: FreeTextUpdate, ctx: ConversationContext, value: str, services) -> None:
    """Text sent while in user_management: username prefix search"""
    await services.auth.require_action(update.user_id, "admin_panel")
    lang = await user_language(services, update)
    t = services.translator.t

    users = await services.users.search_by_username_prefix(value, limit=SEARCH_LIMIT)
    await services.runner.update_data(update.user_id, {"last_search": value})

    if not users:
        await reply(services, update, "admin.no_results", lang, query=value)
        return

    buttons = []
    for user in users:
        if user.is_banned:
            buttons.append([(f"{t('buttons.admin.unban', lang)} {user.display_name}", f"admin:unban:{user.telegram_id}")])
        else:
            buttons.append([(f"{t('buttons.admin.ban', lang)} {user.display_name}", f"admin:ban:{user.telegram_id}")])
    buttons.append(_back(services, lang))

    await reply(services, update, "admin.search_results", lang, buttons=buttons, query=value)
