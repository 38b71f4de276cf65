"""Event browsing, registration and the event creation dialog"""
import logging
from datetime import datetime, timezone

from src.exceptions import RecordNotFoundError, ValidationError
from src.handlers.common import reply, user_language
from src.models.context import ConversationContext
from src.models.event import CreateEventRequest, Event
from src.models.update import ButtonPressUpdate, CallbackData, CommandUpdate, FreeTextUpdate
from src.state.scenarios import EVENT_CREATION

logger = logging.getLogger(__name__)

CALENDARS = ("swing_events", "workshops", "social")
EVENT_LIST_LIMIT = 10


# ============================================================================
# RENDERING
# ============================================================================

def calendar_menu(services, lang: str):
    t = services.translator.t
    return [
        [(t("events.swing_events.title", lang), "calendar:swing_events")],
        [(t("events.workshops.title", lang), "calendar:workshops")],
        [(t("events.social.title", lang), "calendar:social")],
        [(t("events.upcoming.title", lang), "calendar:upcoming")],
    ]


def format_event_date(event: Event) -> str:
    return event.event_date.strftime("%Y-%m-%d %H:%M UTC")


def event_list_buttons(services, events: list[Event], lang: str):
    rows = [
        [(f"{event.title} · {event.event_date:%d.%m %H:%M}", f"calendar:event:{event.id}")]
        for event in events
    ]
    rows.append([(services.translator.t("buttons.navigation.back", lang), "calendar:back")])
    return rows


async def _show(update: ButtonPressUpdate, services, text: str, buttons) -> None:
    """Replace the pressed message when we know it, otherwise send a new one"""
    if update.message_id is not None:
        await services.gateway.edit_text(update.chat_id, update.message_id, text, buttons=buttons)
    else:
        await services.gateway.send_text(update.chat_id, text, buttons=buttons)


def _event_id(value: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid event id: {value}", field="event_id", value=value)


# ============================================================================
# COMMANDS
# ============================================================================

async def handle_events(update: CommandUpdate, services) -> None:
    """/events - calendar menu"""
    lang = await user_language(services, update)
    if not update.is_private:
        await reply(services, update, "errors.invalid_command", lang)
        return

    await reply(services, update, "events.list_title", lang, buttons=calendar_menu(services, lang))


async def handle_register(update: CommandUpdate, services) -> None:
    """/register - upcoming events with register buttons"""
    lang = await user_language(services, update)
    if not update.is_private:
        await reply(services, update, "errors.invalid_command", lang)
        return

    events = await services.events.list_upcoming(limit=EVENT_LIST_LIMIT)
    if not events:
        await reply(services, update, "events.no_events", lang)
        return

    buttons = [[(f"✅ {event.title}", f"event_register:{event.id}")] for event in events]
    await reply(services, update, "events.register_prompt", lang, buttons=buttons)


async def handle_create_event(update: CommandUpdate, services) -> None:
    """
    /create_event - start the event creation dialog.

    In a group the caller must be an admin of that group and the dialog
    continues in the private chat; in a private chat only bot admins may
    create events.
    """
    lang = await user_language(services, update)
    chat_id = update.chat_id if update.is_group else None
    await services.auth.require_action(update.user_id, "create_event", chat_id=chat_id)

    data = {"language": lang}
    if update.is_group:
        data["group_chat_id"] = update.chat_id

    async def ask_title(_: ConversationContext) -> None:
        await services.gateway.send_text(update.user_id, services.translator.t("events.create_title", lang))

    await services.runner.start(update.user_id, EVENT_CREATION, data=data, effects=[ask_title])

    if update.is_group:
        await reply(services, update, "events.continue_in_private", lang)
    logger.info(f"User {update.user_id} started event creation")


# ============================================================================
# CALLBACKS
# ============================================================================

async def handle_calendar_callback(update: ButtonPressUpdate, payload: CallbackData, services) -> None:
    """calendar:<calendar> | calendar:upcoming | calendar:event:<id> | calendar:back"""
    lang = await user_language(services, update)
    t = services.translator.t
    action = payload.action

    if action == "back":
        await _show(update, services, t("events.list_title", lang), calendar_menu(services, lang))
        return

    if action == "event":
        await show_event_details(update, services, _event_id(payload.arg), lang)
        return

    if action not in CALENDARS and action != "upcoming":
        logger.warning(f"Unknown calendar '{action}' from user {update.user_id}")
        return

    events = await services.events.list_upcoming(limit=EVENT_LIST_LIMIT)
    text = t(f"events.{action}.title", lang)
    if action in CALENDARS:
        text = f"{text}\n\n{t(f'events.{action}.description', lang)}"
    if not events:
        text = f"{text}\n\n{t('events.no_events', lang)}"

    await _show(update, services, text, event_list_buttons(services, events, lang))


async def show_event_details(update: ButtonPressUpdate, services, event_id: int, lang: str) -> None:
    t = services.translator.t
    event = await services.events.get(event_id)
    current = await services.events.participant_count(event.id)

    text = t(
        "events.event_details", lang,
        title=event.title,
        date=format_event_date(event),
        location=event.location or t("events.tbd", lang),
        current=current,
        max=event.max_participants if event.max_participants is not None else "∞",
        description=event.description or t("events.no_description", lang),
    )
    buttons = [
        [
            (t("buttons.events.register", lang), f"event_register:{event.id}"),
            (t("buttons.events.unregister", lang), f"event_unregister:{event.id}"),
        ],
        [(t("buttons.navigation.back", lang), "calendar:back")],
    ]
    await _show(update, services, text, buttons)


async def handle_event_register(update: ButtonPressUpdate, payload: CallbackData, services) -> None:
    """event_register:<id>"""
    lang = await user_language(services, update)
    event_id = _event_id(payload.action)

    user = await services.users.find_by_telegram_id(update.user_id)
    if user is None:
        await reply(services, update, "profile.not_registered", lang)
        return

    event = await services.events.get(event_id)
    if await services.events.is_registered(event.id, user.id):
        await reply(services, update, "events.already_registered", lang, event_name=event.title)
        return

    if event.is_full(await services.events.participant_count(event.id)):
        await reply(services, update, "events.event_full", lang, event_name=event.title)
        return

    participant = await services.events.add_participant(event.id, user.id)
    if participant is None:
        await reply(services, update, "events.already_registered", lang, event_name=event.title)
        return

    await reply(services, update, "events.register_success", lang, event_name=event.title)
    logger.info(f"User {update.user_id} registered for event {event.id}")


async def handle_event_unregister(update: ButtonPressUpdate, payload: CallbackData, services) -> None:
    """event_unregister:<id>"""
    lang = await user_language(services, update)
    event_id = _event_id(payload.action)

    user = await services.users.find_by_telegram_id(update.user_id)
    if user is None:
        await reply(services, update, "profile.not_registered", lang)
        return

    event = await services.events.get(event_id)
    if not await services.events.remove_participant(event.id, user.id):
        await reply(services, update, "events.not_registered", lang, event_name=event.title)
        return

    await reply(services, update, "events.unregister_success", lang, event_name=event.title)
    logger.info(f"User {update.user_id} unregistered from event {event.id}")


# ============================================================================
# EVENT CREATION STEPS
# ============================================================================

def _lang(ctx: ConversationContext, services) -> str:
    return ctx.get_str("language") or services.translator.default_language


def _prompt(update: FreeTextUpdate, services, key: str, lang: str, **params):
    async def send(_: ConversationContext) -> None:
        await services.gateway.send_text(update.chat_id, services.translator.t(key, lang, **params))
    return send


async def handle_title_input(update: FreeTextUpdate, ctx: ConversationContext, value: str, services) -> None:
    lang = _lang(ctx, services)
    await services.runner.advance(
        update.user_id, "description_input",
        data={"title": value},
        effects=[_prompt(update, services, "events.ask_description", lang)],
    )


async def handle_description_input(update: FreeTextUpdate, ctx: ConversationContext, value: str, services) -> None:
    lang = _lang(ctx, services)
    await services.runner.advance(
        update.user_id, "date_input",
        data={"description": value} if value else None,
        effects=[_prompt(update, services, "events.ask_date", lang)],
    )


async def handle_date_input(update: FreeTextUpdate, ctx: ConversationContext, value: str, services) -> None:
    lang = _lang(ctx, services)
    await services.runner.advance(
        update.user_id, "time_input",
        data={"date": value},
        effects=[_prompt(update, services, "events.ask_time", lang)],
    )


async def handle_time_input(update: FreeTextUpdate, ctx: ConversationContext, value: str, services) -> None:
    lang = _lang(ctx, services)
    await services.runner.advance(
        update.user_id, "location_input",
        data={"time": value},
        effects=[_prompt(update, services, "events.ask_location", lang)],
    )


async def handle_location_input(update: FreeTextUpdate, ctx: ConversationContext, value: str, services) -> None:
    lang = _lang(ctx, services)
    t = services.translator.t

    async def confirm(current: ConversationContext) -> None:
        await services.gateway.send_text(update.chat_id, t(
            "events.confirm_summary", lang,
            title=current.get_str("title"),
            date=current.get_str("date"),
            time=current.get_str("time"),
            location=current.get_str("location"),
            description=current.get_str("description") or t("events.no_description", lang),
        ))

    await services.runner.advance(
        update.user_id, "confirmation", data={"location": value}, effects=[confirm]
    )


async def handle_confirmation(update: FreeTextUpdate, ctx: ConversationContext, value: str, services) -> None:
    lang = _lang(ctx, services)

    if value == "cancel":
        await services.runner.advance(update.user_id, "cancel")
        await services.runner.complete(
            update.user_id,
            effects=[_prompt(update, services, "events.creation_cancelled", lang)],
        )
        return

    ctx.require_data(["title", "date", "time", "location"])
    await services.runner.advance(update.user_id, "create")

    async def create_event(final: ConversationContext) -> None:
        event_date = datetime.strptime(
            f"{final.get_str('date')} {final.get_str('time')}", "%Y-%m-%d %H:%M"
        ).replace(tzinfo=timezone.utc)

        creator = await services.users.find_by_telegram_id(update.user_id)
        group_id = None
        group_chat_id = final.get_int("group_chat_id")
        if group_chat_id is not None:
            group = await services.groups.find_by_telegram_id(group_chat_id)
            if group is None:
                raise RecordNotFoundError(
                    message=f"Group {group_chat_id} not found",
                    record_type="group",
                    record_id=group_chat_id,
                )
            group_id = group.id

        event = await services.events.create(CreateEventRequest(
            title=final.get_str("title"),
            description=final.get_str("description"),
            event_date=event_date,
            location=final.get_str("location"),
            created_by=creator.id if creator else None,
            group_id=group_id,
        ))
        await services.gateway.send_text(
            update.chat_id, services.translator.t("events.created", lang, title=event.title)
        )

    await services.runner.complete(update.user_id, effects=[create_event])
