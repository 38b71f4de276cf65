"""Onboarding: /start, language and location buttons, profile commands"""
import logging
from typing import Optional

from src.exceptions import ValidationError
from src.handlers.common import language_buttons, reply, user_language
from src.models.context import ConversationContext
from src.models.update import ButtonPressUpdate, CallbackData, CommandUpdate, FreeTextUpdate
from src.models.user import CreateUserRequest, UpdateUserRequest
from src.state.scenarios import ONBOARDING
from src.validators import validate

logger = logging.getLogger(__name__)

PREFERENCE_MARKER = "pref"


def location_buttons(services, lang: str):
    t = services.translator.t
    return [
        [
            (t("buttons.location.moscow", lang), "location:Moscow"),
            (t("buttons.location.saint_petersburg", lang), "location:Saint Petersburg"),
        ],
        [(t("buttons.location.skip", lang), "location:skip")],
    ]


async def handle_start(update: CommandUpdate, services) -> None:
    """
    /start - greet a returning user or begin onboarding.

    New users get a row straight away (language from their Telegram client)
    and are taken to the language selection step.
    """
    translator = services.translator

    if not update.is_private:
        await reply(services, update, "errors.invalid_command", translator.resolve_language(update.language_code))
        return

    user = await services.users.find_by_telegram_id(update.user_id)
    ctx = await services.store.load(update.user_id)
    onboarding_in_progress = ctx is not None and ctx.in_scenario(ONBOARDING)

    if user is not None and not onboarding_in_progress:
        lang = translator.user_language(user)
        await reply(
            services, update, "onboarding.returning_user", lang,
            name=user.first_name or user.username or "there",
        )
        logger.info(f"Existing user {update.user_id} started bot")
        return

    if user is None:
        user = await services.users.create(CreateUserRequest(
            telegram_id=update.user_id,
            username=update.username,
            first_name=update.first_name,
            last_name=update.last_name,
            language_code=translator.resolve_language(update.language_code),
        ))
        logger.info(f"New user {update.user_id} starting onboarding")

    lang = translator.user_language(user)

    async def show_language_selection(_: ConversationContext) -> None:
        text = f"{translator.t('onboarding.new_user_greeting', lang)}\n\n{translator.t('onboarding.choose_language', lang)}"
        await services.gateway.send_keyboard(update.chat_id, text, language_buttons(services, "lang:"))

    await services.runner.start(update.user_id, ONBOARDING, effects=[show_language_selection])


async def handle_language_callback(update: ButtonPressUpdate, payload: CallbackData, services) -> None:
    """lang:<code> during onboarding, lang:<code>:pref from /language"""
    language_code = payload.action

    if payload.arg == PREFERENCE_MARKER:
        await _change_language_preference(update, language_code, services)
        return

    ctx = await services.store.load(update.user_id)
    if ctx is None or not ctx.at(ONBOARDING, "language_selection"):
        logger.warning(
            f"Stale language button from user {update.user_id} "
            f"(state: {ctx.current_state if ctx else 'none'})"
        )
        return

    step = services.registry.get_step(ONBOARDING, "language_selection")
    validate(step.validation, language_code, field="language")

    async def save_language(_: ConversationContext) -> None:
        await services.users.update(update.user_id, UpdateUserRequest(language_code=language_code))

    async def ask_for_name(_: ConversationContext) -> None:
        t = services.translator.t
        await services.gateway.send_text(update.chat_id, t("onboarding.language_selected", language_code))

        text = t("onboarding.ask_name", language_code)
        if update.first_name:
            text = f"{text}\n\n{t('onboarding.name_suggestion', language_code, name=update.first_name)}"
        await services.gateway.send_text(update.chat_id, text)

    await services.runner.advance(
        update.user_id, "name_input", data={"language": language_code}, effects=[save_language, ask_for_name]
    )


async def _change_language_preference(update: ButtonPressUpdate, language_code: str, services) -> None:
    if not services.translator.is_supported(language_code):
        raise ValidationError(
            f"Unsupported language: {language_code}",
            field="language",
            value=language_code,
            error_key="onboarding.invalid_language",
        )

    user = await services.users.find_by_telegram_id(update.user_id)
    if user is None:
        await reply(services, update, "profile.not_registered", language_code)
        return

    await services.users.update(update.user_id, UpdateUserRequest(language_code=language_code))
    await reply(services, update, "onboarding.language_changed", language_code)
    logger.info(f"User {update.user_id} changed language to {language_code}")


async def handle_name_input(update: FreeTextUpdate, ctx: ConversationContext, value: str, services) -> None:
    lang = ctx.get_str("language") or services.translator.default_language

    async def ask_for_location(_: ConversationContext) -> None:
        await services.gateway.send_keyboard(
            update.chat_id,
            services.translator.t("onboarding.ask_location", lang),
            location_buttons(services, lang),
        )

    await services.runner.advance(
        update.user_id, "location_input", data={"name": value}, effects=[ask_for_location]
    )


async def handle_location_input(update: FreeTextUpdate, ctx: ConversationContext, value: str, services) -> None:
    # Empty value means the user skipped the step
    await complete_onboarding(update, services, value or None)


async def handle_location_callback(update: ButtonPressUpdate, payload: CallbackData, services) -> None:
    """location:<city> or location:skip"""
    ctx = await services.store.load(update.user_id)
    if ctx is None or not ctx.at(ONBOARDING, "location_input"):
        logger.warning(
            f"Stale location button from user {update.user_id} "
            f"(state: {ctx.current_state if ctx else 'none'})"
        )
        return

    location: Optional[str] = None
    if payload.action != "skip":
        step = services.registry.get_step(ONBOARDING, "location_input")
        validate(step.validation, payload.action, skippable=True, field="location")
        location = payload.action

    await complete_onboarding(update, services, location)


async def complete_onboarding(update, services, location: Optional[str]) -> None:
    """
    Finish onboarding: the profile is written from the final context after
    the context itself has been removed.
    """
    data = {"location": location} if location else None
    await services.runner.advance(update.user_id, "welcome", data=data)

    async def save_profile(final: ConversationContext) -> None:
        await services.users.update(update.user_id, UpdateUserRequest(
            first_name=final.get_str("name"),
            location=final.get_str("location"),
            language_code=final.get_str("language"),
        ))

    async def announce(final: ConversationContext) -> None:
        lang = final.get_str("language") or services.translator.default_language
        await services.gateway.send_text(update.chat_id, services.translator.t("onboarding.setup_complete", lang))

    await services.runner.complete(update.user_id, effects=[save_profile, announce])
    logger.info(f"User {update.user_id} onboarding completed successfully")


async def handle_language_command(update: CommandUpdate, services) -> None:
    """/language - show the language keyboard"""
    lang = await user_language(services, update)
    if not update.is_private:
        await reply(services, update, "errors.invalid_command", lang)
        return

    ctx = await services.store.load(update.user_id)
    if ctx is not None and ctx.at(ONBOARDING, "language_selection"):
        buttons = language_buttons(services, "lang:")
    else:
        buttons = language_buttons(services, "lang:", f":{PREFERENCE_MARKER}")

    await reply(services, update, "language.choose", lang, buttons=buttons)


async def handle_profile(update: CommandUpdate, services) -> None:
    """/profile - show the stored profile"""
    translator = services.translator
    if not update.is_private:
        await reply(services, update, "errors.invalid_command", translator.resolve_language(update.language_code))
        return

    user = await services.users.find_by_telegram_id(update.user_id)
    if user is None:
        await reply(services, update, "profile.not_registered", translator.resolve_language(update.language_code))
        return

    lang = translator.user_language(user)
    not_set = translator.t("profile.not_set", lang)
    await reply(
        services, update, "profile.text", lang,
        telegram_id=user.telegram_id,
        username=f"@{user.username}" if user.username else not_set,
        name=user.display_name,
        location=user.location or not_set,
        language=user.language_code,
    )
