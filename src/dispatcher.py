"""
Update dispatch

Turns every raw Telegram update into one of our update variants and runs it
through the pipeline:
1. Group anti-spam screening (fail-open)
2. Button acknowledgement, exactly once per callback id
3. Rate limiting of private traffic
4. Routing to command, button, free-text and membership handlers

Handlers that change conversation state run under a per-user lock, so one
user's updates are applied in order while different users proceed in parallel.
"""

import asyncio
import logging
from collections import deque
from typing import Awaitable, Callable, Optional

from telegram import Update as TelegramUpdate

from src.exceptions import (
    InvalidStateTransition,
    RateLimitExceededError,
    SwingBuddyError,
    TransientError,
    ValidationError,
)
from src.handlers import admin, events, group_setup, messages, register_step_handlers, start
from src.handlers.help import handle_help
from src.handlers.common import group_language, user_language
from src.models.update import (
    ButtonPressUpdate,
    CommandUpdate,
    FreeTextUpdate,
    MemberJoinedUpdate,
    MemberStatusUpdate,
    Update,
    classify_update,
)
from src.validators import parse_callback_data, validate_callback

logger = logging.getLogger(__name__)

ACK_MEMORY_SIZE = 1024

Handler = Callable[..., Awaitable[None]]


class UpdateDispatcher:
    """
    Entry point for every update the application receives.

    Example:
        dispatcher = UpdateDispatcher(container)
        application.add_handler(TypeHandler(Update, dispatcher.process))
    """

    def __init__(self, services):
        self.services = services
        register_step_handlers(services.runner)

        # name -> (handler, mutates conversation state)
        self.commands: dict[str, tuple[Handler, bool]] = {
            "start": (start.handle_start, True),
            "help": (handle_help, False),
            "events": (events.handle_events, False),
            "register": (events.handle_register, False),
            "create_event": (events.handle_create_event, True),
            "admin": (admin.handle_admin, True),
            "stats": (admin.handle_stats, False),
            "language": (start.handle_language_command, False),
            "profile": (start.handle_profile, False),
        }
        self.callbacks: dict[str, tuple[Handler, bool]] = {
            "lang": (start.handle_language_callback, True),
            "location": (start.handle_location_callback, True),
            "calendar": (events.handle_calendar_callback, False),
            "event_register": (events.handle_event_register, False),
            "event_unregister": (events.handle_event_unregister, False),
            "admin": (admin.handle_admin_callback, True),
            "group_setup": (group_setup.handle_group_setup_callback, True),
        }

        self._acked_order: deque[str] = deque()
        self._acked: set[str] = set()
        self._tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def process(self, tg_update: TelegramUpdate, context=None) -> None:
        """python-telegram-bot callback"""
        update = classify_update(tg_update)
        if update is None:
            return
        await self.dispatch(update)

    async def dispatch(self, update: Update) -> None:
        task = asyncio.current_task()
        if task is not None:
            self._tasks.add(task)
        try:
            await self._dispatch(update)
        except SwingBuddyError as e:
            await self._render_error(update, e)
        except Exception:
            logger.exception(f"Unhandled error for user {update.user_id} ({update.kind})")
        finally:
            if task is not None:
                self._tasks.discard(task)

    async def drain(self, timeout: float) -> int:
        """
        Wait up to ``timeout`` seconds for in-flight updates.

        Returns:
            How many were still running when the timeout expired
        """
        pending = {task for task in self._tasks if task is not asyncio.current_task()}
        if not pending:
            return 0

        logger.info(f"Draining {len(pending)} in-flight updates (up to {timeout}s)")
        _, still_running = await asyncio.wait(pending, timeout=timeout)
        if still_running:
            logger.warning(f"{len(still_running)} updates still running after {timeout}s")
        return len(still_running)

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _dispatch(self, update: Update) -> None:
        services = self.services

        if update.is_group and isinstance(update, (CommandUpdate, FreeTextUpdate)):
            if await messages.screen_group_message(update, services):
                return

        if isinstance(update, ButtonPressUpdate):
            if not await self._acknowledge(update):
                return

        if update.is_private and isinstance(update, (CommandUpdate, FreeTextUpdate, ButtonPressUpdate)):
            await services.rate_limiter.enforce(f"user:{update.user_id}")

        if isinstance(update, CommandUpdate):
            await self._route_command(update)
        elif isinstance(update, ButtonPressUpdate):
            await self._route_button(update)
        elif isinstance(update, FreeTextUpdate):
            if update.is_private:
                await self._run(update, messages.handle_free_text, stateful=True)
        elif isinstance(update, MemberJoinedUpdate):
            await messages.handle_member_joined(update, services)
        elif isinstance(update, MemberStatusUpdate):
            await self._run(update, group_setup.handle_member_status, stateful=True)

    async def _run(self, update: Update, handler: Handler, stateful: bool, *args) -> None:
        if stateful:
            async with self.services.locks.hold(update.user_id):
                await handler(update, *args, self.services)
        else:
            await handler(update, *args, self.services)

    async def _route_command(self, update: CommandUpdate) -> None:
        entry = self.commands.get(update.name)
        if entry is None:
            if update.is_private:
                lang = await user_language(self.services, update)
                await self.services.gateway.send_text(
                    update.chat_id, self.services.translator.t("errors.unknown_command", lang)
                )
            else:
                logger.debug(f"Ignoring unknown command /{update.name} in {update.chat_id}")
            return

        handler, stateful = entry
        logger.debug(f"User {update.user_id} -> /{update.name}")
        await self._run(update, handler, stateful)

    async def _route_button(self, update: ButtonPressUpdate) -> None:
        payload = parse_callback_data(update.data)
        if payload is None:
            logger.warning(f"Malformed callback data from user {update.user_id}: {update.data!r}")
            return

        try:
            validate_callback(payload.namespace, payload.action, payload.args)
        except ValidationError:
            return

        handler, stateful = self.callbacks[payload.namespace]
        logger.debug(f"User {update.user_id} pressed {update.data}")
        await self._run(update, handler, stateful, payload)

    async def _acknowledge(self, update: ButtonPressUpdate) -> bool:
        """
        Answer the callback query once.

        Returns:
            False if this callback id was already seen (redelivery)
        """
        callback_id = update.callback_id
        if callback_id in self._acked:
            logger.debug(f"Callback {callback_id} already acknowledged, skipping")
            return False

        self._acked.add(callback_id)
        self._acked_order.append(callback_id)
        if len(self._acked_order) > ACK_MEMORY_SIZE:
            self._acked.discard(self._acked_order.popleft())

        try:
            await self.services.gateway.answer_button(callback_id)
        except TransientError as e:
            logger.warning(f"Failed to acknowledge callback {callback_id}: {e.message}")
        return True

    # ------------------------------------------------------------------
    # Errors
    # ------------------------------------------------------------------

    async def _language_for(self, update: Update) -> str:
        try:
            if update.is_group:
                return await group_language(self.services, update.chat_id)
            return await user_language(self.services, update)
        except TransientError:
            return self.services.translator.resolve_language(update.language_code)

    async def _render_error(self, update: Update, error: SwingBuddyError) -> None:
        if isinstance(error, InvalidStateTransition):
            logger.info(f"Ignoring stale or invalid transition for user {update.user_id}: {error.message}")
            return
        if isinstance(update, (MemberJoinedUpdate, MemberStatusUpdate)):
            logger.warning(f"{type(error).__name__} while handling {update.kind} in {update.chat_id}: {error.message}")
            return

        translator = self.services.translator
        lang = await self._language_for(update)

        text: Optional[str] = None
        if isinstance(error, ValidationError):
            if error.error_key and translator.has(error.error_key, lang):
                text = translator.t(error.error_key, lang)
            else:
                text = error.user_message
        elif isinstance(error, RateLimitExceededError):
            text = translator.t(error.translation_key, lang, retry_after=error.retry_after or 0)
        else:
            text = translator.t(error.translation_key, lang)

        try:
            await self.services.gateway.send_text(update.chat_id, text)
        except TransientError as e:
            logger.error(f"Could not deliver error reply to {update.chat_id}: {e.message}")
