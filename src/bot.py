"""Telegram application setup and handler registration"""
import logging

from telegram import Update
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    ChatMemberHandler,
    CommandHandler,
    MessageHandler,
    filters,
)

from src.config import Settings

logger = logging.getLogger(__name__)

# Update types we ask Telegram to deliver; chat_member is opt-in
ALLOWED_UPDATES = [
    Update.MESSAGE,
    Update.CALLBACK_QUERY,
    Update.MY_CHAT_MEMBER,
    Update.CHAT_MEMBER,
]


def build_application(settings: Settings) -> Application:
    """Create the application; updates are processed concurrently"""
    app = (
        Application.builder()
        .token(settings.bot.token)
        .concurrent_updates(True)
        .build()
    )
    logger.info("Bot application created")
    return app


def register_handlers(app: Application, dispatcher) -> None:
    """Every supported update goes through the dispatcher"""
    process = dispatcher.process

    app.add_handler(CommandHandler(list(dispatcher.commands), process))
    app.add_handler(CallbackQueryHandler(process))
    app.add_handler(MessageHandler(filters.StatusUpdate.NEW_CHAT_MEMBERS, process))
    # Unknown commands get a reply in private chats
    app.add_handler(MessageHandler(filters.COMMAND, process))
    # Every other message, media included, so group spam screening sees it
    app.add_handler(MessageHandler(~filters.COMMAND & ~filters.StatusUpdate.ALL, process))
    app.add_handler(ChatMemberHandler(process, ChatMemberHandler.ANY_CHAT_MEMBER))

    logger.info(f"Registered {len(dispatcher.commands)} commands and {len(dispatcher.callbacks)} button namespaces")
