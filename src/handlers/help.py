"""/help"""
from src.handlers.common import reply, user_language
from src.models.update import CommandUpdate


async def handle_help(update: CommandUpdate, services) -> None:
    await reply(services, update, "help.text", await user_language(services, update))
