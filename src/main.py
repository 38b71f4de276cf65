"""Main entry point for the SwingBuddy bot"""
import asyncio
import logging
import signal
from logging.handlers import RotatingFileHandler

from src.bot import ALLOWED_UPDATES, build_application, register_handlers
from src.cache.redis_client import close_cache, init_cache
from src.config import LoggingConfig, load_settings
from src.db.connection import Database
from src.dispatcher import UpdateDispatcher
from src.exceptions import ConfigurationError
from src.gateway import ChatGateway
from src.scheduler.sweeper import LifecycleSweeper
from src.services.container import init_container

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

logger = logging.getLogger(__name__)


def setup_logging(config: LoggingConfig) -> None:
    """Console logging always; a rotating file when the configured path is writable"""
    logging.basicConfig(format=LOG_FORMAT, level=config.python_level, force=True)

    if config.file_path:
        try:
            handler = RotatingFileHandler(
                config.file_path,
                maxBytes=config.max_file_size,
                backupCount=config.max_files,
                encoding="utf-8",
            )
        except OSError as e:
            logger.warning(f"Log file {config.file_path} not writable, logging to console only: {e}")
        else:
            handler.setFormatter(logging.Formatter(LOG_FORMAT))
            logging.getLogger().addHandler(handler)

    # Library request logs are noisy at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("telegram").setLevel(max(logging.WARNING, config.python_level))


async def main() -> None:
    """Main application entry point"""
    try:
        settings = load_settings()
    except ConfigurationError as e:
        logging.basicConfig(format=LOG_FORMAT, level=logging.INFO)
        logger.error(f"❌ {e.message}")
        raise SystemExit(1)

    setup_logging(settings.logging)

    db = Database.from_settings(settings)
    app = None
    container = None
    dispatcher = None
    sweeper = None

    try:
        logger.info("Initializing database connection pool...")
        await db.init_pool()

        logger.info("Connecting to Redis...")
        cache = await init_cache(
            redis_url=settings.redis.url,
            prefix=settings.redis.prefix,
            default_ttl=settings.redis.ttl_seconds,
        )

        logger.info("Starting Telegram bot...")
        app = build_application(settings)
        container = init_container(settings, db, cache, ChatGateway(app.bot))
        dispatcher = UpdateDispatcher(container)
        register_handlers(app, dispatcher)

        sweeper = LifecycleSweeper.from_container(container)

        await app.initialize()
        await app.start()
        await app.updater.start_polling(allowed_updates=ALLOWED_UPDATES)
        sweeper.start()

        logger.info("Bot is running. Press Ctrl+C to stop.")

        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop.set)
            except NotImplementedError:
                pass
        await stop.wait()
        logger.info("Shutting down...")

    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
    finally:
        if sweeper:
            await sweeper.stop()

        if app:
            if app.updater and app.updater.running:
                await app.updater.stop()
            if dispatcher:
                await dispatcher.drain(settings.bot.shutdown_grace_seconds)
            logger.info("Stopping bot...")
            if app.running:
                await app.stop()
            await app.shutdown()

        if container:
            await container.close()

        await close_cache()

        logger.info("Closing database connection...")
        await db.close_pool()

        logger.info("Shutdown complete")


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
