"""
Service Container - Dependency Injection Container

Simple DI container for managing service instances and their dependencies.
Uses lazy loading to only instantiate services when first accessed.
"""

from dataclasses import dataclass, field
from typing import Optional
import logging

from src.cache.redis_client import RedisCache
from src.config import Settings
from src.db.connection import Database
from src.gateway import ChatGateway
from src.utils.locks import KeyedLock

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """
    Simple dependency injection container for services.

    Services and repositories are lazy-loaded on first access via properties.
    Infrastructure dependencies (settings, db, cache, gateway) are injected.
    """

    # Infrastructure dependencies (injected)
    settings: Settings
    db: Database
    cache: RedisCache
    gateway: ChatGateway

    # Per-user ordering for handlers that mutate conversation state
    locks: KeyedLock = field(default_factory=KeyedLock)

    # Services (lazy-loaded via properties)
    _translator: Optional[object] = field(default=None, init=False, repr=False)
    _registry: Optional[object] = field(default=None, init=False, repr=False)
    _store: Optional[object] = field(default=None, init=False, repr=False)
    _runner: Optional[object] = field(default=None, init=False, repr=False)
    _antispam: Optional[object] = field(default=None, init=False, repr=False)
    _auth: Optional[object] = field(default=None, init=False, repr=False)
    _rate_limiter: Optional[object] = field(default=None, init=False, repr=False)

    # Repositories (lazy-loaded via properties)
    _users: Optional[object] = field(default=None, init=False, repr=False)
    _groups: Optional[object] = field(default=None, init=False, repr=False)
    _events: Optional[object] = field(default=None, init=False, repr=False)
    _admin: Optional[object] = field(default=None, init=False, repr=False)

    @property
    def translator(self):
        """Get Translator instance (lazy-loaded)"""
        if self._translator is None:
            from src.i18n.translations import Translator
            self._translator = Translator(
                default_language=self.settings.i18n.default_language,
                supported_languages=self.settings.i18n.supported_languages,
            )
            logger.debug("Translator instantiated")
        return self._translator

    @property
    def registry(self):
        """Get the frozen ScenarioRegistry with the built-in scenarios"""
        if self._registry is None:
            from src.state.scenarios import build_default_registry
            self._registry = build_default_registry(self.settings.i18n.supported_languages)
            logger.debug("ScenarioRegistry instantiated")
        return self._registry

    @property
    def store(self):
        """Get ContextStore instance (lazy-loaded)"""
        if self._store is None:
            from src.state.store import ContextStore
            self._store = ContextStore(self.cache, default_ttl=self.settings.redis.ttl_seconds)
            logger.debug("ContextStore instantiated")
        return self._store

    @property
    def runner(self):
        """Get ScenarioRunner instance (lazy-loaded)"""
        if self._runner is None:
            from src.state.runner import ScenarioRunner
            self._runner = ScenarioRunner(self.registry, self.store)
            logger.debug("ScenarioRunner instantiated")
        return self._runner

    @property
    def antispam(self):
        """Get AntiSpamChecker instance (lazy-loaded)"""
        if self._antispam is None:
            from src.services.antispam import AntiSpamChecker
            self._antispam = AntiSpamChecker.from_settings(self.settings, self.cache)
            logger.debug("AntiSpamChecker instantiated")
        return self._antispam

    @property
    def auth(self):
        """Get AuthService instance (lazy-loaded)"""
        if self._auth is None:
            from src.services.auth import AuthService
            self._auth = AuthService(self.settings.bot.admin_ids, self.gateway)
            logger.debug("AuthService instantiated")
        return self._auth

    @property
    def rate_limiter(self):
        """Get RateLimiter instance (lazy-loaded)"""
        if self._rate_limiter is None:
            from src.services.rate_limit import RateLimiter
            self._rate_limiter = RateLimiter(
                self.cache,
                max_requests=self.settings.rate_limit.max_requests,
                window_seconds=self.settings.rate_limit.window_seconds,
            )
            logger.debug("RateLimiter instantiated")
        return self._rate_limiter

    @property
    def users(self):
        if self._users is None:
            from src.db.repositories.users import UserRepository
            self._users = UserRepository(self.db)
        return self._users

    @property
    def groups(self):
        if self._groups is None:
            from src.db.repositories.groups import GroupRepository
            self._groups = GroupRepository(self.db)
        return self._groups

    @property
    def events(self):
        if self._events is None:
            from src.db.repositories.events import EventRepository
            self._events = EventRepository(self.db)
        return self._events

    @property
    def admin(self):
        if self._admin is None:
            from src.db.repositories.admin import AdminRepository
            self._admin = AdminRepository(self.db, self.cache)
        return self._admin

    async def close(self) -> None:
        """Release HTTP resources held by services"""
        if self._antispam is not None:
            await self._antispam.close()


# Global container instance (initialized in main.py)
_container: Optional[ServiceContainer] = None


def get_container() -> ServiceContainer:
    """
    Get the global service container.

    Raises:
        RuntimeError: If container not initialized (call init_container first)
    """
    if _container is None:
        raise RuntimeError(
            "Service container not initialized. "
            "Call init_container() in main.py before using services."
        )
    return _container


def init_container(
    settings: Settings,
    db: Database,
    cache: RedisCache,
    gateway: ChatGateway
) -> ServiceContainer:
    """
    Initialize the global service container.

    Should be called once in main.py after infrastructure setup.
    """
    global _container

    _container = ServiceContainer(settings=settings, db=db, cache=cache, gateway=gateway)

    logger.info("Service container initialized")
    return _container
