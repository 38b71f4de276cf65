"""Global test fixtures for SwingBuddy tests"""
from unittest.mock import AsyncMock, MagicMock, Mock

import pytest

from src.cache.redis_client import RedisCache
from src.config import Settings
from src.services.container import ServiceContainer
from src.services.rate_limit import RateLimiter
from src.state.runner import ScenarioRunner
from src.state.scenarios import build_default_registry
from src.state.store import ContextStore
from tests.helpers import (
    ADMIN_ID,
    BOT_ID,
    SECOND_ADMIN_ID,
    TEST_PREFIX,
    FakeRedis,
    InMemoryGroupRepository,
    InMemoryUserRepository,
)


# ============================================================================
# Redis Fixtures
# ============================================================================

@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def cache(fake_redis):
    """RedisCache bound to the in-memory client"""
    return RedisCache(redis_url="redis://fake", prefix=TEST_PREFIX, default_ttl=3600, client=fake_redis)


# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def settings(monkeypatch, tmp_path):
    """Minimal valid settings, isolated from any local config.toml"""
    monkeypatch.setenv("SWINGBUDDY_CONFIG", str(tmp_path / "missing.toml"))
    monkeypatch.chdir(tmp_path)
    return Settings(
        bot={"token": "123:test", "admin_ids": [ADMIN_ID, SECOND_ADMIN_ID]},
        features={"cas_protection": False},
        logging={"file_path": None},
    )


# ============================================================================
# State Fixtures
# ============================================================================

@pytest.fixture
def registry():
    return build_default_registry()


@pytest.fixture
def store(cache):
    return ContextStore(cache, default_ttl=3600)


@pytest.fixture
def runner(registry, store):
    return ScenarioRunner(registry, store)


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def mock_cursor():
    """Mock psycopg cursor with standard query results"""
    cursor = MagicMock()
    cursor.execute = AsyncMock()
    cursor.fetchone = AsyncMock(return_value=None)
    cursor.fetchall = AsyncMock(return_value=[])
    cursor.rowcount = 0
    return cursor


@pytest.fixture
def mock_db(mock_cursor):
    """
    Database whose ``connection()`` yields a connection whose ``cursor()``
    yields ``mock_cursor``
    """
    conn = MagicMock()
    conn.commit = AsyncMock()
    conn.cursor.return_value.__aenter__ = AsyncMock(return_value=mock_cursor)
    conn.cursor.return_value.__aexit__ = AsyncMock(return_value=False)

    db = MagicMock()
    db.connection.return_value.__aenter__ = AsyncMock(return_value=conn)
    db.connection.return_value.__aexit__ = AsyncMock(return_value=False)
    db.conn = conn
    return db


@pytest.fixture
def user_repo():
    return InMemoryUserRepository()


@pytest.fixture
def group_repo():
    return InMemoryGroupRepository()


@pytest.fixture
def event_repo():
    repo = AsyncMock()
    repo.list_upcoming.return_value = []
    repo.find_by_id.return_value = None
    repo.participant_count.return_value = 0
    repo.is_registered.return_value = False
    return repo


@pytest.fixture
def admin_repo():
    repo = AsyncMock()
    repo.create_cas_check.return_value = None
    repo.clean_expired_states.return_value = 0
    repo.cleanup_old_cas_checks.return_value = 0
    return repo


# ============================================================================
# Telegram Fixtures
# ============================================================================

@pytest.fixture
def mock_gateway():
    """ChatGateway double; message ids are handed out in order"""
    gateway = Mock()
    message_ids = iter(range(100, 10_000))
    gateway.send_text = AsyncMock(side_effect=lambda *args, **kwargs: next(message_ids))
    gateway.send_keyboard = AsyncMock(side_effect=lambda *args, **kwargs: next(message_ids))
    gateway.edit_text = AsyncMock()
    gateway.answer_button = AsyncMock()
    gateway.delete_message = AsyncMock(return_value=True)
    gateway.ban_member = AsyncMock(return_value=True)
    gateway.unban_member = AsyncMock(return_value=True)
    gateway.get_member_status = AsyncMock(return_value="member")
    gateway.get_me = AsyncMock(return_value=Mock(id=BOT_ID, username="swingbuddy_bot"))
    gateway.is_bot_admin_in = AsyncMock(return_value=True)
    return gateway


@pytest.fixture
def services(settings, cache, fake_redis, mock_gateway, user_repo, group_repo, event_repo, admin_repo):
    """Service container wired to the fake cache, in-memory repositories and mock gateway"""
    container = ServiceContainer(settings=settings, db=MagicMock(), cache=cache, gateway=mock_gateway)
    # Rate limit windows follow the fake Redis clock
    container._rate_limiter = RateLimiter(
        cache,
        max_requests=settings.rate_limit.max_requests,
        window_seconds=settings.rate_limit.window_seconds,
        clock=lambda: fake_redis.now,
    )
    container._users = user_repo
    container._groups = group_repo
    container._events = event_repo
    container._admin = admin_repo
    return container
