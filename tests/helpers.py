"""Test doubles and update builders shared by unit and integration tests"""
import fnmatch
import math
from datetime import datetime, timezone
from typing import Optional

import redis.exceptions

from src.models.group import CreateGroupRequest, Group, GroupMember, MemberRole, UpdateGroupRequest
from src.models.update import (
    ButtonPressUpdate,
    ChatKind,
    CommandUpdate,
    FreeTextUpdate,
    MemberJoinedUpdate,
    MemberStatusUpdate,
)
from src.models.user import CreateUserRequest, UpdateUserRequest, User

TEST_PREFIX = "test:"
ADMIN_ID = 1
SECOND_ADMIN_ID = 2
USER_ID = 1001
GROUP_CHAT_ID = -100500
BOT_ID = 999


# ============================================================================
# Redis
# ============================================================================

class FakeRedis:
    """
    In-memory stand-in for redis.asyncio.Redis (decode_responses=True).

    Keeps a virtual clock so TTL behaviour can be tested without sleeping:
    ``advance(seconds)`` moves time forward and expires keys.
    """

    def __init__(self):
        self.data: dict[str, str] = {}
        self.zsets: dict[str, dict[str, float]] = {}
        self.deadlines: dict[str, float] = {}
        self.now = 0.0
        self.fail = False
        self.calls: list[str] = []

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def _check(self, op: str) -> None:
        self.calls.append(op)
        if self.fail:
            raise redis.exceptions.ConnectionError("Connection refused")

    def _alive(self, key: str) -> bool:
        deadline = self.deadlines.get(key)
        if deadline is not None and deadline <= self.now:
            self.data.pop(key, None)
            self.zsets.pop(key, None)
            self.deadlines.pop(key, None)
        return key in self.data or key in self.zsets

    async def ping(self):
        self._check("ping")
        return True

    async def aclose(self):
        pass

    async def get(self, key):
        self._check("get")
        return self.data[key] if self._alive(key) else None

    async def set(self, key, value):
        self._check("set")
        self.data[key] = str(value)
        self.deadlines.pop(key, None)
        return True

    async def setex(self, key, ttl, value):
        self._check("setex")
        self.data[key] = str(value)
        self.deadlines[key] = self.now + ttl
        return True

    async def delete(self, *keys):
        self._check("delete")
        removed = 0
        for key in keys:
            if self._alive(key):
                self.data.pop(key, None)
                self.zsets.pop(key, None)
                self.deadlines.pop(key, None)
                removed += 1
        return removed

    async def exists(self, key):
        self._check("exists")
        return int(self._alive(key))

    async def expire(self, key, ttl):
        self._check("expire")
        if not self._alive(key):
            return False
        self.deadlines[key] = self.now + ttl
        return True

    async def ttl(self, key):
        self._check("ttl")
        if not self._alive(key):
            return -2
        deadline = self.deadlines.get(key)
        if deadline is None:
            return -1
        return int(math.ceil(deadline - self.now))

    async def scan_iter(self, match=None):
        self._check("scan")
        for key in [*self.data, *self.zsets]:
            if self._alive(key) and (match is None or fnmatch.fnmatchcase(key, match)):
                yield key

    def pipeline(self, transaction=True):
        return FakePipeline(self)

    async def zadd(self, key, mapping):
        self._check("zadd")
        self._alive(key)
        zset = self.zsets.setdefault(key, {})
        added = len(set(mapping) - set(zset))
        zset.update(mapping)
        return added

    async def zrem(self, key, *members):
        self._check("zrem")
        zset = self.zsets.get(key, {}) if self._alive(key) else {}
        return sum(1 for member in members if zset.pop(member, None) is not None)

    async def zremrangebyscore(self, key, low, high):
        self._check("zremrangebyscore")
        if not self._alive(key):
            return 0
        zset = self.zsets.get(key, {})
        doomed = [m for m, score in zset.items() if float(low) <= score <= float(high)]
        for member in doomed:
            del zset[member]
        return len(doomed)

    async def zcard(self, key):
        self._check("zcard")
        return len(self.zsets.get(key, {})) if self._alive(key) else 0

    async def zrange(self, key, start, end, withscores=False):
        self._check("zrange")
        if not self._alive(key):
            return []
        ordered = sorted(self.zsets.get(key, {}).items(), key=lambda item: item[1])
        ordered = ordered[start:None if end == -1 else end + 1]
        return ordered if withscores else [member for member, _ in ordered]


class FakePipeline:
    """Queues commands and runs them against the FakeRedis on execute"""

    def __init__(self, client):
        self._client = client
        self._commands = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self._commands.clear()

    def __getattr__(self, name):
        def queue(*args, **kwargs):
            self._commands.append((name, args, kwargs))
            return self
        return queue

    async def execute(self):
        return [await getattr(self._client, name)(*args, **kwargs) for name, args, kwargs in self._commands]


# ============================================================================
# Repositories
# ============================================================================

class InMemoryUserRepository:
    """The subset of UserRepository the handlers use, backed by a dict"""

    def __init__(self):
        self.rows: dict[int, User] = {}
        self._next_id = 1

    async def create(self, request: CreateUserRequest) -> User:
        if request.telegram_id in self.rows:
            return self.rows[request.telegram_id]
        user = User(id=self._next_id, **request.model_dump())
        self._next_id += 1
        self.rows[user.telegram_id] = user
        return user

    async def find_by_telegram_id(self, telegram_id: int) -> Optional[User]:
        return self.rows.get(telegram_id)

    async def update(self, telegram_id: int, request: UpdateUserRequest) -> User:
        user = self.rows[telegram_id]
        changes = {k: v for k, v in request.model_dump().items() if v is not None}
        self.rows[telegram_id] = user.model_copy(update=changes)
        return self.rows[telegram_id]

    async def set_ban(self, telegram_id: int, banned: bool) -> User:
        return await self.update(telegram_id, UpdateUserRequest(is_banned=banned))

    async def search_by_username_prefix(self, prefix: str, limit: int = 10) -> list[User]:
        prefix = prefix.lstrip("@").lower()
        return [
            user for user in self.rows.values()
            if user.username and user.username.lower().startswith(prefix)
        ][:limit]


class InMemoryGroupRepository:
    """The subset of GroupRepository the handlers use, backed by a dict"""

    def __init__(self):
        self.rows: dict[int, Group] = {}
        self.members: dict[tuple[int, int], GroupMember] = {}
        self._next_id = 1

    async def create(self, request: CreateGroupRequest) -> Group:
        existing = self.rows.get(request.telegram_id)
        if existing is not None:
            self.rows[request.telegram_id] = existing.model_copy(update={"title": request.title, "is_active": True})
            return self.rows[request.telegram_id]
        group = Group(id=self._next_id, **request.model_dump())
        self._next_id += 1
        self.rows[group.telegram_id] = group
        return group

    async def find_by_telegram_id(self, telegram_id: int) -> Optional[Group]:
        return self.rows.get(telegram_id)

    async def update(self, telegram_id: int, request: UpdateGroupRequest) -> Group:
        changes = {k: v for k, v in request.model_dump().items() if v is not None}
        self.rows[telegram_id] = self.rows[telegram_id].model_copy(update=changes)
        return self.rows[telegram_id]

    async def set_language(self, telegram_id: int, language_code: str) -> Group:
        return await self.update(telegram_id, UpdateGroupRequest(language_code=language_code))

    async def deactivate(self, telegram_id: int) -> bool:
        if telegram_id not in self.rows:
            return False
        await self.update(telegram_id, UpdateGroupRequest(is_active=False))
        return True

    async def add_member(self, group_id: int, user_id: int, role: MemberRole = MemberRole.MEMBER) -> GroupMember:
        member = GroupMember(id=len(self.members) + 1, group_id=group_id, user_id=user_id, role=role)
        self.members[(group_id, user_id)] = member
        return member

    async def active_groups(self, limit: int = 50) -> list[Group]:
        return [group for group in self.rows.values() if group.is_active][:limit]


# ============================================================================
# Gateway
# ============================================================================

def sent_texts(gateway) -> list[str]:
    """Texts passed to send_text / send_keyboard / edit_text, in call order per method"""
    texts = [call.args[1] for call in gateway.send_text.await_args_list]
    texts += [call.args[1] for call in gateway.send_keyboard.await_args_list]
    texts += [call.args[2] for call in gateway.edit_text.await_args_list]
    return texts


# ============================================================================
# Update Builders
# ============================================================================


def private(user_id: int = USER_ID) -> dict:
    return {"user_id": user_id, "chat_id": user_id, "chat_kind": ChatKind.PRIVATE, "first_name": "Anna", "language_code": "en"}


def group(user_id: int = USER_ID, chat_id: int = GROUP_CHAT_ID) -> dict:
    return {"user_id": user_id, "chat_id": chat_id, "chat_kind": ChatKind.GROUP, "first_name": "Anna"}


def command(name: str, args: str = "", **base) -> CommandUpdate:
    base = base or private()
    return CommandUpdate(name=name, args=args, message_id=1, **base)


def text(value: str, **base) -> FreeTextUpdate:
    base = base or private()
    return FreeTextUpdate(text=value, message_id=2, **base)


_callback_ids = iter(range(1, 1_000_000))


def button(data: str, callback_id: Optional[str] = None, message_id: Optional[int] = 50, **base) -> ButtonPressUpdate:
    base = base or private()
    return ButtonPressUpdate(
        data=data,
        callback_id=callback_id or f"cb-{next(_callback_ids)}",
        message_id=message_id,
        **base,
    )


def joined(user_ids: list[int], **base) -> MemberJoinedUpdate:
    base = base or group()
    return MemberJoinedUpdate(joined_user_id=user_ids[0], joined_user_ids=user_ids, message_id=3, **base)


def bot_status(new_status: str, old_status: str = "left", user_id: int = ADMIN_ID,
               chat_id: int = GROUP_CHAT_ID) -> MemberStatusUpdate:
    return MemberStatusUpdate(
        user_id=user_id,
        chat_id=chat_id,
        chat_kind=ChatKind.GROUP,
        member_user_id=BOT_ID,
        old_status=old_status,
        new_status=new_status,
        is_self=True,
        chat_title="Lindy Hop Moscow",
    )


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)
