"""Admin settings, persisted user state and CAS log models"""
from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel, Field


class AdminSetting(BaseModel):
    id: int
    key: str
    value: Any
    updated_by: Optional[int] = None
    updated_at: Optional[datetime] = None


class UserState(BaseModel):
    """Durable copy of a conversation position, keyed by Telegram user id"""

    user_id: int
    scenario: Optional[str] = None
    step: Optional[str] = None
    data: dict[str, Any] = Field(default_factory=dict)
    expires_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CasCheck(BaseModel):
    """Anti-spam verdict persisted for auditing"""

    id: int
    user_id: Optional[int] = None
    telegram_id: int
    is_banned: bool
    ban_reason: Optional[str] = None
    checked_at: Optional[datetime] = None


class SystemStats(BaseModel):
    total_users: int = 0
    banned_users: int = 0
    total_groups: int = 0
    active_groups: int = 0
    total_events: int = 0
    upcoming_events: int = 0
    cas_checks_today: int = 0
    cas_bans_total: int = 0
