"""Group models"""
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, Field


class MemberRole(str, Enum):
    MEMBER = "member"
    MODERATOR = "moderator"
    ADMIN = "admin"


class Group(BaseModel):
    """A Telegram group the bot has been added to"""

    id: int
    telegram_id: int
    title: str
    description: Optional[str] = None
    language_code: str = "en"
    settings: dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class GroupMember(BaseModel):
    id: int
    group_id: int
    user_id: int
    role: MemberRole = MemberRole.MEMBER
    joined_at: Optional[datetime] = None


class CreateGroupRequest(BaseModel):
    telegram_id: int
    title: str
    description: Optional[str] = None
    language_code: str = "en"
    settings: dict[str, Any] = Field(default_factory=dict)


class UpdateGroupRequest(BaseModel):
    """Partial update; None leaves the stored value untouched"""

    title: Optional[str] = None
    description: Optional[str] = None
    language_code: Optional[str] = None
    settings: Optional[dict[str, Any]] = None
    is_active: Optional[bool] = None
