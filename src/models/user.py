"""User models"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel


class User(BaseModel):
    """A Telegram user known to the bot"""

    id: int
    telegram_id: int
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    language_code: str = "en"
    location: Optional[str] = None
    is_banned: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        if self.first_name:
            return f"{self.first_name} {self.last_name}" if self.last_name else self.first_name
        if self.username:
            return f"@{self.username}"
        return str(self.telegram_id)


class CreateUserRequest(BaseModel):
    telegram_id: int
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    language_code: str = "en"
    location: Optional[str] = None


class UpdateUserRequest(BaseModel):
    """Partial update; None leaves the stored value untouched"""

    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    language_code: Optional[str] = None
    location: Optional[str] = None
    is_banned: Optional[bool] = None
