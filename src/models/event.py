"""Event models"""
from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel


class ParticipantStatus(str, Enum):
    REGISTERED = "registered"
    WAITLISTED = "waitlisted"
    CANCELLED = "cancelled"
    ATTENDED = "attended"


class Event(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    event_date: datetime
    location: Optional[str] = None
    max_participants: Optional[int] = None
    google_calendar_id: Optional[str] = None
    created_by: Optional[int] = None
    group_id: Optional[int] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def is_full(self, participant_count: int) -> bool:
        return self.max_participants is not None and participant_count >= self.max_participants


class EventParticipant(BaseModel):
    id: int
    event_id: int
    user_id: int
    status: ParticipantStatus = ParticipantStatus.REGISTERED
    registered_at: Optional[datetime] = None


class CreateEventRequest(BaseModel):
    title: str
    description: Optional[str] = None
    event_date: datetime
    location: Optional[str] = None
    max_participants: Optional[int] = None
    created_by: Optional[int] = None
    group_id: Optional[int] = None


class UpdateEventRequest(BaseModel):
    """Partial update; None leaves the stored value untouched"""

    title: Optional[str] = None
    description: Optional[str] = None
    event_date: Optional[datetime] = None
    location: Optional[str] = None
    max_participants: Optional[int] = None
    is_active: Optional[bool] = None
