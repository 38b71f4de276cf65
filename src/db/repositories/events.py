"""Event and participant repository"""
import logging
from typing import Optional

from src.db.repositories.base import BaseRepository
from src.exceptions import RecordNotFoundError
from src.models.event import (
    CreateEventRequest,
    Event,
    EventParticipant,
    ParticipantStatus,
    UpdateEventRequest,
)

logger = logging.getLogger(__name__)


class EventRepository(BaseRepository):

    async def create(self, request: CreateEventRequest) -> Event:
        row = await self._fetchone(
            """
            INSERT INTO events (title, description, event_date, location, max_participants, created_by, group_id)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            RETURNING *
            """,
            (
                request.title,
                request.description,
                request.event_date,
                request.location,
                request.max_participants,
                request.created_by,
                request.group_id,
            ),
            operation="create_event",
            commit=True,
        )
        event = Event.model_validate(row)
        logger.info(f"Created event {event.id}: {event.title}")
        return event

    async def find_by_id(self, event_id: int) -> Optional[Event]:
        row = await self._fetchone(
            "SELECT * FROM events WHERE id = %s",
            (event_id,),
            operation="find_event",
        )
        return Event.model_validate(row) if row else None

    async def get(self, event_id: int) -> Event:
        """
        Raises:
            RecordNotFoundError: no event with this id
        """
        event = await self.find_by_id(event_id)
        if event is None:
            raise RecordNotFoundError(
                message=f"Event {event_id} not found",
                record_type="event",
                record_id=event_id,
            )
        return event

    async def update(self, event_id: int, request: UpdateEventRequest) -> Event:
        row = await self._fetchone(
            """
            UPDATE events SET
                title = COALESCE(%s, title),
                description = COALESCE(%s, description),
                event_date = COALESCE(%s, event_date),
                location = COALESCE(%s, location),
                max_participants = COALESCE(%s, max_participants),
                is_active = COALESCE(%s, is_active),
                updated_at = NOW()
            WHERE id = %s
            RETURNING *
            """,
            (
                request.title,
                request.description,
                request.event_date,
                request.location,
                request.max_participants,
                request.is_active,
                event_id,
            ),
            operation="update_event",
            commit=True,
        )
        if row is None:
            raise RecordNotFoundError(
                message=f"Event {event_id} not found",
                record_type="event",
                record_id=event_id,
            )
        return Event.model_validate(row)

    async def delete(self, event_id: int) -> bool:
        deleted = await self._execute(
            "DELETE FROM events WHERE id = %s",
            (event_id,),
            operation="delete_event",
        )
        if deleted:
            logger.info(f"Deleted event {event_id}")
        return deleted > 0

    async def list_upcoming(self, limit: int = 10, offset: int = 0) -> list[Event]:
        rows = await self._fetchall(
            """
            SELECT * FROM events
            WHERE is_active = TRUE AND event_date > NOW()
            ORDER BY event_date
            LIMIT %s OFFSET %s
            """,
            (limit, offset),
            operation="list_upcoming_events",
        )
        return [Event.model_validate(row) for row in rows]

    async def list_by_group(self, group_id: int, limit: int = 10) -> list[Event]:
        rows = await self._fetchall(
            """
            SELECT * FROM events
            WHERE group_id = %s AND is_active = TRUE
            ORDER BY event_date
            LIMIT %s
            """,
            (group_id, limit),
            operation="list_group_events",
        )
        return [Event.model_validate(row) for row in rows]

    async def count(self) -> int:
        return await self._count("SELECT COUNT(*) AS count FROM events", operation="count_events")

    # ------------------------------------------------------------------
    # Participants
    # ------------------------------------------------------------------

    async def add_participant(self, event_id: int, user_id: int) -> Optional[EventParticipant]:
        """
        Register ``user_id`` (internal id) for an event.

        Returns:
            The new participant row, or None if already registered
        """
        row = await self._fetchone(
            """
            INSERT INTO event_participants (event_id, user_id, status)
            VALUES (%s, %s, %s)
            ON CONFLICT (event_id, user_id) DO NOTHING
            RETURNING *
            """,
            (event_id, user_id, ParticipantStatus.REGISTERED.value),
            operation="add_participant",
            commit=True,
        )
        return EventParticipant.model_validate(row) if row else None

    async def remove_participant(self, event_id: int, user_id: int) -> bool:
        deleted = await self._execute(
            "DELETE FROM event_participants WHERE event_id = %s AND user_id = %s",
            (event_id, user_id),
            operation="remove_participant",
        )
        return deleted > 0

    async def is_registered(self, event_id: int, user_id: int) -> bool:
        row = await self._fetchone(
            "SELECT 1 AS found FROM event_participants WHERE event_id = %s AND user_id = %s",
            (event_id, user_id),
            operation="is_registered",
        )
        return row is not None

    async def participant_count(self, event_id: int) -> int:
        return await self._count(
            "SELECT COUNT(*) AS count FROM event_participants WHERE event_id = %s AND status = %s",
            (event_id, ParticipantStatus.REGISTERED.value),
            operation="participant_count",
        )

    async def get_participants(self, event_id: int) -> list[EventParticipant]:
        rows = await self._fetchall(
            "SELECT * FROM event_participants WHERE event_id = %s ORDER BY registered_at",
            (event_id,),
            operation="get_participants",
        )
        return [EventParticipant.model_validate(row) for row in rows]

    async def user_events(self, user_id: int, limit: int = 10) -> list[Event]:
        """Events created by the user (internal id), newest first"""
        rows = await self._fetchall(
            "SELECT * FROM events WHERE created_by = %s ORDER BY event_date DESC LIMIT %s",
            (user_id, limit),
            operation="user_events",
        )
        return [Event.model_validate(row) for row in rows]

    async def user_registered_events(self, user_id: int, limit: int = 10) -> list[Event]:
        """Upcoming events the user is registered for"""
        rows = await self._fetchall(
            """
            SELECT e.* FROM events e
            JOIN event_participants p ON p.event_id = e.id
            WHERE p.user_id = %s AND e.event_date > NOW()
            ORDER BY e.event_date
            LIMIT %s
            """,
            (user_id, limit),
            operation="user_registered_events",
        )
        return [Event.model_validate(row) for row in rows]
