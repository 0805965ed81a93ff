from __future__ import annotations

import logging
from typing import Any, List
from uuid import UUID

from sqlmodel import Session, select

from tripcollab.models import CollaborationEvent, TripCollaborator
from tripcollab.schemas import CollaborationEventRead
from tripcollab.services.hub import EventHub, topic

logger = logging.getLogger(__name__)


def member_name(session: Session, trip_id: UUID, user_id: str) -> str:
    """Display name of a trip member, falling back to the user id."""
    member = session.get(TripCollaborator, (trip_id, user_id))
    return member.name if member else user_id


def record_event(
    session: Session,
    trip_id: UUID,
    type: str,
    user_id: str,
    user_name: str | None = None,
    details: str = "",
    payload: dict[str, Any] | None = None,
) -> CollaborationEvent:
    """Add a history entry to the session. Committed together with the change it describes."""
    event = CollaborationEvent(
        trip_id=trip_id,
        type=type,
        user_id=user_id,
        user_name=user_name or member_name(session, trip_id, user_id),
        details=details,
        payload=payload,
    )
    session.add(event)
    return event


async def publish_event(hub: EventHub, event: CollaborationEvent) -> None:
    data = CollaborationEventRead.model_validate(event).model_dump(mode="json")
    await hub.publish(topic("events", event.trip_id), data)
    logger.info(f"Collaboration event {event.type} on trip {event.trip_id} by {event.user_id}")


def list_events(session: Session, trip_id: UUID, limit: int = 50) -> List[CollaborationEvent]:
    statement = (
        select(CollaborationEvent)
        .where(CollaborationEvent.trip_id == trip_id)
        .order_by(CollaborationEvent.created_at.desc())
        .limit(limit)
    )
    return list(session.exec(statement).all())
