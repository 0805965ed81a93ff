"""Shared helpers for reading, versioning and publishing trip documents."""

from __future__ import annotations

from typing import Any, List
from uuid import UUID

from sqlalchemy import update
from sqlmodel import Session, select

from tripcollab.core.clock import utcnow
from tripcollab.core.errors import NotFoundError
from tripcollab.models import Trip, TripCollaborator, TripInvite
from tripcollab.schemas import CollaboratorRead, InviteRead, TripData, TripDocument
from tripcollab.services.hub import EventHub, topic
from tripcollab.services.permissions import permissions_for_role


def parse_trip_id(trip_id: UUID | str) -> UUID:
    if isinstance(trip_id, UUID):
        return trip_id
    try:
        return UUID(str(trip_id))
    except ValueError:
        raise NotFoundError("Trip not found") from None


def get_trip_or_404(session: Session, trip_id: UUID | str) -> Trip:
    trip = session.get(Trip, parse_trip_id(trip_id))
    if not trip:
        raise NotFoundError("Trip not found")
    return trip


def collaborator_to_read(member: TripCollaborator) -> CollaboratorRead:
    return CollaboratorRead(
        user_id=member.user_id,
        email=member.email,
        name=member.name,
        role=member.role,
        permissions=permissions_for_role(member.role),
        joined_at=member.joined_at,
        last_active=member.last_active,
    )


def list_trip_collaborators(session: Session, trip_id: UUID) -> List[CollaboratorRead]:
    members = session.exec(
        select(TripCollaborator)
        .where(TripCollaborator.trip_id == trip_id)
        .order_by(TripCollaborator.joined_at.asc())
    ).all()
    return [collaborator_to_read(member) for member in members]


def build_trip_document(session: Session, trip: Trip) -> TripDocument:
    """Assemble the full document: trip fields, members, derived permissions, invites."""
    collaborators = list_trip_collaborators(session, trip.id)
    invites = session.exec(
        select(TripInvite)
        .where(TripInvite.trip_id == trip.id)
        .order_by(TripInvite.created_at.asc())
    ).all()

    return TripDocument(
        id=trip.id,
        owner_id=trip.owner_id,
        title=trip.title,
        city=trip.city,
        country=trip.country,
        start_date=trip.start_date,
        end_date=trip.end_date,
        is_shared=trip.is_shared,
        version=trip.version,
        created_at=trip.created_at,
        last_modified=trip.last_modified,
        modified_by=trip.modified_by,
        trip_data=TripData.model_validate(trip.trip_data or {}),
        collaborators=collaborators,
        permissions={member.user_id: member.permissions for member in collaborators},
        invites=[InviteRead.model_validate(invite) for invite in invites],
    )


def bump_trip_version(
    session: Session,
    trip: Trip,
    modified_by: str,
    values: dict[str, Any] | None = None,
) -> None:
    """Write ``values`` and stamp the trip metadata in one UPDATE.

    The increment happens in SQL, so concurrent writers never lose a version
    even though their field values are last-write-wins.
    """
    statement = (
        update(Trip)
        .where(Trip.id == trip.id)
        .values(
            **(values or {}),
            version=Trip.version + 1,
            last_modified=utcnow(),
            modified_by=modified_by,
        )
        .execution_options(synchronize_session=False)
    )
    session.exec(statement)


async def publish_trip(hub: EventHub, document: TripDocument) -> None:
    await hub.publish(topic("trip", document.id), document.model_dump(mode="json"))


async def publish_collaborators(hub: EventHub, trip_id: UUID, collaborators: List[CollaboratorRead]) -> None:
    await hub.publish(
        topic("collaborators", trip_id),
        [member.model_dump(mode="json") for member in collaborators],
    )
