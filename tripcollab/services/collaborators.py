from __future__ import annotations

import logging
from typing import Callable, List
from uuid import UUID

from sqlalchemy import or_
from sqlmodel import Session, select

from tripcollab.core.clock import utcnow
from tripcollab.core.errors import ForbiddenError, InvalidRoleError, NotFoundError
from tripcollab.db import atomic
from tripcollab.models import Trip, TripCollaborator
from tripcollab.schemas import CollaboratorCreate, CollaboratorRead, TripDocument, TripPermissions
from tripcollab.services.documents import (
    build_trip_document,
    bump_trip_version,
    collaborator_to_read,
    get_trip_or_404,
    list_trip_collaborators,
    publish_collaborators,
    publish_trip,
)
from tripcollab.services.events import publish_event, record_event
from tripcollab.services.hub import EventHub, deliver, hub as default_hub, topic
from tripcollab.services.permissions import ensure_trip_permission, get_user_permissions

logger = logging.getLogger(__name__)


class CollaboratorRegistry:
    """Members of a trip and their roles."""

    def __init__(self, session: Session, event_hub: EventHub = default_hub):
        self.session = session
        self.hub = event_hub

    def seed_owner(self, trip: Trip, user_id: str, email: str, name: str) -> TripCollaborator:
        """Create the owner row at trip creation. The only way an owner is ever added."""
        now = utcnow()
        owner = TripCollaborator(
            trip_id=trip.id,
            user_id=user_id,
            email=email,
            name=name,
            role="owner",
            joined_at=now,
            last_active=now,
        )
        self.session.add(owner)
        return owner

    def upsert(self, trip: Trip, collaborator: CollaboratorCreate) -> tuple[TripCollaborator, bool]:
        """Insert or update a membership inside the caller's transaction.

        Returns the row and whether it was newly created.
        """
        if collaborator.role == "owner":
            raise InvalidRoleError("Owner role cannot be granted to a collaborator")
        if collaborator.user_id == trip.owner_id:
            raise ForbiddenError("The trip owner's role cannot be changed")

        now = utcnow()
        existing = self.session.get(TripCollaborator, (trip.id, collaborator.user_id))
        if existing:
            if existing.role == "owner":
                raise ForbiddenError("The trip owner's role cannot be changed")
            existing.email = collaborator.email
            existing.name = collaborator.name
            existing.role = collaborator.role
            existing.last_active = now
            self.session.add(existing)
            return existing, False

        member = TripCollaborator(
            trip_id=trip.id,
            user_id=collaborator.user_id,
            email=collaborator.email,
            name=collaborator.name,
            role=collaborator.role,
            joined_at=now,
            last_active=now,
        )
        self.session.add(member)
        return member, True

    async def add_collaborator(
        self,
        trip_id: UUID | str,
        collaborator: CollaboratorCreate,
        added_by: str,
    ) -> CollaboratorRead:
        """Idempotently add a member directly. Needs ``can_invite``."""
        trip = get_trip_or_404(self.session, trip_id)
        ensure_trip_permission(self.session, trip, added_by, "can_invite")

        with atomic(self.session):
            member, created = self.upsert(trip, collaborator)
            bump_trip_version(self.session, trip, added_by, {"is_shared": True})
            event = record_event(
                self.session,
                trip.id,
                "member_joined",
                added_by,
                details=f"{collaborator.name} was added as a {collaborator.role}",
                payload={"member_id": collaborator.user_id, "role": collaborator.role, "created": created},
            )

        logger.info(f"Collaborator {collaborator.user_id} added to trip {trip.id} as {collaborator.role}")
        self.session.refresh(member)
        await self._publish_membership(trip)
        await publish_event(self.hub, event)
        return collaborator_to_read(member)

    async def remove_collaborator(self, trip_id: UUID | str, user_id: str, removed_by: str) -> None:
        """Owner-only removal. Task assignments pointing at the member are kept."""
        trip = get_trip_or_404(self.session, trip_id)

        if trip.owner_id != removed_by:
            raise ForbiddenError("Only trip owner can remove collaborators")
        if user_id == trip.owner_id:
            raise ForbiddenError("The trip owner cannot be removed")

        member = self.session.get(TripCollaborator, (trip.id, user_id))
        if not member:
            raise NotFoundError("Collaborator not found")

        removed_name = member.name
        with atomic(self.session):
            self.session.delete(member)
            bump_trip_version(self.session, trip, removed_by)
            event = record_event(
                self.session,
                trip.id,
                "member_removed",
                removed_by,
                details=f"{removed_name} was removed from the trip",
                payload={"removed_user_id": user_id},
            )

        logger.info(f"Collaborator {user_id} removed from trip {trip.id} by {removed_by}")
        await self._publish_membership(trip)
        await publish_event(self.hub, event)

    def list_collaborators(self, trip_id: UUID | str) -> List[CollaboratorRead]:
        trip = get_trip_or_404(self.session, trip_id)
        return list_trip_collaborators(self.session, trip.id)

    def get_collaborator(self, trip_id: UUID | str, user_id: str) -> CollaboratorRead | None:
        trip = get_trip_or_404(self.session, trip_id)
        member = self.session.get(TripCollaborator, (trip.id, user_id))
        return collaborator_to_read(member) if member else None

    def get_permissions(self, trip_id: UUID | str, user_id: str) -> TripPermissions | None:
        """Capabilities of ``user_id`` on the trip; the owner always gets owner permissions."""
        trip = get_trip_or_404(self.session, trip_id)
        return get_user_permissions(self.session, trip, user_id)

    def touch_last_active(self, trip_id: UUID | str, user_id: str) -> None:
        """Presence heartbeat bookkeeping. Not a document write, so no version bump."""
        trip = get_trip_or_404(self.session, trip_id)
        member = self.session.get(TripCollaborator, (trip.id, user_id))
        if not member:
            return
        with atomic(self.session):
            member.last_active = utcnow()
            self.session.add(member)

    def list_user_trips(self, user_id: str) -> List[TripDocument]:
        """Trips the user owns or collaborates on, most recently modified first."""
        member_subquery = select(TripCollaborator.trip_id).where(TripCollaborator.user_id == user_id)
        trips = self.session.exec(
            select(Trip)
            .where(or_(Trip.owner_id == user_id, Trip.id.in_(member_subquery)))
            .order_by(Trip.last_modified.desc())
        ).all()
        return [build_trip_document(self.session, trip) for trip in trips]

    async def subscribe_to_collaborators(
        self,
        trip_id: UUID | str,
        callback: Callable[[List[CollaboratorRead]], object],
    ) -> Callable[[], None]:
        """Call ``callback`` now and on every membership change."""
        trip = get_trip_or_404(self.session, trip_id)
        current = list_trip_collaborators(self.session, trip.id)

        async def on_message(message) -> None:
            await deliver(callback, [CollaboratorRead.model_validate(item) for item in message])

        unsubscribe = self.hub.subscribe(topic("collaborators", trip.id), on_message)
        await deliver(callback, current)
        return unsubscribe

    async def _publish_membership(self, trip: Trip) -> None:
        self.session.refresh(trip)
        document = build_trip_document(self.session, trip)
        await publish_trip(self.hub, document)
        await publish_collaborators(self.hub, trip.id, document.collaborators)
