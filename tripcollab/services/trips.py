from __future__ import annotations

import logging
from typing import Any, Callable, Optional
from uuid import UUID

from sqlmodel import Session

from tripcollab.core.clock import utcnow
from tripcollab.core.errors import NotFoundError
from tripcollab.db import atomic
from tripcollab.models import Trip
from tripcollab.schemas import TripCreate, TripData, TripDataUpdate, TripDocument, TripUpdate
from tripcollab.services.collaborators import CollaboratorRegistry
from tripcollab.services.documents import (
    build_trip_document,
    bump_trip_version,
    get_trip_or_404,
    parse_trip_id,
    publish_trip,
)
from tripcollab.services.events import publish_event, record_event
from tripcollab.services.hub import EventHub, deliver, hub as default_hub, topic
from tripcollab.services.permissions import ensure_trip_permission

logger = logging.getLogger(__name__)


def merge_trip_data(stored: dict[str, Any], patch: TripDataUpdate) -> dict[str, Any]:
    """Overlay the set fields of ``patch`` onto the stored planning payload.

    Each field is replaced whole (last write wins). ``extras`` is merged per
    key and a ``None`` value removes that key.
    """
    merged = TripData.model_validate(stored or {}).model_dump(mode="json")
    changes = patch.model_dump(mode="json", exclude_unset=True, exclude_none=True, exclude={"extras"})
    merged.update(changes)

    if patch.extras is not None:
        combined = {**merged.get("extras", {}), **patch.extras}
        merged["extras"] = {key: value for key, value in combined.items() if value is not None}

    return TripData.model_validate(merged).model_dump(mode="json")


class TripSynchronizer:
    """Versioned writes to the shared trip document, rebroadcast to subscribers."""

    def __init__(self, session: Session, event_hub: EventHub = default_hub):
        self.session = session
        self.hub = event_hub

    async def create_trip(
        self,
        owner_id: str,
        owner_name: str,
        data: TripCreate | None = None,
        owner_email: str | None = None,
    ) -> TripDocument:
        data = data or TripCreate()
        title = data.title or ", ".join(part for part in (data.city, data.country) if part) or "Family trip"
        now = utcnow()

        with atomic(self.session):
            trip = Trip(
                owner_id=owner_id,
                title=title,
                city=data.city,
                country=data.country,
                start_date=data.start_date,
                end_date=data.end_date,
                created_at=now,
                last_modified=now,
                modified_by=owner_id,
                trip_data=data.trip_data.model_dump(mode="json"),
            )
            self.session.add(trip)
            self.session.flush()
            CollaboratorRegistry(self.session, self.hub).seed_owner(
                trip, owner_id, owner_email or owner_id, owner_name
            )
            event = record_event(
                self.session,
                trip.id,
                "trip_created",
                owner_id,
                owner_name,
                details=f"{owner_name} created the trip",
            )

        self.session.refresh(trip)
        logger.info(f"Trip {trip.id} created by {owner_id}")
        await publish_event(self.hub, event)
        return build_trip_document(self.session, trip)

    def get_trip(self, trip_id: UUID | str) -> Optional[TripDocument]:
        try:
            trip = self.session.get(Trip, parse_trip_id(trip_id))
        except NotFoundError:
            return None
        if not trip:
            return None
        return build_trip_document(self.session, trip)

    async def update_trip(
        self,
        trip_id: UUID | str,
        updates: TripUpdate | dict[str, Any],
        acting_user_id: str,
    ) -> TripDocument:
        """Merge ``updates`` into the document, bump the version and republish it.

        Last write wins per field; there is no field-level conflict detection.
        """
        if not isinstance(updates, TripUpdate):
            updates = TripUpdate.model_validate(updates)

        trip = get_trip_or_404(self.session, trip_id)
        ensure_trip_permission(self.session, trip, acting_user_id, "can_edit")

        changes = updates.model_dump(exclude_unset=True, exclude={"trip_data"})
        # Non-nullable columns cannot be cleared
        for field in ("title", "is_shared"):
            if field in changes and changes[field] is None:
                del changes[field]
        if updates.trip_data is not None:
            changes["trip_data"] = merge_trip_data(trip.trip_data, updates.trip_data)

        with atomic(self.session):
            bump_trip_version(self.session, trip, acting_user_id, changes)
            event = record_event(
                self.session,
                trip.id,
                "trip_updated",
                acting_user_id,
                details="Trip details updated",
                payload={"changes": sorted(changes)},
            )

        self.session.refresh(trip)
        document = build_trip_document(self.session, trip)
        logger.info(f"Trip {trip.id} updated to version {document.version} by {acting_user_id}")
        await publish_trip(self.hub, document)
        await publish_event(self.hub, event)
        return document

    async def subscribe_to_trip(
        self,
        trip_id: UUID | str,
        callback: Callable[[TripDocument], object],
    ) -> Callable[[], None]:
        """Call ``callback`` with the current document now and after every write."""
        document = self.get_trip(trip_id)
        if document is None:
            raise NotFoundError("Trip not found")

        async def on_message(message) -> None:
            await deliver(callback, TripDocument.model_validate(message))

        unsubscribe = self.hub.subscribe(topic("trip", document.id), on_message)
        await deliver(callback, document)
        return unsubscribe
