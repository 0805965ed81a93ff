from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Query

from tripcollab.api.deps import CurrentUserDep
from tripcollab.db import SessionDep
from tripcollab.schemas import CollaborationEventRead
from tripcollab.services.documents import get_trip_or_404
from tripcollab.services.events import list_events
from tripcollab.services.permissions import ensure_trip_permission

router = APIRouter()


@router.get("/trips/{trip_id}/events", response_model=List[CollaborationEventRead])
def get_trip_events(
    trip_id: UUID,
    session: SessionDep,
    current_user: CurrentUserDep,
    limit: int = Query(default=50, ge=1, le=500),
) -> List[CollaborationEventRead]:
    """Collaboration history of a trip, newest first."""
    trip = get_trip_or_404(session, trip_id)
    ensure_trip_permission(session, trip, current_user.id)
    return [CollaborationEventRead.model_validate(event) for event in list_events(session, trip.id, limit)]
