"""Timestamp columns and how they round-trip through the database."""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import DateTime

from tripcollab.core.clock import utcnow
from tripcollab.db import atomic
from tripcollab.models import CollaborationEvent, TaskAssignment, TaskComment, Trip, TripCollaborator, TripInvite

TIMESTAMPS = [
    Trip.__table__.c.created_at,
    Trip.__table__.c.last_modified,
    TripCollaborator.__table__.c.joined_at,
    TripCollaborator.__table__.c.last_active,
    TripInvite.__table__.c.created_at,
    TripInvite.__table__.c.expires_at,
    TripInvite.__table__.c.responded_at,
    TaskAssignment.__table__.c.assigned_at,
    TaskAssignment.__table__.c.completed_at,
    TaskComment.__table__.c.created_at,
    CollaborationEvent.__table__.c.created_at,
]


@pytest.mark.parametrize("column", TIMESTAMPS, ids=lambda column: f"{column.table.name}.{column.name}")
def test_timestamps_are_naive_utc_columns(column):
    assert type(column.type) is DateTime
    assert column.type.timezone is False


def test_naive_timestamps_round_trip(session):
    expires_at = utcnow() + timedelta(days=7)
    trip = Trip(owner_id="owner@x.com", title="Lisbon", modified_by="owner@x.com")
    invite = TripInvite(
        trip_id=trip.id,
        inviter_id="owner@x.com",
        inviter_name="Olivia",
        invitee_email="a@x.com",
        role="viewer",
        token="tok-db",
        expires_at=expires_at,
    )

    with atomic(session):
        session.add(trip)
        session.add(invite)

    session.refresh(invite)
    assert invite.expires_at == expires_at
    assert invite.is_expired(utcnow()) is False
