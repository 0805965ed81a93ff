"""Invite lifecycle: creation, acceptance, decline and lazy expiry."""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlmodel import Session, create_engine, select

from conftest import OWNER, OWNER_NAME, Recorder, add_member
from tripcollab.core.clock import utcnow
from tripcollab.core.errors import (
    EmailMismatchError,
    ForbiddenError,
    InvalidInviteTokenError,
    InvalidRoleError,
    InviteAlreadyProcessedError,
    InviteExpiredError,
    NotFoundError,
)
from tripcollab.db import init_db
from tripcollab.models import Trip, TripCollaborator, TripInvite
from tripcollab.schemas import TripCreate
from tripcollab.services.events import list_events
from tripcollab.services.hub import EventHub, topic
from tripcollab.services.invites import InviteLedger
from tripcollab.services.trips import TripSynchronizer


async def _invite(invites, trip, email="a@x.com", role="viewer", **kwargs):
    return await invites.create_invite(trip.id, OWNER, OWNER_NAME, email, role, **kwargs)


@pytest.mark.asyncio
async def test_create_invite(invites, notifier, trip):
    invite = await _invite(invites, trip, "A@X.com", message="Join us!")

    assert invite.status == "pending"
    assert invite.invitee_email == "a@x.com"
    assert invite.role == "viewer"
    assert len(invite.token) >= 32
    assert invite.expires_at - invite.created_at == timedelta(days=7)
    notifier.send_invite.assert_called_once()
    sent_invite, sent_trip = notifier.send_invite.call_args.args
    assert sent_invite.id == invite.id
    assert sent_trip.id == trip.id


@pytest.mark.asyncio
async def test_tokens_are_unique(invites, trip):
    first = await _invite(invites, trip, "a@x.com")
    second = await _invite(invites, trip, "b@x.com")

    assert first.token != second.token


@pytest.mark.asyncio
async def test_email_mismatch_then_accept(session, invites, trip):
    invite = await _invite(invites, trip, "a@x.com", role="viewer")

    with pytest.raises(EmailMismatchError):
        await invites.accept_invite(invite.token, "b@x.com", "Bob")

    document = await invites.accept_invite(invite.token, "a@x.com", "Alice")

    viewer = next(member for member in document.collaborators if member.user_id == "a@x.com")
    assert viewer.role == "viewer"
    assert viewer.permissions.can_edit is False
    assert document.permissions["a@x.com"].can_edit is False
    assert document.version == trip.version + 1
    assert document.modified_by == "a@x.com"
    assert document.is_shared is True

    session.refresh(invite)
    assert invite.status == "accepted"
    assert invite.responded_at is not None


@pytest.mark.asyncio
async def test_accept_compares_email_case_insensitively(invites, trip):
    invite = await _invite(invites, trip, "a@x.com")

    document = await invites.accept_invite(invite.token, "A@X.COM", "Alice")

    assert any(member.email == "a@x.com" for member in document.collaborators)


@pytest.mark.asyncio
async def test_accept_uses_authenticated_user_id(invites, trip):
    invite = await _invite(invites, trip, "a@x.com", role="collaborator")

    document = await invites.accept_invite(invite.token, "a@x.com", "Alice", accepting_user_id="user-42")

    member = next(member for member in document.collaborators if member.user_id == "user-42")
    assert member.email == "a@x.com"
    assert member.permissions.can_edit is True


@pytest.mark.asyncio
async def test_accept_publishes_trip_and_membership(invites, event_hub, trip):
    trip_updates, members, events = Recorder(), Recorder(), Recorder()
    event_hub.subscribe(topic("trip", trip.id), trip_updates)
    event_hub.subscribe(topic("collaborators", trip.id), members)
    event_hub.subscribe(topic("events", trip.id), events)
    invite = await _invite(invites, trip)

    await invites.accept_invite(invite.token, "a@x.com", "Alice")

    assert trip_updates.last["version"] == trip.version + 1
    assert {member["user_id"] for member in members.last} == {OWNER, "a@x.com"}
    assert [event["type"] for event in events.messages] == ["invite_sent", "member_joined"]


@pytest.mark.asyncio
async def test_invite_is_single_use(invites, trip):
    accepted = await _invite(invites, trip, "a@x.com")
    declined = await _invite(invites, trip, "b@x.com")

    await invites.accept_invite(accepted.token, "a@x.com", "Alice")
    await invites.decline_invite(declined.token)

    with pytest.raises(InviteAlreadyProcessedError):
        await invites.accept_invite(accepted.token, "a@x.com", "Alice")
    with pytest.raises(InviteAlreadyProcessedError):
        await invites.decline_invite(accepted.token)
    with pytest.raises(InviteAlreadyProcessedError):
        await invites.accept_invite(declined.token, "b@x.com", "Bob")
    with pytest.raises(InviteAlreadyProcessedError):
        await invites.decline_invite(declined.token)


@pytest.mark.asyncio
async def test_decline_does_not_touch_trip(session, invites, trips, trip):
    invite = await _invite(invites, trip)

    await invites.decline_invite(invite.token)

    session.refresh(invite)
    assert invite.status == "declined"
    document = trips.get_trip(trip.id)
    assert document.version == trip.version
    assert [member.user_id for member in document.collaborators] == [OWNER]
    assert list_events(session, trip.id)[0].type == "invite_declined"


@pytest.mark.asyncio
async def test_expired_invite_is_rejected_even_while_pending(session, invites, trip):
    invite = await _invite(invites, trip)
    invite.expires_at = utcnow() - timedelta(days=1)
    session.add(invite)
    session.commit()

    with pytest.raises(InviteExpiredError):
        await invites.accept_invite(invite.token, "a@x.com", "Alice")

    session.refresh(invite)
    assert invite.status == "expired"

    with pytest.raises(InviteAlreadyProcessedError):
        await invites.accept_invite(invite.token, "a@x.com", "Alice")


@pytest.mark.asyncio
async def test_expiry_uses_injected_clock(session, event_hub, invites, trip):
    invite = await _invite(invites, trip)
    later = InviteLedger(session, event_hub, clock=lambda: utcnow() + timedelta(days=8))

    with pytest.raises(InviteExpiredError):
        await later.decline_invite(invite.token)


@pytest.mark.asyncio
async def test_unknown_token(invites):
    with pytest.raises(InvalidInviteTokenError):
        await invites.accept_invite("not-a-token", "a@x.com", "Alice")

    with pytest.raises(NotFoundError):
        invites.get_invite("not-a-token")


@pytest.mark.asyncio
async def test_create_invite_requires_can_invite(invites, registry, trip):
    await add_member(registry, trip.id, "c@x.com", role="collaborator")

    with pytest.raises(ForbiddenError):
        await invites.create_invite(trip.id, "c@x.com", "Carla", "d@x.com", "viewer")

    with pytest.raises(ForbiddenError):
        await invites.create_invite(trip.id, "stranger@x.com", "Stranger", "d@x.com", "viewer")


@pytest.mark.asyncio
async def test_create_invite_rejects_owner_role(invites, trip):
    with pytest.raises(InvalidRoleError):
        await _invite(invites, trip, role="owner")


@pytest.mark.asyncio
async def test_owner_cannot_be_invited(invites, trip):
    with pytest.raises(ForbiddenError):
        await _invite(invites, trip, email=OWNER)


@pytest.mark.asyncio
async def test_create_invite_for_unknown_trip(invites):
    with pytest.raises(NotFoundError):
        await invites.create_invite("00000000-0000-0000-0000-000000000000", OWNER, OWNER_NAME, "a@x.com", "viewer")


@pytest.mark.asyncio
async def test_notifier_failure_keeps_invite(invites, notifier, trip):
    notifier.send_invite.side_effect = RuntimeError("smtp down")

    invite = await _invite(invites, trip)

    assert invites.get_invite(invite.token).status == "pending"


@pytest.mark.asyncio
async def test_accept_never_creates_second_owner(session, invites, trip):
    invite = await _invite(invites, trip, "a@x.com", role="collaborator")

    with pytest.raises(ForbiddenError):
        await invites.accept_invite(invite.token, "a@x.com", "Alice", accepting_user_id=OWNER)

    owners = session.exec(
        select(TripCollaborator).where(TripCollaborator.trip_id == trip.id, TripCollaborator.role == "owner")
    ).all()
    assert len(owners) == 1
    session.refresh(invite)
    assert invite.status == "pending"


@pytest.mark.asyncio
async def test_listing_invites(invites, trip):
    pending = await _invite(invites, trip, "a@x.com")
    declined = await _invite(invites, trip, "a@x.com")
    await invites.decline_invite(declined.token)

    mine = invites.list_pending_invites("A@x.com")
    assert [invite.id for invite in mine] == [pending.id]

    assert {invite.id for invite in invites.list_trip_invites(trip.id, OWNER)} == {pending.id, declined.id}
    with pytest.raises(ForbiddenError):
        invites.list_trip_invites(trip.id, "stranger@x.com")


@pytest.mark.asyncio
async def test_expire_stale_invites(session, invites, trip):
    stale = await _invite(invites, trip, "a@x.com")
    fresh = await _invite(invites, trip, "b@x.com")
    stale.expires_at = utcnow() - timedelta(hours=1)
    session.add(stale)
    session.commit()

    assert invites.expire_stale_invites() == 1

    statuses = {
        invite.invitee_email: invite.status
        for invite in session.exec(select(TripInvite).where(TripInvite.trip_id == trip.id)).all()
    }
    assert statuses == {"a@x.com": "expired", "b@x.com": "pending"}
    assert fresh.status == "pending"


@pytest.fixture
def file_engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'trips.db'}",
        connect_args={"check_same_thread": False},
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


async def _pending_invite(engine, hub):
    with Session(engine) as session:
        trip = await TripSynchronizer(session, hub).create_trip(
            OWNER, OWNER_NAME, TripCreate(city="Lisbon", country="Portugal"), owner_email=OWNER
        )
        invite = await InviteLedger(session, hub).create_invite(trip.id, OWNER, OWNER_NAME, "a@x.com", "viewer")
        return trip, invite.id, invite.token


def _load_stale(session, invite_id):
    """Read the invite while pending and keep that view after the read ends."""
    invite = session.get(TripInvite, invite_id)
    session.commit()
    assert invite.status == "pending"
    return invite


@pytest.mark.asyncio
async def test_decline_loses_to_concurrent_accept(file_engine):
    hub = EventHub()
    trip, invite_id, token = await _pending_invite(file_engine, hub)

    with Session(file_engine, expire_on_commit=False) as slow:
        _load_stale(slow, invite_id)

        with Session(file_engine) as fast:
            await InviteLedger(fast, hub).accept_invite(token, "a@x.com", "Alice")

        with pytest.raises(InviteAlreadyProcessedError):
            await InviteLedger(slow, hub).decline_invite(token)

    with Session(file_engine) as session:
        assert session.get(TripInvite, invite_id).status == "accepted"
        assert session.get(TripCollaborator, (trip.id, "a@x.com")).role == "viewer"
        assert "invite_declined" not in {event.type for event in list_events(session, trip.id)}


@pytest.mark.asyncio
async def test_accept_loses_to_concurrent_decline(file_engine):
    hub = EventHub()
    trip, invite_id, token = await _pending_invite(file_engine, hub)

    with Session(file_engine, expire_on_commit=False) as slow:
        _load_stale(slow, invite_id)

        with Session(file_engine) as fast:
            await InviteLedger(fast, hub).decline_invite(token)

        with pytest.raises(InviteAlreadyProcessedError):
            await InviteLedger(slow, hub).accept_invite(token, "a@x.com", "Alice")

    with Session(file_engine) as session:
        assert session.get(TripInvite, invite_id).status == "declined"
        assert session.get(TripCollaborator, (trip.id, "a@x.com")) is None
        assert session.get(Trip, trip.id).version == trip.version
