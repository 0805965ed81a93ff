"""Trip document synchronizer: versioning, last-write-wins merges and subscriptions."""

from __future__ import annotations

import uuid

import pytest
from pydantic import ValidationError
from sqlalchemy.exc import OperationalError

from conftest import OWNER, OWNER_NAME, Recorder, add_member
from tripcollab.core.errors import ForbiddenError, NotFoundError, StoreUnavailableError
from tripcollab.schemas import TripCreate, TripUpdate
from tripcollab.services.events import list_events


@pytest.mark.asyncio
async def test_create_trip(session, trip):
    assert trip.version == 1
    assert trip.owner_id == OWNER
    assert trip.title == "Lisbon, Portugal"
    assert trip.is_shared is False
    assert trip.modified_by == OWNER
    assert [event.type for event in list_events(session, trip.id)] == ["trip_created"]


@pytest.mark.asyncio
async def test_create_trip_defaults_title(trips):
    document = await trips.create_trip("someone@x.com", "Someone")

    assert document.title == "Family trip"


@pytest.mark.asyncio
async def test_version_counts_every_update(trips, registry, trip):
    await add_member(registry, trip.id, "c@x.com")
    start = trips.get_trip(trip.id).version

    await trips.update_trip(trip.id, {"title": "One"}, OWNER)
    await trips.update_trip(trip.id, {"city": "Porto"}, OWNER)
    document = await trips.update_trip(trip.id, {"title": "Three"}, "c@x.com")

    assert document.version == start + 3
    assert document.modified_by == "c@x.com"
    assert document.title == "Three"
    assert document.city == "Porto"


@pytest.mark.asyncio
async def test_last_write_wins(trips, registry, trip):
    await add_member(registry, trip.id, "c@x.com")
    start = trips.get_trip(trip.id).version

    await trips.update_trip(trip.id, TripUpdate(title="A"), OWNER)
    await trips.update_trip(trip.id, TripUpdate(title="B"), "c@x.com")

    document = trips.get_trip(trip.id)
    assert document.title == "B"
    assert document.version == start + 2


@pytest.mark.asyncio
async def test_trip_data_fields_replaced_and_extras_merged(trips, trip):
    await trips.update_trip(
        trip.id,
        {"trip_data": {"concerns": ["jet lag"], "extras": {"color": "blue", "pets": 1}}},
        OWNER,
    )
    document = await trips.update_trip(
        trip.id,
        {"trip_data": {"concerns": ["food"], "extras": {"pets": None, "theme": "beach"}}},
        OWNER,
    )

    assert document.trip_data.concerns == ["food"]
    assert document.trip_data.extras == {"color": "blue", "theme": "beach"}


@pytest.mark.asyncio
async def test_metadata_cannot_be_written(trips, trip):
    with pytest.raises(ValidationError):
        await trips.update_trip(trip.id, {"version": 99}, OWNER)

    with pytest.raises(ValidationError):
        await trips.update_trip(trip.id, {"trip_data": {"version": 99}}, OWNER)


@pytest.mark.asyncio
async def test_viewer_cannot_edit(trips, registry, trip):
    await add_member(registry, trip.id, "v@x.com", role="viewer")

    with pytest.raises(ForbiddenError):
        await trips.update_trip(trip.id, {"title": "Nope"}, "v@x.com")

    with pytest.raises(ForbiddenError):
        await trips.update_trip(trip.id, {"title": "Nope"}, "stranger@x.com")

    assert trips.get_trip(trip.id).title == "Lisbon, Portugal"


@pytest.mark.asyncio
async def test_unknown_trip(trips):
    assert trips.get_trip(uuid.uuid4()) is None
    assert trips.get_trip("not-a-uuid") is None

    with pytest.raises(NotFoundError):
        await trips.update_trip(uuid.uuid4(), {"title": "x"}, OWNER)

    with pytest.raises(NotFoundError):
        await trips.subscribe_to_trip(uuid.uuid4(), Recorder())


@pytest.mark.asyncio
async def test_update_records_changed_keys(session, trips, trip):
    await trips.update_trip(trip.id, {"title": "New", "city": "Faro"}, OWNER)

    event = list_events(session, trip.id)[0]
    assert event.type == "trip_updated"
    assert event.payload == {"changes": ["city", "title"]}


@pytest.mark.asyncio
async def test_failed_write_leaves_no_partial_state(session, trips, trip, monkeypatch):
    def broken_commit():
        raise OperationalError("UPDATE trips", {}, Exception("database is locked"))

    monkeypatch.setattr(session, "commit", broken_commit)

    with pytest.raises(StoreUnavailableError):
        await trips.update_trip(trip.id, {"title": "Lost"}, OWNER)

    monkeypatch.undo()
    document = trips.get_trip(trip.id)
    assert document.version == trip.version
    assert document.title == "Lisbon, Portugal"


@pytest.mark.asyncio
async def test_subscribe_to_trip(trips, registry, trip):
    await add_member(registry, trip.id, "c@x.com")
    received = Recorder()

    unsubscribe = await trips.subscribe_to_trip(trip.id, received)
    assert received.last.title == "Lisbon, Portugal"

    await trips.update_trip(trip.id, {"title": "From Carla"}, "c@x.com")
    assert received.last.title == "From Carla"
    assert received.last.modified_by == "c@x.com"

    unsubscribe()
    await trips.update_trip(trip.id, {"title": "Unseen"}, OWNER)
    assert received.last.title == "From Carla"


@pytest.mark.asyncio
async def test_async_subscriber(trips, trip):
    versions = []

    async def on_update(document):
        versions.append(document.version)

    await trips.subscribe_to_trip(trip.id, on_update)
    await trips.update_trip(trip.id, {"title": "Async"}, OWNER)

    assert versions == [trip.version, trip.version + 1]


@pytest.mark.asyncio
async def test_failing_subscriber_does_not_break_update(trips, event_hub, trip):
    def broken(_):
        raise RuntimeError("boom")

    received = Recorder()
    await trips.subscribe_to_trip(trip.id, received)
    event_hub.subscribe(f"trip:{trip.id}", broken)

    document = await trips.update_trip(trip.id, {"title": "Still fine"}, OWNER)

    assert document.title == "Still fine"
    assert received.last.title == "Still fine"


@pytest.mark.asyncio
async def test_owner_name_on_creation_event(session, trips):
    document = await trips.create_trip("x@x.com", OWNER_NAME, TripCreate(title="Rome"))

    assert list_events(session, document.id)[0].user_name == OWNER_NAME
