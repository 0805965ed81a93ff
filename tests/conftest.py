"""Shared fixtures: an in-memory database, a private event hub and the services on top."""

from __future__ import annotations

from typing import Any, List
from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine

from tripcollab.db import init_db
from tripcollab.schemas import CollaboratorCreate, TripCreate, TripDocument
from tripcollab.services.collaborators import CollaboratorRegistry
from tripcollab.services.hub import EventHub
from tripcollab.services.invites import InviteLedger
from tripcollab.services.presence import PresenceBroadcaster
from tripcollab.services.presence_store import InMemoryPresenceStore
from tripcollab.services.tasks import TaskLedger
from tripcollab.services.trips import TripSynchronizer

OWNER = "owner@x.com"
OWNER_NAME = "Olivia Owner"


class Recorder:
    """Hub subscriber that keeps every message it receives."""

    def __init__(self):
        self.messages: List[Any] = []

    def __call__(self, message: Any) -> None:
        self.messages.append(message)

    @property
    def last(self) -> Any:
        return self.messages[-1]


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def event_hub() -> EventHub:
    return EventHub()


@pytest.fixture
def notifier() -> MagicMock:
    return MagicMock()


@pytest.fixture
def registry(session, event_hub) -> CollaboratorRegistry:
    return CollaboratorRegistry(session, event_hub)


@pytest.fixture
def trips(session, event_hub) -> TripSynchronizer:
    return TripSynchronizer(session, event_hub)


@pytest.fixture
def invites(session, event_hub, notifier) -> InviteLedger:
    return InviteLedger(session, event_hub, notifier=notifier)


@pytest.fixture
def tasks(session, event_hub) -> TaskLedger:
    return TaskLedger(session, event_hub)


@pytest_asyncio.fixture
async def presence(event_hub):
    broadcaster = PresenceBroadcaster(
        InMemoryPresenceStore(),
        event_hub,
        typing_timeout=0.05,
        stale_after=30,
    )
    yield broadcaster
    await broadcaster.shutdown()


@pytest_asyncio.fixture
async def trip(trips) -> TripDocument:
    return await trips.create_trip(
        OWNER,
        OWNER_NAME,
        TripCreate(city="Lisbon", country="Portugal"),
        owner_email=OWNER,
    )


async def add_member(registry: CollaboratorRegistry, trip_id, user_id: str, role: str = "collaborator"):
    return await registry.add_collaborator(
        trip_id,
        CollaboratorCreate(user_id=user_id, email=user_id, name=user_id.split("@")[0].title(), role=role),
        OWNER,
    )
