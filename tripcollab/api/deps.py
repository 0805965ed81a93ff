from __future__ import annotations

from typing import Annotated, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from tripcollab.core.security import verify_token
from tripcollab.db import SessionDep
from tripcollab.services.collaborators import CollaboratorRegistry
from tripcollab.services.hub import EventHub, hub
from tripcollab.services.invites import InviteLedger
from tripcollab.services.mailer import InviteNotifier
from tripcollab.services.presence import PresenceBroadcaster, presence_broadcaster
from tripcollab.services.tasks import TaskLedger
from tripcollab.services.trips import TripSynchronizer

bearer_scheme = HTTPBearer(auto_error=False)


class CurrentUser(BaseModel):
    """Acting user as asserted by the identity provider's access token."""

    id: str
    name: str
    email: str


def user_from_token(token: str) -> CurrentUser:
    """Build the acting user from an access token. Raises ``ValueError`` when invalid."""
    payload = verify_token(token, token_type="access")
    user_id = payload.get("sub")
    if not user_id:
        raise ValueError("Invalid token: no subject")
    email = payload.get("email") or user_id
    return CurrentUser(id=user_id, name=payload.get("name") or email, email=email.lower())


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> CurrentUser:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return user_from_token(credentials.credentials)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None


CurrentUserDep = Annotated[CurrentUser, Depends(get_current_user)]


def get_event_hub() -> EventHub:
    return hub


EventHubDep = Annotated[EventHub, Depends(get_event_hub)]


def get_invite_notifier() -> InviteNotifier:
    return InviteNotifier()


def get_presence_broadcaster() -> PresenceBroadcaster:
    return presence_broadcaster


def get_trip_synchronizer(session: SessionDep, event_hub: EventHubDep) -> TripSynchronizer:
    return TripSynchronizer(session, event_hub)


def get_collaborator_registry(session: SessionDep, event_hub: EventHubDep) -> CollaboratorRegistry:
    return CollaboratorRegistry(session, event_hub)


def get_invite_ledger(
    session: SessionDep,
    event_hub: EventHubDep,
    notifier: InviteNotifier = Depends(get_invite_notifier),
) -> InviteLedger:
    return InviteLedger(session, event_hub, notifier=notifier)


def get_task_ledger(session: SessionDep, event_hub: EventHubDep) -> TaskLedger:
    return TaskLedger(session, event_hub)


TripSynchronizerDep = Annotated[TripSynchronizer, Depends(get_trip_synchronizer)]
CollaboratorRegistryDep = Annotated[CollaboratorRegistry, Depends(get_collaborator_registry)]
InviteLedgerDep = Annotated[InviteLedger, Depends(get_invite_ledger)]
TaskLedgerDep = Annotated[TaskLedger, Depends(get_task_ledger)]
PresenceDep = Annotated[PresenceBroadcaster, Depends(get_presence_broadcaster)]
