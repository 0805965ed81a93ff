from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Protocol
from uuid import UUID

from sqlalchemy import update
from sqlmodel import Session, select

from tripcollab.core.clock import utcnow
from tripcollab.core.config import settings
from tripcollab.core.errors import (
    EmailMismatchError,
    ForbiddenError,
    InvalidInviteTokenError,
    InvalidRoleError,
    InviteAlreadyProcessedError,
    InviteExpiredError,
)
from tripcollab.core.security import generate_invite_token
from tripcollab.db import atomic
from tripcollab.models import Trip, TripInvite
from tripcollab.schemas import CollaboratorCreate, TripDocument
from tripcollab.services.collaborators import CollaboratorRegistry
from tripcollab.services.documents import (
    build_trip_document,
    bump_trip_version,
    get_trip_or_404,
    publish_collaborators,
    publish_trip,
)
from tripcollab.services.events import publish_event, record_event
from tripcollab.services.hub import EventHub, hub as default_hub
from tripcollab.services.permissions import ensure_trip_permission

logger = logging.getLogger(__name__)

INVITE_ROLES = ("collaborator", "viewer")


class Notifier(Protocol):
    def send_invite(self, invite: TripInvite, trip: Trip | None) -> None: ...


def expire_stale_invites(session: Session, now: datetime | None = None) -> int:
    """Mark every pending invite past its expiry as expired. Returns the row count."""
    now = now or utcnow()
    statement = (
        update(TripInvite)
        .where(TripInvite.status == "pending", TripInvite.expires_at < now)
        .values(status="expired")
        .execution_options(synchronize_session=False)
    )
    with atomic(session):
        result = session.exec(statement)
    return result.rowcount or 0


class InviteLedger:
    """
    Invite lifecycle: pending -> accepted | declined | expired.

    Expiry is checked lazily whenever an invite is read by token, so a
    periodic sweep is only storage hygiene.
    """

    def __init__(
        self,
        session: Session,
        event_hub: EventHub = default_hub,
        notifier: Optional[Notifier] = None,
        expire_days: int = settings.INVITE_EXPIRE_DAYS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        self.hub = event_hub
        self.notifier = notifier
        self.expire_days = expire_days
        self.clock = clock

    async def create_invite(
        self,
        trip_id: UUID | str,
        inviter_id: str,
        inviter_name: str,
        invitee_email: str,
        role: str = "collaborator",
        message: str | None = None,
    ) -> TripInvite:
        trip = get_trip_or_404(self.session, trip_id)
        ensure_trip_permission(self.session, trip, inviter_id, "can_invite")

        if role not in INVITE_ROLES:
            raise InvalidRoleError(f"Invites can only grant {' or '.join(INVITE_ROLES)}")

        email = invitee_email.strip().lower()
        if trip.owner_id.lower() == email or self._is_owner_email(trip, email):
            raise ForbiddenError("The trip owner cannot be invited")

        now = self.clock()
        with atomic(self.session):
            invite = TripInvite(
                trip_id=trip.id,
                inviter_id=inviter_id,
                inviter_name=inviter_name,
                invitee_email=email,
                role=role,
                token=generate_invite_token(),
                message=message,
                created_at=now,
                expires_at=now + timedelta(days=self.expire_days),
            )
            self.session.add(invite)
            event = record_event(
                self.session,
                trip.id,
                "invite_sent",
                inviter_id,
                inviter_name,
                details=f"{inviter_name} invited {email} as a {role}",
                payload={"invite_id": str(invite.id), "invitee_email": email, "role": role},
            )

        self.session.refresh(invite)
        logger.info(f"Invite {invite.id} created for {email} on trip {trip.id}")

        if self.notifier is not None:
            try:
                self.notifier.send_invite(invite, trip)
            except Exception as e:
                logger.error(f"Failed to notify {email} about invite {invite.id}: {e}", exc_info=True)

        await publish_event(self.hub, event)
        return invite

    async def accept_invite(
        self,
        token: str,
        accepting_email: str,
        accepting_name: str,
        accepting_user_id: str | None = None,
    ) -> TripDocument:
        """Accept a pending invite and join the trip with the invite's role.

        The collaborator is keyed by ``accepting_user_id`` when given, by the
        e-mail otherwise.
        """
        invite = self._get_pending(token)

        if accepting_email.strip().lower() != invite.invitee_email.lower():
            raise EmailMismatchError()

        trip = get_trip_or_404(self.session, invite.trip_id)
        user_id = accepting_user_id or invite.invitee_email
        registry = CollaboratorRegistry(self.session, self.hub)

        with atomic(self.session):
            self._respond(invite, "accepted")
            registry.upsert(
                trip,
                CollaboratorCreate(
                    user_id=user_id,
                    email=invite.invitee_email,
                    name=accepting_name,
                    role=invite.role,
                ),
            )
            bump_trip_version(self.session, trip, user_id, {"is_shared": True})
            event = record_event(
                self.session,
                trip.id,
                "member_joined",
                user_id,
                accepting_name,
                details=f"{accepting_name} joined the trip as a {invite.role}",
                payload={"invite_id": str(invite.id), "role": invite.role},
            )

        self.session.refresh(trip)
        document = build_trip_document(self.session, trip)
        logger.info(f"Invite {invite.id} accepted by {user_id}, trip {trip.id} now at version {document.version}")

        await publish_trip(self.hub, document)
        await publish_collaborators(self.hub, trip.id, document.collaborators)
        await publish_event(self.hub, event)
        return document

    async def decline_invite(self, token: str) -> None:
        invite = self._get_pending(token)

        with atomic(self.session):
            self._respond(invite, "declined")
            event = record_event(
                self.session,
                invite.trip_id,
                "invite_declined",
                invite.invitee_email,
                invite.invitee_email,
                details=f"{invite.invitee_email} declined the invitation",
                payload={"invite_id": str(invite.id)},
            )

        logger.info(f"Invite {invite.id} declined")
        await publish_event(self.hub, event)

    def get_invite(self, token: str) -> TripInvite:
        """Look up an invite by token, persisting expiry if it has lapsed."""
        invite = self._find(token)
        if invite.status == "pending" and invite.is_expired(self.clock()):
            self._mark_expired(invite)
        return invite

    def list_pending_invites(self, email: str) -> List[TripInvite]:
        now = self.clock()
        statement = (
            select(TripInvite)
            .where(
                TripInvite.invitee_email == email.strip().lower(),
                TripInvite.status == "pending",
                TripInvite.expires_at >= now,
            )
            .order_by(TripInvite.created_at.desc())
        )
        return list(self.session.exec(statement).all())

    def list_trip_invites(self, trip_id: UUID | str, requested_by: str) -> List[TripInvite]:
        trip = get_trip_or_404(self.session, trip_id)
        ensure_trip_permission(self.session, trip, requested_by)
        statement = (
            select(TripInvite)
            .where(TripInvite.trip_id == trip.id)
            .order_by(TripInvite.created_at.desc())
        )
        return list(self.session.exec(statement).all())

    def expire_stale_invites(self, now: datetime | None = None) -> int:
        return expire_stale_invites(self.session, now or self.clock())

    def _find(self, token: str) -> TripInvite:
        invite = self.session.exec(select(TripInvite).where(TripInvite.token == token)).one_or_none()
        if not invite:
            raise InvalidInviteTokenError()
        return invite

    def _get_pending(self, token: str) -> TripInvite:
        invite = self._find(token)
        if invite.status != "pending":
            raise InviteAlreadyProcessedError(f"Invitation has already been {invite.status}")
        if invite.is_expired(self.clock()):
            self._mark_expired(invite)
            raise InviteExpiredError()
        return invite

    def _transition(self, invite: TripInvite, status: str, **values) -> bool:
        """Move the invite out of pending in the database.

        Conditional on the stored status, so of two requests that both saw the
        invite pending only one wins. Returns False for the loser.
        """
        statement = (
            update(TripInvite)
            .where(TripInvite.id == invite.id, TripInvite.status == "pending")
            .values(status=status, **values)
            .execution_options(synchronize_session=False)
        )
        return self.session.exec(statement).rowcount == 1

    def _respond(self, invite: TripInvite, status: str) -> None:
        if not self._transition(invite, status, responded_at=self.clock()):
            raise InviteAlreadyProcessedError()

    def _mark_expired(self, invite: TripInvite) -> None:
        with atomic(self.session):
            expired = self._transition(invite, "expired")
        if expired:
            logger.info(f"Invite {invite.id} expired")

    def _is_owner_email(self, trip: Trip, email: str) -> bool:
        owner = CollaboratorRegistry(self.session, self.hub).get_collaborator(trip.id, trip.owner_id)
        return owner is not None and owner.email.lower() == email
