from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Response, status

from tripcollab.api.deps import CurrentUserDep, InviteLedgerDep
from tripcollab.models import TripInvite
from tripcollab.schemas import InviteAccept, InviteCreate, InviteRead, InviteWithToken, TripDocument
from tripcollab.services.mailer import invite_link

router = APIRouter()


def _with_token(invite: TripInvite) -> InviteWithToken:
    return InviteWithToken(
        **InviteRead.model_validate(invite).model_dump(),
        token=invite.token,
        invite_link=invite_link(invite.token),
    )


@router.post(
    "/trips/{trip_id}/invites",
    response_model=InviteWithToken,
    status_code=status.HTTP_201_CREATED,
)
async def create_invite(
    trip_id: UUID,
    payload: InviteCreate,
    invites: InviteLedgerDep,
    current_user: CurrentUserDep,
) -> InviteWithToken:
    """Invite someone by e-mail. The e-mail is queued in the background."""
    invite = await invites.create_invite(
        trip_id,
        inviter_id=current_user.id,
        inviter_name=current_user.name,
        invitee_email=payload.invitee_email,
        role=payload.role,
        message=payload.message,
    )
    return _with_token(invite)


@router.get("/trips/{trip_id}/invites", response_model=List[InviteRead])
def list_trip_invites(
    trip_id: UUID,
    invites: InviteLedgerDep,
    current_user: CurrentUserDep,
) -> List[InviteRead]:
    return [InviteRead.model_validate(invite) for invite in invites.list_trip_invites(trip_id, current_user.id)]


@router.get("/invites/mine", response_model=List[InviteRead])
def list_my_invites(
    invites: InviteLedgerDep,
    current_user: CurrentUserDep,
) -> List[InviteRead]:
    """Pending, unexpired invites addressed to the current user's e-mail."""
    return [InviteRead.model_validate(invite) for invite in invites.list_pending_invites(current_user.email)]


@router.get("/invites/{token}", response_model=InviteRead)
def get_invite(token: str, invites: InviteLedgerDep) -> InviteRead:
    """Invite preview for the acceptance page. The token itself is the credential."""
    return InviteRead.model_validate(invites.get_invite(token))


@router.post("/invites/{token}/accept", response_model=TripDocument)
async def accept_invite(
    token: str,
    invites: InviteLedgerDep,
    current_user: CurrentUserDep,
    payload: InviteAccept | None = None,
) -> TripDocument:
    name = payload.name if payload and payload.name else current_user.name
    return await invites.accept_invite(
        token,
        accepting_email=current_user.email,
        accepting_name=name,
        accepting_user_id=current_user.id,
    )


@router.post("/invites/{token}/decline", status_code=status.HTTP_204_NO_CONTENT)
async def decline_invite(
    token: str,
    invites: InviteLedgerDep,
    current_user: CurrentUserDep,
) -> Response:
    await invites.decline_invite(token)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
