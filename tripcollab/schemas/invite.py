from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from .permissions import InviteRole

InviteStatus = Literal["pending", "accepted", "declined", "expired"]


class InviteCreate(BaseModel):
    invitee_email: EmailStr
    role: InviteRole = "collaborator"
    message: Optional[str] = Field(default=None, max_length=1000)


class InviteAccept(BaseModel):
    # accepting e-mail comes from the authenticated user
    name: Optional[str] = Field(default=None, max_length=255)


class InviteRead(BaseModel):
    id: UUID
    trip_id: UUID
    inviter_id: str
    inviter_name: str
    invitee_email: str
    role: InviteRole
    status: InviteStatus
    message: Optional[str] = None
    created_at: datetime
    expires_at: datetime
    responded_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class InviteWithToken(InviteRead):
    """Returned to the inviter only, so the link can also be shared by hand."""

    token: str
    invite_link: Optional[str] = None
