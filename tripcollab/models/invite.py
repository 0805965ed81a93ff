from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import Column, DateTime
from sqlmodel import Field, SQLModel

from tripcollab.core.clock import utcnow


class TripInvite(SQLModel, table=True):
    """Invitation to join a trip. Kept forever for audit."""

    __tablename__ = "trip_invites"

    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    trip_id: UUID = Field(foreign_key="trips.id", nullable=False, index=True)
    inviter_id: str = Field(max_length=320)
    inviter_name: str = Field(max_length=255)
    invitee_email: str = Field(max_length=320, index=True)
    role: str = Field(max_length=32)  # collaborator, viewer
    token: str = Field(max_length=128, unique=True, index=True)
    status: str = Field(default="pending", max_length=16, index=True)  # pending, accepted, declined, expired
    message: Optional[str] = Field(default=None, max_length=1000)
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime, nullable=False))
    expires_at: datetime = Field(sa_column=Column(DateTime, nullable=False))
    responded_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime, nullable=True))
    email_sent: bool = Field(default=False)

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at
