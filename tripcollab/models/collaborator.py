from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import Column, DateTime
from sqlmodel import Field, SQLModel

from tripcollab.core.clock import utcnow


class TripCollaborator(SQLModel, table=True):
    """Trip membership with per-user role."""

    __tablename__ = "trip_collaborators"
    __table_args__ = {"sqlite_autoincrement": False}

    trip_id: UUID = Field(foreign_key="trips.id", primary_key=True, nullable=False)
    # user ids are e-mail addresses
    user_id: str = Field(primary_key=True, max_length=320, nullable=False)
    email: str = Field(max_length=320)
    name: str = Field(max_length=255)
    role: str = Field(default="viewer", max_length=32)  # owner, collaborator, viewer
    joined_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime, nullable=False))
    last_active: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime, nullable=False))
